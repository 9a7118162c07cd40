from pydantic import BaseModel, field_validator


class SubmitRequest(BaseModel):
    url: str
    note: str | None = None

    @field_validator("url")
    @classmethod
    def url_must_not_be_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("url must not be empty")
        return v.strip()


class SubmitResponse(BaseModel):
    status: str
    message: str
    submission_id: str | None = None
    source_type: str | None = None


class ProcessRequest(BaseModel):
    submission_id: str
    hot_news: bool = False

    @field_validator("submission_id")
    @classmethod
    def id_must_not_be_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("submission_id must not be empty")
        return v


class PipelineResponse(BaseModel):
    success: bool
    status: str
    tutorial_id: str | None = None
    error: str | None = None


class RetryOutcome(PipelineResponse):
    id: str


class RetryAllResponse(BaseModel):
    attempted: int
    succeeded: int
    results: list[RetryOutcome]
