from dataclasses import dataclass, field
from datetime import datetime

from linkforge.schemas.tutorial import Classification, GeneratedTutorialData

TERMINAL_STATUSES = {"published", "dead"}

# Done and in-progress labels both resolve to a step; in-progress labels
# only show up here after a crash mid-step.
STATUS_TO_STEP: dict[str, str] = {
    "received": "extract",
    "extracting": "extract",
    "extracted": "classify",
    "classifying": "classify",
    "classified": "generate",
    "generating": "generate",
    "generated": "publish",
    "publishing": "publish",
}

# A failed submission whose last_step is a done label resumes at the next step.
COMPLETED_TO_NEXT_STEP: dict[str, str] = {
    "extracted": "classify",
    "classified": "generate",
    "generated": "publish",
}

STEP_IN_PROGRESS_STATUS: dict[str, str] = {
    "extract": "extracting",
    "classify": "classifying",
    "generate": "generating",
    "publish": "publishing",
}


@dataclass
class Submission:
    id: str
    url: str
    source_type: str
    status: str = "received"
    phone_number: str | None = None
    raw_message: str | None = None
    retry_count: int = 0
    max_retries: int = 3
    last_step: str | None = None
    last_error: str | None = None
    extracted_text: str | None = None
    classification: Classification | None = None
    generated_tutorial: GeneratedTutorialData | None = None
    tutorial_id: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    created_at: datetime = field(default_factory=datetime.utcnow)


@dataclass
class Source:
    submission_id: str
    url: str
    source_type: str
    raw_text: str
    tutorial_id: str | None = None
    extracted_at: datetime = field(default_factory=datetime.utcnow)
