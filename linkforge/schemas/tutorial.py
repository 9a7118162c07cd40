import re
from typing import Literal

from pydantic import BaseModel, Field, field_validator

_SLUG_INVALID = re.compile(r"[^a-z0-9]+")


def slugify(value: str, max_length: int = 80) -> str:
    slug = _SLUG_INVALID.sub("-", value.lower()).strip("-")
    return slug[:max_length].rstrip("-")


class Classification(BaseModel):
    maturity_level: int = Field(ge=0, le=4)
    level_relation: Literal["level-up", "level-practice", "cross-level"]
    topics: list[str] = []
    tags: list[str] = []
    tools_mentioned: list[str] = []
    difficulty: Literal["beginner", "intermediate", "advanced"]

    @field_validator("topics", "tags", "tools_mentioned")
    @classmethod
    def dedupe(cls, v: list[str]) -> list[str]:
        seen: list[str] = []
        for item in v:
            item = item.strip()
            if item and item not in seen:
                seen.append(item)
        return seen


class TutorialDraft(BaseModel):
    """Tutorial fields as written by the LLM, before the classification is attached."""

    title: str
    slug: str
    summary: str
    body: str
    action_items: list[str] = []

    @field_validator("title", "body")
    @classmethod
    def must_not_be_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("must not be empty")
        return v

    @field_validator("slug")
    @classmethod
    def normalize_slug(cls, v: str) -> str:
        slug = slugify(v)
        if not slug:
            raise ValueError("slug must contain at least one alphanumeric character")
        return slug


class GeneratedTutorialData(TutorialDraft):
    classification: Classification


class MergedTutorialContent(BaseModel):
    body: str
    summary: str
    action_items: list[str] = []


class HotNewsBlurb(BaseModel):
    headline: str
    teaser: str
