from abc import ABC, abstractmethod
from typing import Any

from linkforge.models.submission import Source, Submission
from linkforge.models.tutorial import Tutorial


class SlugConflictError(Exception):
    """Raised when a tutorial insert collides with an existing slug."""


class AbstractSubmissionRepository(ABC):
    @abstractmethod
    def create(
        self,
        url: str,
        source_type: str,
        phone_number: str | None = None,
        raw_message: str | None = None,
        max_retries: int = 3,
    ) -> Submission:
        """Insert a new submission in status 'received' and return it."""

    @abstractmethod
    def get(self, submission_id: str) -> Submission | None:
        """Return the submission, or None if it does not exist."""

    @abstractmethod
    def update(self, submission_id: str, fields: dict[str, Any]) -> None:
        """Write the given columns. JSON-valued columns accept dicts or pydantic models."""

    @abstractmethod
    def list_retryable(self, limit: int) -> list[Submission]:
        """Oldest 'failed' submissions whose retry_count is below max_retries."""

    @abstractmethod
    def reset_for_retry(self, submission_id: str, clear_payloads: bool = False) -> None:
        """Make a failed or dead submission eligible for another run."""

    @abstractmethod
    def insert_source(self, submission_id: str, url: str, source_type: str, raw_text: str) -> None:
        """Record the raw text extracted for a submission."""

    @abstractmethod
    def list_sources(self, submission_id: str) -> list[Source]:
        """Source rows recorded for a submission, oldest first."""

    @abstractmethod
    def link_sources(self, submission_id: str, tutorial_id: str) -> None:
        """Point every source row of a submission at its tutorial."""


class AbstractTutorialRepository(ABC):
    @abstractmethod
    def get(self, tutorial_id: str) -> Tutorial | None:
        """Return the tutorial, or None if it does not exist."""

    @abstractmethod
    def find_merge_candidates(self, maturity_level: int, topics: list[str]) -> list[Tutorial]:
        """Published tutorials at the given level sharing at least one topic."""

    @abstractmethod
    def create(self, fields: dict[str, Any]) -> str:
        """Insert a tutorial and return its id. Raises SlugConflictError on a duplicate slug."""

    @abstractmethod
    def apply_merge(
        self,
        tutorial_id: str,
        body: str,
        summary: str,
        action_items: list[str],
        source_url: str,
    ) -> None:
        """Replace merged content, append source_url and increment source_count."""

    @abstractmethod
    def update(self, tutorial_id: str, fields: dict[str, Any]) -> None:
        """Write the given columns."""
