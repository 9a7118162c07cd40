"""
Pipeline error classification and retry policy.

Transient errors (timeouts, rate limits, 5xx, anything unrecognised) are worth
retrying. Permanent errors mean the content is genuinely unavailable or a step
precondition is broken, so retrying would only burn budget.

The rule table matches substrings of the error message. Extraction strategies
word their errors to hit these rules, so the wording on both sides is part of
the contract.
"""

import asyncio
import logging
import re
from typing import Callable, Literal

logger = logging.getLogger(__name__)

ErrorKind = Literal["transient", "permanent"]

_PERMANENT_STATUS = re.compile(r"\b(400|401|403|404|410|422)\b")


def _contains(fragment: str) -> Callable[[str], bool]:
    return lambda message: fragment in message


def _client_error_status(message: str) -> bool:
    return "failed" in message and _PERMANENT_STATUS.search(message) is not None


# (predicate over the lower-cased message, kind). First match wins.
ERROR_RULES: list[tuple[Callable[[str], bool], ErrorKind]] = [
    (_contains("private or unavailable"), "permanent"),
    (_contains("insufficient content"), "permanent"),
    (_contains("insufficient extractable text"), "permanent"),
    (_contains("no transcript"), "permanent"),
    (_contains("not have transcripts available"), "permanent"),
    (_contains("linkedin blocked"), "permanent"),
    (_contains("invalid url"), "permanent"),
    (_client_error_status, "permanent"),
]

RETRY_BASE_MS = 3000
RETRY_FACTOR = 3
RETRY_CAP_MS = 30_000


def classify_error(error: BaseException | str) -> ErrorKind:
    """
    Map an error (or its message) to 'transient' or 'permanent'. Total and deterministic.

    An error that already carries a `kind` (PipelineError, ExtractionError from
    a fallback chain) keeps it; otherwise the message decides.
    """
    kind = getattr(error, "kind", None)
    if kind in ("transient", "permanent"):
        return kind
    message = str(error).lower()
    for predicate, kind in ERROR_RULES:
        if predicate(message):
            return kind
    return "transient"


class PipelineError(Exception):
    """Error raised by a pipeline step. `kind` decides retry vs give-up in the engine."""

    def __init__(self, message: str, step: str, kind: ErrorKind | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.step = step
        self.kind: ErrorKind = kind or classify_error(message)

    @classmethod
    def from_error(cls, exc: BaseException, step: str) -> "PipelineError":
        if isinstance(exc, PipelineError):
            return exc
        message = str(exc) or type(exc).__name__
        return cls(message, step, classify_error(exc))

    def __repr__(self) -> str:
        return f"PipelineError(step={self.step!r}, kind={self.kind!r}, message={self.message!r})"


def retry_delay(attempt: int) -> int:
    """Backoff in milliseconds: 3s, 9s, 27s, then capped at 30s."""
    return min(RETRY_BASE_MS * RETRY_FACTOR ** attempt, RETRY_CAP_MS)


async def sleep(ms: int) -> None:
    await asyncio.sleep(ms / 1000)
