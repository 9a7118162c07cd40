import logging
import re
from urllib.parse import urlparse

from linkforge.config import settings
from linkforge.models.submission import Submission
from linkforge.repositories.base import AbstractSubmissionRepository
from linkforge.services.extraction_service import detect_source_type

logger = logging.getLogger(__name__)

_URL_IN_MESSAGE = re.compile(r"https?://[^\s]+", re.IGNORECASE)
_TRAILING_PUNCTUATION = re.compile(r"[.,;:!?)]+$")


class InvalidSubmission(Exception):
    pass


def extract_url_from_message(body: str) -> str | None:
    """First http(s) URL in a chat message, without trailing punctuation."""
    match = _URL_IN_MESSAGE.search(body or "")
    if not match:
        return None
    return _TRAILING_PUNCTUATION.sub("", match.group(0)) or None


def validate_url(url: str) -> str:
    """Raises InvalidSubmission unless url is an absolute http(s) URL."""
    parsed = urlparse(url.strip())
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        raise InvalidSubmission("Invalid URL format")
    return url.strip()


def normalize_sender(raw_from: str) -> tuple[str, str]:
    """Strip the 'whatsapp:' prefix Twilio puts on WhatsApp senders. Returns (number, channel)."""
    if raw_from.startswith("whatsapp:"):
        return raw_from.removeprefix("whatsapp:"), "WhatsApp"
    return raw_from, "SMS"


class IngestionService:
    def __init__(self, repository: AbstractSubmissionRepository) -> None:
        self._repository = repository

    def create_submission(
        self,
        url: str,
        phone_number: str | None = None,
        raw_message: str | None = None,
    ) -> Submission:
        """Validate, detect the source type and store a new 'received' submission."""
        url = validate_url(url)
        source_type = detect_source_type(url)
        submission = self._repository.create(
            url=url,
            source_type=source_type,
            phone_number=phone_number,
            raw_message=raw_message,
            max_retries=settings.DEFAULT_MAX_RETRIES,
        )
        logger.info(
            "[ingest] new | id=%s | type=%s | from=%s | url=%s",
            submission.id,
            source_type,
            phone_number,
            url,
        )
        return submission
