import logging

import httpx

from linkforge.config import settings

logger = logging.getLogger(__name__)


class ReaderService:
    """Fetches a readability-cleaned plain-text rendition of a page through the reader proxy."""

    def __init__(self, base_url: str | None = None, timeout: float | None = None) -> None:
        self._base_url = base_url or settings.READER_BASE_URL
        self._timeout = timeout or settings.EXTRACTION_TIMEOUT

    async def fetch_text(self, url: str) -> str:
        """Return the page text. Raises RuntimeError with the HTTP status on a non-2xx response."""
        reader_url = f"{self._base_url}{url}"
        async with httpx.AsyncClient(timeout=self._timeout, follow_redirects=True) as client:
            response = await client.get(reader_url, headers={"Accept": "text/plain"})
        if response.status_code != 200:
            raise RuntimeError(f"Reader fetch failed with status {response.status_code} for {url}")
        text = response.text.strip()
        logger.debug("[reader] fetched | url=%s | chars=%d", url, len(text))
        return text
