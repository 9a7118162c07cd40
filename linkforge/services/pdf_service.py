import logging
from dataclasses import dataclass

import fitz  # PyMuPDF
import httpx

from linkforge.config import settings

logger = logging.getLogger(__name__)

MAX_PDF_BYTES = 25 * 1024 * 1024


@dataclass
class PdfDocument:
    text: str
    page_count: int
    title: str | None = None
    author: str | None = None


class PdfService:
    def __init__(self, timeout: float | None = None) -> None:
        self._timeout = timeout or settings.EXTRACTION_TIMEOUT

    async def download(self, url: str) -> bytes:
        async with httpx.AsyncClient(timeout=self._timeout, follow_redirects=True) as client:
            response = await client.get(url)
        if response.status_code != 200:
            raise RuntimeError(f"PDF download failed with status {response.status_code}")
        if len(response.content) > MAX_PDF_BYTES:
            raise RuntimeError(f"PDF too large to process ({len(response.content)} bytes)")
        return response.content

    def parse(self, data: bytes) -> PdfDocument:
        """Extract page text and document metadata with PyMuPDF."""
        try:
            doc = fitz.open(stream=data, filetype="pdf")
        except Exception as exc:
            raise RuntimeError(f"PDF could not be parsed, insufficient extractable text: {exc}") from exc
        try:
            pages = [page.get_text("text") for page in doc]
            metadata = doc.metadata or {}
            return PdfDocument(
                text="\n".join(pages).strip(),
                page_count=doc.page_count,
                title=(metadata.get("title") or "").strip() or None,
                author=(metadata.get("author") or "").strip() or None,
            )
        finally:
            doc.close()
