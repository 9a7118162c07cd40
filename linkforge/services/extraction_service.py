"""
Source-specific content extraction.

`ExtractionService.extract` detects the source type of a URL and runs the
matching strategy. Each strategy owns an ordered fallback chain so that one
provider outage degrades the result instead of failing the submission. When
every attempt fails, the raised ExtractionError names each attempt and its
error, and is marked permanent only when every attempt failed permanently.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Awaitable, Callable
from urllib.parse import parse_qs, urlparse

from linkforge.config import settings
from linkforge.services.errors import ErrorKind, classify_error
from linkforge.services.pdf_service import PdfService
from linkforge.services.reader_service import ReaderService
from linkforge.services.tiktok_service import TikTokService
from linkforge.services.transcription_service import TranscriptionService
from linkforge.services.youtube_service import YouTubeService

logger = logging.getLogger(__name__)

MIN_TEXT_CHARS = 50
MIN_SPOKEN_CHARS = 20

_YOUTUBE_ID = re.compile(r"^[A-Za-z0-9_-]{6,}$")
_YOUTUBE_PATH_PREFIXES = ("shorts", "embed", "live", "v")
_LINKEDIN_AUTHWALL_MARKERS = ("authwall", "join linkedin", "sign in to view", "sign in to see")
_ARCHIVE_URL = "https://web.archive.org/web/2/"


class ExtractionError(Exception):
    """
    Extraction of a URL failed. Without an explicit `kind` the classifier
    reads the message.
    """

    def __init__(self, message: str, kind: ErrorKind | None = None) -> None:
        super().__init__(message)
        self.kind = kind


@dataclass
class ExtractedContent:
    url: str
    source_type: str
    raw_text: str
    title: str | None = None
    author: str | None = None
    metadata: dict = field(default_factory=dict)


def detect_source_type(url: str) -> str:
    parsed = urlparse(url)
    hostname = (parsed.hostname or "").lower()
    path = parsed.path.lower()

    if "tiktok.com" in hostname:
        return "tiktok"
    if hostname in ("twitter.com", "x.com") or hostname.endswith((".twitter.com", ".x.com")):
        return "tweet"
    if "youtube.com" in hostname or "youtu.be" in hostname:
        return "youtube"
    if "linkedin.com" in hostname:
        return "linkedin"
    if path.endswith(".pdf"):
        return "pdf"
    return "article"


def extract_youtube_video_id(url: str) -> str | None:
    """Video id from watch?v=, /shorts/, /embed/, /live/ and youtu.be/ URL forms."""
    parsed = urlparse(url)
    hostname = (parsed.hostname or "").lower()
    segments = [s for s in parsed.path.split("/") if s]

    candidate: str | None = None
    if hostname.endswith("youtu.be"):
        candidate = segments[0] if segments else None
    elif segments and segments[0] == "watch":
        candidate = (parse_qs(parsed.query).get("v") or [None])[0]
    elif len(segments) >= 2 and segments[0] in _YOUTUBE_PATH_PREFIXES:
        candidate = segments[1]

    if candidate and _YOUTUBE_ID.match(candidate):
        return candidate
    return None


def _require_text(text: str, minimum: int, what: str) -> str:
    text = (text or "").strip()
    if len(text) < minimum:
        raise ExtractionError(f"{what} has insufficient content ({len(text)} chars)")
    return text


class ExtractionService:
    def __init__(
        self,
        reader: ReaderService | None = None,
        tiktok: TikTokService | None = None,
        transcription: TranscriptionService | None = None,
        youtube: YouTubeService | None = None,
        pdf: PdfService | None = None,
    ) -> None:
        self._reader = reader or ReaderService()
        self._tiktok = tiktok or TikTokService()
        self._transcription = transcription or TranscriptionService()
        self._youtube = youtube or YouTubeService()
        self._pdf = pdf or PdfService()
        self._strategies: dict[str, Callable[[str], Awaitable[ExtractedContent]]] = {
            "article": self._extract_article,
            "tiktok": self._extract_tiktok,
            "tweet": self._extract_tweet,
            "youtube": self._extract_youtube,
            "pdf": self._extract_pdf,
            "linkedin": self._extract_linkedin,
        }

    async def extract(self, url: str) -> ExtractedContent:
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https") or not parsed.hostname:
            raise ExtractionError(f"Invalid URL: {url}")
        source_type = detect_source_type(url)
        logger.info("[extract] start | type=%s | url=%s", source_type, url)
        content = await self._strategies[source_type](url)
        logger.info(
            "[extract] done | type=%s | url=%s | chars=%d", source_type, url, len(content.raw_text)
        )
        return content

    async def _first_success(
        self, label: str, attempts: list[tuple[str, Callable[[], Awaitable[str]]]]
    ) -> tuple[str, str]:
        """
        Run attempts in order; return (attempt_name, text) of the first that succeeds.

        The chain is permanent only when every attempt failed permanently; one
        provider outage keeps the submission retryable.
        """
        errors: list[str] = []
        kinds: list[ErrorKind] = []
        for name, attempt in attempts:
            try:
                return name, await attempt()
            except Exception as exc:
                logger.info("[extract] %s attempt failed | via=%s | error=%s", label, name, exc)
                errors.append(f"{name}: {exc}")
                kinds.append(classify_error(exc))
        kind: ErrorKind = "permanent" if all(k == "permanent" for k in kinds) else "transient"
        raise ExtractionError(f"{label} extraction failed ({'; '.join(errors)})", kind)

    async def _read(self, url: str, what: str) -> str:
        return _require_text(await self._reader.fetch_text(url), MIN_TEXT_CHARS, what)

    # --- strategies -------------------------------------------------------

    async def _extract_article(self, url: str) -> ExtractedContent:
        text = await self._read(url, "Article")
        return ExtractedContent(url=url, source_type="article", raw_text=text)

    async def _extract_tiktok(self, url: str) -> ExtractedContent:
        async def transcribe() -> str:
            media_url = await self._tiktok.resolve_media_url(url)
            transcript = (await self._transcription.transcribe(media_url)).strip()
            if len(transcript) <= MIN_SPOKEN_CHARS:
                raise ExtractionError("TikTok video has no transcript (no spoken content)")
            return transcript

        via, text = await self._first_success(
            "TikTok",
            [
                ("transcription", transcribe),
                ("reader", lambda: self._read(url, "TikTok page")),
            ],
        )
        return ExtractedContent(url=url, source_type="tiktok", raw_text=text, metadata={"via": via})

    async def _extract_tweet(self, url: str) -> ExtractedContent:
        parsed = urlparse(url)
        canonical = f"https://x.com{parsed.path}"
        mirror = f"https://{settings.TWEET_MIRROR_HOST}{parsed.path}"
        via, text = await self._first_success(
            "Tweet",
            [
                ("reader", lambda: self._read(canonical, "Tweet")),
                ("mirror", lambda: self._read(mirror, "Tweet mirror")),
            ],
        )
        return ExtractedContent(url=url, source_type="tweet", raw_text=text, metadata={"via": via})

    async def _extract_youtube(self, url: str) -> ExtractedContent:
        video_id = extract_youtube_video_id(url)
        if not video_id:
            raise ExtractionError(f"Invalid URL: no YouTube video id in {url}")

        async def transcript() -> str:
            return _require_text(
                await self._youtube.get_transcript(video_id), MIN_SPOKEN_CHARS, "YouTube transcript"
            )

        watch_url = f"https://www.youtube.com/watch?v={video_id}"
        via, text = await self._first_success(
            "YouTube",
            [
                ("transcript", transcript),
                ("reader", lambda: self._read(watch_url, "YouTube page")),
            ],
        )
        return ExtractedContent(
            url=url,
            source_type="youtube",
            raw_text=text,
            metadata={"video_id": video_id, "via": via},
        )

    async def _extract_pdf(self, url: str) -> ExtractedContent:
        doc = self._pdf.parse(await self._pdf.download(url))
        if len(doc.text) < MIN_TEXT_CHARS:
            raise ExtractionError(f"PDF has insufficient extractable text ({len(doc.text)} chars)")

        header = []
        if doc.title:
            header.append(f"Title: {doc.title}")
        if doc.author:
            header.append(f"Author: {doc.author}")
        header.append(f"Pages: {doc.page_count}")
        return ExtractedContent(
            url=url,
            source_type="pdf",
            raw_text="\n".join(header) + "\n\n" + doc.text,
            title=doc.title,
            author=doc.author,
            metadata={"page_count": doc.page_count},
        )

    async def _extract_linkedin(self, url: str) -> ExtractedContent:
        async def read_unwalled(target: str) -> str:
            text = await self._read(target, "LinkedIn page")
            lowered = text.lower()
            if any(marker in lowered for marker in _LINKEDIN_AUTHWALL_MARKERS):
                raise ExtractionError("LinkedIn blocked automated access (login wall)")
            return text

        attempts = [("reader", lambda: read_unwalled(url))]
        if "/pulse/" in urlparse(url).path:
            attempts.append(("archive", lambda: read_unwalled(f"{_ARCHIVE_URL}{url}")))

        via, text = await self._first_success("LinkedIn", attempts)
        return ExtractedContent(url=url, source_type="linkedin", raw_text=text, metadata={"via": via})
