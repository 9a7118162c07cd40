import asyncio
import logging

from youtube_transcript_api import YouTubeTranscriptApi

logger = logging.getLogger(__name__)

# Error class names vary across youtube-transcript-api versions; catch by name to be safe.
_NO_TRANSCRIPT_ERRORS = ("NoTranscriptFound", "TranscriptsDisabled", "NoTranscriptAvailable")
_UNAVAILABLE_ERRORS = ("VideoUnavailable", "VideoUnplayable", "AgeRestricted", "InvalidVideoId")


def _is_no_transcript_error(exc: Exception) -> bool:
    return type(exc).__name__ in _NO_TRANSCRIPT_ERRORS


def _is_unavailable_error(exc: Exception) -> bool:
    return type(exc).__name__ in _UNAVAILABLE_ERRORS


class YouTubeService:
    def fetch_transcript(self, video_id: str) -> str:
        """
        Fetch transcript text for a YouTube video.
        Tries English first, then falls back to any available language.
        Returns the segments joined as plain text.
        """
        api = YouTubeTranscriptApi()
        try:
            transcript = api.fetch(video_id, languages=["en"])
            return " ".join(seg.text for seg in transcript)
        except Exception as first_exc:
            if not _is_no_transcript_error(first_exc):
                raise
            logger.debug("[youtube] no English transcript | video_id=%s | trying any language", video_id)

        available = list(api.list(video_id))
        if not available:
            raise RuntimeError(f"Video {video_id} has no transcript available")
        transcript = available[0].fetch()
        return " ".join(seg.text for seg in transcript)

    async def get_transcript(self, video_id: str) -> str:
        """
        Async wrapper that rewords library errors so the pipeline classifier can
        tell 'no transcript' and 'private or unavailable' apart from network faults.
        """
        try:
            transcript = await asyncio.to_thread(self.fetch_transcript, video_id)
        except Exception as exc:
            if _is_no_transcript_error(exc):
                raise RuntimeError(f"Video {video_id} has no transcript available") from exc
            if _is_unavailable_error(exc):
                raise RuntimeError(f"Video {video_id} is private or unavailable") from exc
            raise
        transcript = transcript.strip()
        logger.info(
            "[youtube] transcript fetched | video_id=%s | words=%d", video_id, len(transcript.split())
        )
        return transcript
