import logging

import httpx

from linkforge.config import settings

logger = logging.getLogger(__name__)

DEEPGRAM_LISTEN_URL = "https://api.deepgram.com/v1/listen"


class TranscriptionService:
    """Speech-to-text over a remote media URL (Deepgram pre-recorded API)."""

    def __init__(self, api_key: str | None = None, model: str | None = None, timeout: float = 60.0) -> None:
        self._api_key = api_key if api_key is not None else settings.DEEPGRAM_API_KEY
        self._model = model or settings.TRANSCRIPTION_MODEL
        self._timeout = timeout

    async def transcribe(self, media_url: str) -> str:
        if not self._api_key:
            raise RuntimeError("Transcription unavailable: DEEPGRAM_API_KEY is not set")

        async with httpx.AsyncClient(timeout=self._timeout) as client:
            response = await client.post(
                DEEPGRAM_LISTEN_URL,
                params={"model": self._model, "smart_format": "true"},
                headers={"Authorization": f"Token {self._api_key}"},
                json={"url": media_url},
            )
        if response.status_code != 200:
            raise RuntimeError(f"Transcription failed with status {response.status_code}")

        channels = response.json().get("results", {}).get("channels", [])
        if not channels or not channels[0].get("alternatives"):
            return ""
        transcript = channels[0]["alternatives"][0].get("transcript", "").strip()
        logger.debug("[transcribe] done | chars=%d", len(transcript))
        return transcript
