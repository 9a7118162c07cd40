"""
Narrated audio for a tutorial.

LLM audio script -> sanitize -> chunk -> one TTS request per chunk ->
concatenate MP3 -> upload. Every failure returns None so a tutorial always
publishes, with or without audio.
"""

import asyncio
import logging
import time

import httpx

from linkforge.config import settings
from linkforge.services.llm_service import LLMService
from linkforge.services.text_processor import chunk, sanitize
from linkforge.storage.media_storage import AbstractMediaStorage

logger = logging.getLogger(__name__)

DEEPGRAM_SPEAK_URL = "https://api.deepgram.com/v1/speak"

MIN_SCRIPT_CHARS = 50


def strip_id3_header(data: bytes) -> bytes:
    """
    Drop a leading ID3v2 tag so MP3 chunks concatenate into one valid stream.

    The 10-byte header is "ID3", version (2), flags (1) and a synchsafe size
    (4 bytes of 7 bits each) that excludes the header itself.
    """
    if len(data) >= 10 and data[:3] == b"ID3":
        size = (
            (data[6] & 0x7F) << 21
            | (data[7] & 0x7F) << 14
            | (data[8] & 0x7F) << 7
            | (data[9] & 0x7F)
        )
        end = 10 + size
        if end <= len(data):
            return data[end:]
    return data


class SpeechSynthesizer:
    """Deepgram text-to-speech over HTTP."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        encoding: str | None = None,
        sample_rate: int | None = None,
        timeout: float = 30.0,
    ) -> None:
        self._api_key = api_key if api_key is not None else settings.DEEPGRAM_API_KEY
        self.model = model or settings.TTS_MODEL
        self.encoding = encoding or settings.TTS_ENCODING
        self.sample_rate = sample_rate if sample_rate is not None else settings.TTS_SAMPLE_RATE
        self._timeout = timeout

    async def synthesize(self, text: str) -> bytes:
        if not self._api_key:
            raise RuntimeError("Speech synthesis unavailable: DEEPGRAM_API_KEY is not set")
        params: dict[str, str | int] = {"model": self.model, "encoding": self.encoding}
        if self.sample_rate:
            params["sample_rate"] = self.sample_rate

        chunks: list[bytes] = []
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            async with client.stream(
                "POST",
                DEEPGRAM_SPEAK_URL,
                params=params,
                headers={"Authorization": f"Token {self._api_key}"},
                json={"text": text},
            ) as response:
                if response.status_code != 200:
                    await response.aread()
                    raise RuntimeError(
                        f"Speech synthesis failed with status {response.status_code}: {response.text[:200]}"
                    )
                async for part in response.aiter_bytes():
                    chunks.append(part)
        return b"".join(chunks)


class AudioService:
    def __init__(
        self,
        llm: LLMService,
        storage: AbstractMediaStorage,
        synthesizer: SpeechSynthesizer | None = None,
        enabled: bool | None = None,
        max_chars: int | None = None,
        timeout_seconds: float | None = None,
    ) -> None:
        self._llm = llm
        self._storage = storage
        self._synthesizer = synthesizer or SpeechSynthesizer()
        self._enabled = settings.AUDIO_ENABLED if enabled is None else enabled
        self._max_chars = max_chars or settings.TTS_MAX_CHARS
        self._timeout = timeout_seconds or settings.AUDIO_TIMEOUT_SECONDS

    async def generate(self, body: str, slug: str) -> str | None:
        """Public URL of the narrated tutorial, or None. Never raises."""
        if not self._enabled:
            logger.info("[audio] skip: AUDIO_ENABLED is not set")
            return None
        try:
            return await asyncio.wait_for(self._run(body, slug), timeout=self._timeout)
        except asyncio.TimeoutError:
            logger.error("[audio] timed out | slug=%s | timeout=%ss", slug, self._timeout)
        except Exception:
            logger.exception("[audio] pipeline failed | slug=%s", slug)
        return None

    async def _run(self, body: str, slug: str) -> str | None:
        raw_script = await self._llm.generate_audio_script(body)
        if not raw_script:
            logger.error("[audio] no audio script generated | slug=%s", slug)
            return None

        script = sanitize(raw_script)
        if len(script) < MIN_SCRIPT_CHARS:
            logger.info("[audio] skip: sanitized script too short | slug=%s | chars=%d", slug, len(script))
            return None

        parts = chunk(script, self._max_chars)
        buffers: list[bytes] = []
        for index, text in enumerate(parts):
            audio = await self._synthesizer.synthesize(text)
            buffers.append(strip_id3_header(audio) if index > 0 else audio)
        audio = b"".join(buffers)

        path = f"tutorials/{slug}-{int(time.time() * 1000)}.mp3"
        url = await self._storage.upload("audio", path, audio, "audio/mpeg")
        logger.info("[audio] success | slug=%s | chunks=%d | bytes=%d | url=%s", slug, len(parts), len(audio), url)
        return url
