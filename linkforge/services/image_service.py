import base64
import logging
import time

import httpx

from linkforge.config import settings
from linkforge.storage.media_storage import AbstractMediaStorage

logger = logging.getLogger(__name__)

TOGETHER_IMAGES_URL = "https://api.together.xyz/v1/images/generations"

_PROMPT_TEMPLATE = (
    'Infographic-style illustration for an AI tutorial: "{title}". Visual mind map showing the '
    "relationship between: {topics}. Key concepts visualized: {summary}. Style: clean flat-design "
    "infographic with connected nodes, icons representing {topics}, flowchart arrows and labeled "
    "diagram sections. Color palette: teal, amber gold, dark navy background. NO readable text or "
    "words; use abstract icons, shapes and connection lines instead of labels."
)


class ImageService:
    """Hero image generation (Together AI FLUX) uploaded to the 'images' bucket."""

    def __init__(
        self,
        storage: AbstractMediaStorage,
        api_key: str | None = None,
        model: str | None = None,
        timeout: float = 45.0,
    ) -> None:
        self._storage = storage
        self._api_key = api_key if api_key is not None else settings.TOGETHER_API_KEY
        self._model = model or settings.IMAGE_MODEL
        self._timeout = timeout

    def build_prompt(self, title: str, topics: list[str], summary: str) -> str:
        topic_list = ", ".join(topics[:4]) or "AI workflows"
        return _PROMPT_TEMPLATE.format(title=title, topics=topic_list, summary=summary[:120])

    async def generate(self, title: str, topics: list[str], summary: str, slug: str) -> str | None:
        """Return the public URL of a generated image, or None when generation is unavailable."""
        if not self._api_key:
            logger.info("[image] TOGETHER_API_KEY not set, skipping image generation")
            return None

        async with httpx.AsyncClient(timeout=self._timeout) as client:
            response = await client.post(
                TOGETHER_IMAGES_URL,
                headers={"Authorization": f"Bearer {self._api_key}"},
                json={
                    "model": self._model,
                    "prompt": self.build_prompt(title, topics, summary),
                    "width": 1344,
                    "height": 768,
                    "steps": 20,
                    "n": 1,
                    "response_format": "b64_json",
                },
            )
        if response.status_code != 200:
            logger.error("[image] generation failed | status=%d | body=%s", response.status_code, response.text[:200])
            return None

        data = response.json().get("data") or []
        b64 = data[0].get("b64_json") if data else None
        if not b64:
            logger.error("[image] no image data in response")
            return None

        path = f"tutorials/{slug}-{int(time.time() * 1000)}.png"
        return await self._storage.upload("images", path, base64.b64decode(b64), "image/png")
