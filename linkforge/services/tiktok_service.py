import logging

import httpx

from linkforge.config import settings

logger = logging.getLogger(__name__)


class TikTokService:
    """Resolves a TikTok share URL to a directly playable media URL via the tikwm metadata API."""

    def __init__(self, api_url: str | None = None, timeout: float | None = None) -> None:
        self._api_url = api_url or settings.TIKWM_API_URL
        self._timeout = timeout or settings.EXTRACTION_TIMEOUT

    async def resolve_media_url(self, url: str) -> str:
        async with httpx.AsyncClient(timeout=self._timeout, follow_redirects=True) as client:
            response = await client.get(self._api_url, params={"url": url, "hd": "0"})
        if response.status_code != 200:
            raise RuntimeError(f"TikTok metadata lookup failed with status {response.status_code}")

        payload = response.json()
        data = payload.get("data") or {}
        if payload.get("code") != 0 or not data:
            # tikwm answers 200 with a non-zero code for removed or private videos.
            raise RuntimeError(f"TikTok video is private or unavailable: {payload.get('msg', 'no data')}")

        media_url = data.get("play") or data.get("wmplay") or data.get("music")
        if not media_url:
            raise RuntimeError("TikTok metadata lookup returned no playable media URL")
        logger.debug("[tiktok] resolved media | url=%s", url)
        return media_url
