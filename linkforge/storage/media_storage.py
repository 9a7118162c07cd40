import asyncio
import logging
from abc import ABC, abstractmethod
from pathlib import Path

import httpx

from linkforge.config import Settings

logger = logging.getLogger(__name__)


class MediaUploadError(Exception):
    pass


class AbstractMediaStorage(ABC):
    @abstractmethod
    async def upload(self, bucket: str, path: str, data: bytes, content_type: str) -> str:
        """Store the bytes and return their public URL."""

    @abstractmethod
    def get_public_url(self, bucket: str, path: str) -> str:
        """Public URL for an object, whether or not it exists yet."""


class LocalMediaStorage(AbstractMediaStorage):
    """Writes objects under <root>/<bucket>/<path>; the app serves <root> at base_url."""

    def __init__(self, root: str, base_url: str) -> None:
        self._root = Path(root)
        self._base_url = base_url.rstrip("/")

    async def upload(self, bucket: str, path: str, data: bytes, content_type: str) -> str:
        target = (self._root / bucket / path).resolve()
        if self._root.resolve() not in target.parents:
            raise MediaUploadError(f"Refusing to write outside media root: {bucket}/{path}")
        await asyncio.to_thread(self._write, target, data)
        logger.info("[media] stored | path=%s | bytes=%d | type=%s", target, len(data), content_type)
        return self.get_public_url(bucket, path)

    @staticmethod
    def _write(target: Path, data: bytes) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)

    def get_public_url(self, bucket: str, path: str) -> str:
        return f"{self._base_url}/{bucket}/{path}"


class SupabaseMediaStorage(AbstractMediaStorage):
    """Supabase Storage over its REST API."""

    def __init__(self, supabase_url: str, service_key: str, timeout: float = 30.0) -> None:
        self._url = supabase_url.rstrip("/")
        self._key = service_key
        self._timeout = timeout

    async def upload(self, bucket: str, path: str, data: bytes, content_type: str) -> str:
        headers = {
            "apikey": self._key,
            "Authorization": f"Bearer {self._key}",
            "Content-Type": content_type,
            "x-upsert": "true",
        }
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            response = await client.post(
                f"{self._url}/storage/v1/object/{bucket}/{path}", headers=headers, content=data
            )
        if not response.is_success:
            raise MediaUploadError(
                f"Storage upload failed with status {response.status_code}: {response.text[:200]}"
            )
        logger.info("[media] uploaded | bucket=%s | path=%s | bytes=%d", bucket, path, len(data))
        return self.get_public_url(bucket, path)

    def get_public_url(self, bucket: str, path: str) -> str:
        return f"{self._url}/storage/v1/object/public/{bucket}/{path}"


def create_media_storage(config: Settings) -> AbstractMediaStorage:
    if config.MEDIA_BACKEND == "supabase":
        if not config.SUPABASE_URL or not config.SUPABASE_SERVICE_ROLE_KEY:
            raise ValueError("MEDIA_BACKEND=supabase requires SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY")
        return SupabaseMediaStorage(config.SUPABASE_URL, config.SUPABASE_SERVICE_ROLE_KEY)
    if config.MEDIA_BACKEND == "local":
        return LocalMediaStorage(config.MEDIA_ROOT, config.MEDIA_BASE_URL)
    raise ValueError(f"Unknown MEDIA_BACKEND: {config.MEDIA_BACKEND!r}")
