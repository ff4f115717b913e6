"""Supabase Storage image store.

The supabase SDK is synchronous, so uploads run in the default executor.
"""

import asyncio
from typing import Any, Optional

import structlog
from supabase import Client, create_client

from nutrivision.config import ImageStoreConfig
from nutrivision.domain.shared.errors import StoreError
from nutrivision.infrastructure.storage.naming import generate_object_path

logger = structlog.get_logger(__name__)


class SupabaseImageStore:
    """
    Supabase Storage implementation of IImageStore.

    Objects are organized by user folder and returned as public URLs.

    Example:
        >>> store = SupabaseImageStore.from_config(config)
        >>> url = await store.store("user123", "lunch.jpg", data, "image/jpeg")
    """

    def __init__(self, client: Client, bucket: str) -> None:
        self._client = client
        self.bucket = bucket

    @classmethod
    def from_config(cls, config: ImageStoreConfig) -> "SupabaseImageStore":
        if not config.supabase_url or not config.supabase_key:
            raise ValueError("SUPABASE_URL and SUPABASE_KEY must be set")
        return cls(create_client(config.supabase_url, config.supabase_key), config.bucket)

    def _upload(self, path: str, data: bytes, content_type: str) -> str:
        storage: Any = self._client.storage.from_(self.bucket)
        storage.upload(
            path=path,
            file=data,
            file_options={"content-type": content_type},
        )
        public_url: str = storage.get_public_url(path)
        return public_url

    async def store(
        self,
        user_id: str,
        filename: str,
        data: bytes,
        content_type: str,
    ) -> str:
        """Upload an image and return its public URL.

        Raises:
            StoreError: transport, for any SDK or network failure
        """
        path = generate_object_path(user_id, filename)
        loop = asyncio.get_running_loop()
        try:
            public_url: Optional[str] = await loop.run_in_executor(
                None, self._upload, path, data, content_type
            )
        except Exception as e:
            logger.error("Image upload failed", path=path, error=str(e))
            raise StoreError.transport(f"Image upload failed: {e}") from e

        if not public_url:
            raise StoreError.transport(f"No public URL returned for {path}")

        logger.info("Image uploaded", path=path, size=len(data), bucket=self.bucket)
        return public_url
