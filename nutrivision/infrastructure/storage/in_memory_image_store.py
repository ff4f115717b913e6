"""In-memory image store.

Keeps blobs in a dict and hands out addresses under a fixed base URL.
Used for local runs and tests.
"""

from typing import Dict, Optional

import structlog

from nutrivision.infrastructure.storage.naming import generate_object_path

logger = structlog.get_logger(__name__)


class InMemoryImageStore:
    """
    Dictionary-backed implementation of IImageStore.

    Example:
        >>> store = InMemoryImageStore("https://img.local")
        >>> address = await store.store("user123", "a.jpg", b"...", "image/jpeg")
        >>> store.get(address)
        b'...'
    """

    def __init__(self, public_base_url: str = "memory://images") -> None:
        self.public_base_url = public_base_url.rstrip("/")
        self._blobs: Dict[str, tuple[bytes, str]] = {}

    async def store(
        self,
        user_id: str,
        filename: str,
        data: bytes,
        content_type: str,
    ) -> str:
        path = generate_object_path(user_id, filename)
        address = f"{self.public_base_url}/{path}"
        self._blobs[address] = (bytes(data), content_type)
        logger.info("Image stored", path=path, size=len(data))
        return address

    def get(self, address: str) -> Optional[bytes]:
        entry = self._blobs.get(address)
        return entry[0] if entry else None

    def content_type(self, address: str) -> Optional[str]:
        entry = self._blobs.get(address)
        return entry[1] if entry else None

    def __len__(self) -> int:
        return len(self._blobs)

    def clear(self) -> None:
        self._blobs.clear()
