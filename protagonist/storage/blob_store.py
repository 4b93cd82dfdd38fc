import asyncio
import logging
import mimetypes
import re
import uuid
from datetime import datetime
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

_UNSAFE = re.compile(r"[^a-zA-Z0-9_.-]+")


def _write(path: Path, data: bytes):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)


class BlobStore:
    """Somewhere generated images end up with a stable, owned URL."""

    async def save(self, data: bytes, content_type: str = "image/png", key_hint: Optional[str] = None) -> str:
        raise NotImplementedError


class LocalBlobStore(BlobStore):
    """
    Writes blobs under a media directory served by the API.

    Keys look like ``generated/20260101/<hint>-<uuid>.png``; the returned URL is
    ``base_url`` joined with the key.
    """

    def __init__(self, root, base_url: str):
        self.root = Path(root)
        self.base_url = base_url.rstrip("/")

    def _key(self, content_type: str, key_hint: Optional[str]) -> str:
        extension = mimetypes.guess_extension(content_type or "") or ".png"
        if extension == ".jpe":
            extension = ".jpg"
        prefix = _UNSAFE.sub("-", key_hint).strip("-") if key_hint else "image"
        return f"generated/{datetime.now():%Y%m%d}/{prefix}-{uuid.uuid4().hex[:12]}{extension}"

    async def save(self, data: bytes, content_type: str = "image/png", key_hint: Optional[str] = None) -> str:
        if not data:
            raise ValueError("refusing to store an empty blob")
        key = self._key(content_type, key_hint)
        await asyncio.to_thread(_write, self.root / key, data)
        logger.info("Stored %d bytes at %s", len(data), key)
        return f"{self.base_url}/{key}"
