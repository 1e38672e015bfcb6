import asyncio
import logging
import os

from app.config import settings

logger = logging.getLogger(__name__)


class LocalBlobStore:
    """Blob store on the local filesystem, served under ``url_prefix``."""

    def __init__(self, root: str, url_prefix: str):
        self.root = root
        self.url_prefix = url_prefix.rstrip("/")

    def _full_path(self, path: str) -> str:
        full = os.path.abspath(os.path.join(self.root, path))
        if not full.startswith(os.path.abspath(self.root) + os.sep):
            raise ValueError(f"Blob path escapes storage root: {path}")
        return full

    def _write(self, full_path: str, data: bytes) -> None:
        os.makedirs(os.path.dirname(full_path), exist_ok=True)
        with open(full_path, "wb") as f:
            f.write(data)

    async def put(self, path: str, data: bytes) -> str:
        await asyncio.to_thread(self._write, self._full_path(path), data)
        return f"{self.url_prefix}/{path}"

    async def delete(self, path: str) -> None:
        full_path = self._full_path(path)
        if os.path.exists(full_path):
            await asyncio.to_thread(os.remove, full_path)

    def read(self, path: str) -> bytes | None:
        full_path = self._full_path(path)
        if not os.path.exists(full_path):
            logger.warning("Blob not found: %s", path)
            return None
        with open(full_path, "rb") as f:
            return f.read()


def get_blob_store() -> LocalBlobStore:
    return LocalBlobStore(settings.storage_dir, settings.storage_url_prefix)
