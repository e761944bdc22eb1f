"""Local filesystem blob storage served under /uploads."""

import asyncio
import logging
import uuid
from pathlib import Path

from coliving_platform.app.config import get_settings

logger = logging.getLogger(__name__)

PUBLIC_PREFIX = "/uploads"


def _safe(part: str) -> str:
    return part.replace("/", "_").replace("\\", "_").replace("..", "_")


class LocalBlobStorage:
    """Writes blobs to ``<root>/<prefix>/<name>`` and returns their public URL."""

    def __init__(self, root: str | Path | None = None):
        self.root = Path(root or get_settings().uploads_dir)

    def unique_name(self, filename: str | None, suffix: str | None = None) -> str:
        name = _safe(filename or "photo.jpg")
        if suffix:
            stem, dot, ext = name.rpartition(".")
            name = f"{stem}_{suffix}.{ext}" if dot else f"{name}_{suffix}"
        return f"{uuid.uuid4().hex[:8]}_{name}"

    def _path(self, prefix: str, name: str) -> Path:
        parts = [_safe(p) for p in prefix.strip("/").split("/") if p]
        return self.root.joinpath(*parts, _safe(name))

    def url_for(self, prefix: str, name: str) -> str:
        parts = [_safe(p) for p in prefix.strip("/").split("/") if p]
        return "/".join([PUBLIC_PREFIX, *parts, _safe(name)])

    async def put(self, prefix: str, name: str, data: bytes) -> str:
        path = self._path(prefix, name)

        def _write():
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)

        await asyncio.to_thread(_write)
        logger.info("Stored %d bytes at %s", len(data), path)
        return self.url_for(prefix, name)

    async def delete(self, url: str) -> bool:
        """Remove a blob by its public URL. False when it does not exist."""
        if not url.startswith(PUBLIC_PREFIX + "/"):
            return False
        relative = url[len(PUBLIC_PREFIX) + 1:]
        path = self.root.joinpath(*[_safe(p) for p in relative.split("/") if p])
        if not path.is_file():
            return False
        await asyncio.to_thread(path.unlink)
        return True
