"""
Object storage for uploaded recordings.

The core only needs a durable URL back and progress reports along the way.
"""

import asyncio
import logging
import re
import uuid
from pathlib import Path
from typing import Callable, Optional, Protocol
from urllib.parse import urlparse
from urllib.request import url2pathname

logger = logging.getLogger("dionysus.jobs.storage")

ProgressCallback = Callable[[float], None]

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


class ObjectStorage(Protocol):
    async def upload(
        self,
        name: str,
        data: bytes,
        content_type: str,
        on_progress: Optional[ProgressCallback] = None,
    ) -> str:
        ...

    async def read(self, url: str) -> bytes:
        ...

    def owns(self, url: str) -> bool:
        ...


class LocalObjectStorage:
    """Stores objects under a directory and hands back file:// URLs."""

    def __init__(self, root_dir: str, chunk_size: int = 256 * 1024):
        self._root = Path(root_dir).expanduser()
        self._chunk_size = chunk_size

    async def upload(
        self,
        name: str,
        data: bytes,
        content_type: str,
        on_progress: Optional[ProgressCallback] = None,
    ) -> str:
        """
        Write ``data`` in chunks, reporting progress as a percentage.

        Returns:
            file:// URL of the stored object
        """
        self._root.mkdir(parents=True, exist_ok=True)
        safe_name = _UNSAFE_CHARS.sub("_", Path(name).name) or "upload"
        path = self._root / f"{uuid.uuid4().hex}-{safe_name}"

        total = len(data)
        with open(path, "wb") as f:
            if total == 0 and on_progress:
                on_progress(100.0)
            for offset in range(0, total, self._chunk_size):
                chunk = data[offset : offset + self._chunk_size]
                await asyncio.to_thread(f.write, chunk)
                if on_progress:
                    on_progress(min(100.0, (offset + len(chunk)) * 100.0 / total))

        logger.info("Stored %s (%d bytes, %s)", path.name, total, content_type)
        return path.resolve().as_uri()

    def owns(self, url: str) -> bool:
        """True for file:// URLs that point inside this storage's root."""
        return self._local_path(url) is not None

    async def read(self, url: str) -> bytes:
        path = self._local_path(url)
        if path is None:
            raise ValueError(f"Not an object in {self._root}: {url}")
        return await asyncio.to_thread(path.read_bytes)

    def _local_path(self, url: str) -> Optional[Path]:
        parsed = urlparse(url or "")
        if parsed.scheme != "file":
            return None
        path = Path(url2pathname(parsed.path)).resolve()
        if not path.is_relative_to(self._root.resolve()):
            return None
        return path
