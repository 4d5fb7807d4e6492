"""
Chunked file streaming for the static file server.

A file is opened and sized before any response headers go out, so open
failures can still become a 500. The body is then read in fixed-size chunks
and the handle is closed on every exit path: completion, read error, or the
client going away.
"""

import logging
import os
from typing import AsyncIterator

import anyio

from .errors import StreamError

logger = logging.getLogger(__name__)

# 64KB keeps memory flat per download while staying efficient over the tunnel
DEFAULT_CHUNK_SIZE = 64 * 1024


class FileStream:
    """An open file exposed as an async iterator of byte chunks."""

    def __init__(self, handle, size: int, path: str, chunk_size: int = DEFAULT_CHUNK_SIZE):
        self._handle = handle
        self.size = size
        self.path = path
        self.chunk_size = chunk_size
        self._closed = False

    @classmethod
    async def open(cls, path: str, chunk_size: int = DEFAULT_CHUNK_SIZE) -> "FileStream":
        """Open `path` for reading. OSError propagates to the caller."""
        handle = await anyio.open_file(path, "rb")
        try:
            size = os.fstat(handle.wrapped.fileno()).st_size
        except OSError:
            await handle.aclose()
            raise
        return cls(handle, size, path, chunk_size)

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._handle.aclose()

    @property
    def closed(self) -> bool:
        return self._closed

    async def chunks(self) -> AsyncIterator[bytes]:
        sent = 0
        try:
            while True:
                try:
                    chunk = await self._handle.read(self.chunk_size)
                except OSError as e:
                    logger.error(f"Error reading file {self.path} after {sent} bytes: {e}")
                    raise StreamError(f"Error reading file {self.path}: {e}") from e
                if not chunk:
                    break
                sent += len(chunk)
                yield chunk
        finally:
            await self.aclose()

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self.chunks()
