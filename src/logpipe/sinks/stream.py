"""
Newline-delimited JSON sinks: any text stream, or a file appended to
asynchronously through aiofiles.
"""

import asyncio
from pathlib import Path
from typing import Callable, Optional, TextIO, Union

import structlog
from aiofiles import open as aio_open

from ..core.levels import LevelLike
from ..models.record import LogRecord
from .base import record_to_line

logger = structlog.get_logger(__name__)

Serializer = Callable[[LogRecord], str]


class JsonStreamSink:
    """Writes ``serializer(record)`` to a text stream."""

    def __init__(
        self,
        stream: TextIO,
        name: str = "json-stream",
        level: Optional[LevelLike] = None,
        serializer: Optional[Serializer] = None,
        close_stream: bool = False,
    ) -> None:
        self.stream = stream
        self.name = name
        self.level = level
        self.serializer = serializer or record_to_line
        self.close_stream = close_stream

    def deliver(self, record: LogRecord) -> None:
        self.stream.write(self.serializer(record))

    def flush(self) -> None:
        flush = getattr(self.stream, "flush", None)
        if callable(flush):
            flush()

    def close(self) -> None:
        self.flush()
        if self.close_stream:
            self.stream.close()


class FileSink:
    """
    Appends NDJSON lines to ``path``.

    Each write opens the file in append mode and closes it again, so the
    sink holds no handle tied to a particular event loop and works the
    same for async callers and for sync callers whose writes run in place.
    Writes on one loop are serialised by a lock to keep delivery order.
    """

    def __init__(
        self,
        path: Union[str, Path],
        name: str = "file",
        level: Optional[LevelLike] = None,
        serializer: Optional[Serializer] = None,
    ) -> None:
        self.path = Path(path)
        self.name = name
        self.level = level
        self.serializer = serializer or record_to_line
        self.writes = 0
        self._lock: Optional[asyncio.Lock] = None
        self._lock_loop: Optional[asyncio.AbstractEventLoop] = None

    def _get_lock(self) -> asyncio.Lock:
        loop = asyncio.get_running_loop()
        if self._lock is None or self._lock_loop is not loop:
            self._lock = asyncio.Lock()
            self._lock_loop = loop
        return self._lock

    async def deliver(self, record: LogRecord) -> None:
        data = self.serializer(record)
        async with self._get_lock():
            if self.writes == 0:
                self.path.parent.mkdir(parents=True, exist_ok=True)
            async with aio_open(self.path, "a", encoding="utf-8") as f:
                await f.write(data)
            self.writes += 1

    async def flush(self) -> None:
        # Every write is closed before deliver returns; wait for writes in flight.
        async with self._get_lock():
            pass

    async def close(self) -> None:
        await self.flush()
        logger.debug("File sink closed", sink=self.name, path=str(self.path), writes=self.writes)
