"""
Console sink: one line per record on stdout, ERROR and above on stderr.
"""

import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional, TextIO

import structlog

from ..core.levels import LevelLike, LogLevel
from ..models.record import LogRecord
from .base import record_to_json


class ConsoleSink:
    """
    Writes JSON lines, or human-readable lines with ``pretty=True``.

    Streams default to ``sys.stdout``/``sys.stderr`` looked up at write
    time, so redirected streams are honoured.
    """

    def __init__(
        self,
        name: str = "console",
        level: Optional[LevelLike] = None,
        stream: Optional[TextIO] = None,
        err_stream: Optional[TextIO] = None,
        pretty: bool = False,
    ) -> None:
        self.name = name
        self.level = level
        self._stream = stream
        self._err_stream = err_stream
        self._renderer = structlog.dev.ConsoleRenderer(colors=False) if pretty else None

    def _target(self, record: LogRecord) -> TextIO:
        if record.level >= LogLevel.ERROR:
            return self._err_stream or sys.stderr
        return self._stream or sys.stdout

    def render(self, record: LogRecord) -> str:
        if self._renderer is None:
            return record_to_json(record)

        event_dict: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.timestamp / 1000, tz=timezone.utc).isoformat(),
            "level": record.level_name.lower(),
            "event": record.message,
            **record.bound_context,
            **record.meta,
        }
        if record.correlation_id:
            event_dict["correlation_id"] = record.correlation_id
        if record.error is not None:
            event_dict["error"] = record.error.message
            if record.error.stack:
                event_dict["exception"] = record.error.stack
        return str(self._renderer(None, record.level_name.lower(), event_dict))

    def deliver(self, record: LogRecord) -> None:
        self._target(record).write(self.render(record) + "\n")

    def flush(self) -> None:
        for stream in (self._stream or sys.stdout, self._err_stream or sys.stderr):
            stream.flush()
