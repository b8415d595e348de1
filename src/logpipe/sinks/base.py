"""
Sink contract and helpers shared by the built-in sinks.
"""

import json
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Protocol, Union, runtime_checkable

from ..core.levels import LevelLike
from ..models.record import LogRecord

DeliverResult = Optional[Awaitable[Any]]


@runtime_checkable
class Sink(Protocol):
    """
    Destination for finalized records.

    ``deliver`` may write synchronously or return an awaitable. Sinks may
    also expose ``flush()`` and ``close()``, each sync or async. Records
    handed to a sink are final and must not be modified.
    """

    name: str
    level: Optional[LevelLike]

    def deliver(self, record: LogRecord) -> DeliverResult: ...


def record_to_json(record: LogRecord) -> str:
    """Serialize a record as one JSON document."""
    return json.dumps(record.to_dict(), default=str, ensure_ascii=False)


def record_to_line(record: LogRecord) -> str:
    return record_to_json(record) + "\n"


@dataclass
class FunctionSink:
    """Sink backed by plain callables."""

    name: str
    deliver_fn: Callable[[LogRecord], DeliverResult]
    level: Optional[LevelLike] = None
    flush_fn: Optional[Callable[[], DeliverResult]] = None
    close_fn: Optional[Callable[[], DeliverResult]] = None

    def deliver(self, record: LogRecord) -> DeliverResult:
        return self.deliver_fn(record)

    def flush(self) -> DeliverResult:
        if self.flush_fn is not None:
            return self.flush_fn()
        return None

    def close(self) -> DeliverResult:
        if self.close_fn is not None:
            return self.close_fn()
        return None


def create_sink(
    name: str,
    deliver: Callable[[LogRecord], DeliverResult],
    level: Optional[Union[str, int]] = None,
    flush: Optional[Callable[[], DeliverResult]] = None,
    close: Optional[Callable[[], DeliverResult]] = None,
) -> FunctionSink:
    """
    Build a sink from callables.

    Example:
        sink = create_sink("audit", lambda record: audit_log.append(record))
    """
    return FunctionSink(name=name, deliver_fn=deliver, level=level, flush_fn=flush, close_fn=close)
