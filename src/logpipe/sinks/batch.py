"""
Batching delivery wrapper.

Buffers records in front of another sink and forwards them on size or
timer triggers:

    IDLE --deliver--> ACCUMULATING --size/timer/flush--> FLUSHING --> IDLE

Records are forwarded to the inner sink one at a time, in buffer order.
A failure delivering one record is reported and the rest of the batch is
still attempted.
"""

import asyncio
from enum import Enum
from functools import partial
from typing import Any, List, Optional

import structlog

from ..core.diagnostics import DiagnosticsChannel
from ..core.dispatch import PendingSet, drain, invoke, running_loop
from ..core.exceptions import ConfigurationError, DeliveryFailure
from ..core.levels import LevelLike
from ..core.metrics import MetricsCollector
from ..models.record import LogRecord
from .base import Sink

logger = structlog.get_logger(__name__)


class BatchState(str, Enum):
    IDLE = "idle"
    ACCUMULATING = "accumulating"
    FLUSHING = "flushing"


class BatchingSink:
    """
    Sink wrapper buffering records for ``inner``.

    The flush timer needs a running asyncio loop; without one only size
    and explicit flushes apply.
    """

    def __init__(
        self,
        inner: Sink,
        batch_size: int = 50,
        flush_interval_ms: Optional[int] = None,
        name: Optional[str] = None,
        level: Optional[LevelLike] = None,
        diagnostics: Optional[DiagnosticsChannel] = None,
        metrics: Optional[MetricsCollector] = None,
    ) -> None:
        if batch_size < 1:
            raise ConfigurationError(
                "batch_size must be at least 1",
                details={"batch_size": batch_size},
            )
        if flush_interval_ms is not None and flush_interval_ms <= 0:
            raise ConfigurationError(
                "flush_interval_ms must be positive",
                details={"flush_interval_ms": flush_interval_ms},
            )

        self.inner = inner
        self.name = name or inner.name
        self.level = level if level is not None else getattr(inner, "level", None)
        self.batch_size = batch_size
        self.flush_interval_ms = flush_interval_ms
        self.diagnostics = diagnostics if diagnostics is not None else DiagnosticsChannel(metrics)
        self.metrics = metrics

        self._buffer: List[LogRecord] = []
        self._timer: Optional[asyncio.TimerHandle] = None
        self._pending: PendingSet = set()
        self._flushing = False
        self._closed = False

    @property
    def state(self) -> BatchState:
        if self._flushing:
            return BatchState.FLUSHING
        if self._buffer:
            return BatchState.ACCUMULATING
        return BatchState.IDLE

    @property
    def buffered(self) -> int:
        return len(self._buffer)

    @property
    def timer_armed(self) -> bool:
        return self._timer is not None

    def deliver(self, record: LogRecord) -> None:
        if self._closed:
            logger.warning("Record delivered to closed batching sink dropped", sink=self.name, record_id=record.id)
            return

        self._buffer.append(record)

        if len(self._buffer) >= self.batch_size:
            self._flush_buffer("size")
        elif len(self._buffer) == 1:
            self._arm_timer()

    def _arm_timer(self) -> None:
        if self.flush_interval_ms is None or self._timer is not None:
            return

        loop = running_loop()
        if loop is None:
            logger.debug("No running event loop, timed flush skipped", sink=self.name)
            return

        self._timer = loop.call_later(self.flush_interval_ms / 1000, self._on_timer)

    def _disarm_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_timer(self) -> None:
        self._timer = None
        self._flush_buffer("timer")

    def _flush_buffer(self, trigger: str) -> None:
        self._disarm_timer()
        if not self._buffer or self._flushing:
            return

        batch, self._buffer = self._buffer, []
        self._flushing = True
        try:
            for record in batch:
                invoke(
                    self.inner.deliver,
                    record,
                    on_error=partial(self._report, "deliver", record.id),
                    pending=self._pending,
                )
        finally:
            self._flushing = False

        if self.metrics:
            self.metrics.record_batch_flush(self.name, trigger, len(batch))

        # Records delivered re-entrantly while flushing start a new batch.
        if not self._buffer:
            return
        if len(self._buffer) >= self.batch_size:
            self._flush_buffer("size")
        elif not self._closed:
            self._arm_timer()

    def _report(self, operation: str, record_id: Optional[str], exc: BaseException) -> None:
        self.diagnostics.report(
            DeliveryFailure(sink=self.name, operation=operation, cause=exc, record_id=record_id)
        )

    async def _forward(self, operation: str) -> None:
        method: Any = getattr(self.inner, operation, None)
        if callable(method):
            invoke(method, on_error=partial(self._report, operation, None), pending=self._pending)
        await drain(self._pending)

    async def flush(self) -> None:
        """Drain the buffer into the inner sink, then flush the inner sink."""
        self._flush_buffer("explicit")
        await drain(self._pending)
        await self._forward("flush")

    async def close(self) -> None:
        """Drain the buffer, cancel the timer and close the inner sink."""
        if self._closed:
            return
        self._closed = True
        self._flush_buffer("close")
        self._disarm_timer()
        await drain(self._pending)
        await self._forward("close")
        logger.debug("Batching sink closed", sink=self.name)
