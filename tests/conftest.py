"""
Pytest configuration and shared fixtures.

Contains a manual clock, record factory, recording sinks and a diagnostics
channel that captures reported failures.
"""

import asyncio
from typing import Any, Callable, List, Optional

import pytest

from logpipe.config import Settings
from logpipe.core.diagnostics import DiagnosticsChannel
from logpipe.core.exceptions import PipelineFailure
from logpipe.core.metrics import MetricsCollector
from logpipe.models.record import LogRecord


class ManualClock:
    """Clock returning a settable millisecond timestamp."""

    def __init__(self, now: int = 0) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class RecordingSink:
    """Sink that records every call. Messages in ``fail_on`` raise on deliver."""

    def __init__(
        self,
        name: str = "recording",
        level: Any = None,
        fail_on: Optional[set] = None,
        fail_flush: bool = False,
        fail_close: bool = False,
    ) -> None:
        self.name = name
        self.level = level
        self.fail_on = fail_on or set()
        self.fail_flush = fail_flush
        self.fail_close = fail_close
        self.records: List[LogRecord] = []
        self.flush_calls = 0
        self.close_calls = 0

    @property
    def messages(self) -> List[str]:
        return [record.message for record in self.records]

    def deliver(self, record: LogRecord) -> None:
        if record.message in self.fail_on:
            raise RuntimeError(f"cannot deliver {record.message}")
        self.records.append(record)

    def flush(self) -> None:
        self.flush_calls += 1
        if self.fail_flush:
            raise RuntimeError("flush failed")

    def close(self) -> None:
        self.close_calls += 1
        if self.fail_close:
            raise RuntimeError("close failed")


class AsyncRecordingSink(RecordingSink):
    """Recording sink whose operations are coroutines."""

    def __init__(self, *args: Any, delay: float = 0.0, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.delay = delay

    async def deliver(self, record: LogRecord) -> None:  # type: ignore[override]
        await asyncio.sleep(self.delay)
        super().deliver(record)

    async def flush(self) -> None:  # type: ignore[override]
        await asyncio.sleep(0)
        super().flush()

    async def close(self) -> None:  # type: ignore[override]
        await asyncio.sleep(0)
        super().close()


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def make_record() -> Callable[..., LogRecord]:
    """Factory for records with sensible defaults."""

    def factory(
        message: str = "test message",
        level: int = 30,
        timestamp: int = 0,
        **fields: Any,
    ) -> LogRecord:
        return LogRecord(level=level, message=message, timestamp=timestamp, **fields)

    return factory


@pytest.fixture
def sink_factory() -> Callable[..., RecordingSink]:
    return RecordingSink


@pytest.fixture
def async_sink_factory() -> Callable[..., AsyncRecordingSink]:
    return AsyncRecordingSink


@pytest.fixture
def captured_failures() -> List[PipelineFailure]:
    return []


@pytest.fixture
def metrics() -> MetricsCollector:
    return MetricsCollector()


@pytest.fixture
def diagnostics(
    captured_failures: List[PipelineFailure],
    metrics: MetricsCollector,
) -> DiagnosticsChannel:
    channel = DiagnosticsChannel(metrics=metrics)
    channel.subscribe(captured_failures.append)
    return channel


@pytest.fixture
def settings() -> Settings:
    """Settings isolated from any logpipe.yaml or LOGPIPE_* environment."""
    return Settings(
        level="TRACE",
        include_stack="ERROR",
        context={},
    )
