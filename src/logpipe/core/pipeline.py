"""
Pipeline engine.

Orchestrates the flow of a record:
1. Minimum level gate
2. Middleware chain (enrichment, redaction, sampling, alerting, ...)
3. Fan-out to every registered sink whose level filter admits the record

Failures at any step are reported to the diagnostics channel; ``emit``
never raises.
"""

from dataclasses import dataclass, field
from functools import partial
from typing import Any, Dict, Iterable, List, Optional

import structlog

from ..models.record import LogRecord
from ..models.rules import AlertRule
from ..sinks.base import Sink
from .alerting import RuleLike, ThresholdAlerter
from .chain import MiddlewareChain, Stage
from .diagnostics import DiagnosticsChannel
from .dispatch import PendingSet, drain, invoke
from .exceptions import ConfigurationError, DeliveryFailure
from .levels import LevelLike, LogLevel, level_name, resolve_level
from .metrics import MetricsCollector

logger = structlog.get_logger(__name__)


@dataclass
class SinkRegistration:
    """A registered sink and its resolved level filter."""
    sink: Sink
    level: Optional[float]


@dataclass
class SinkFailure:
    """One sink operation that failed during flush or close."""
    sink: str
    operation: str
    error: BaseException


@dataclass
class FlushResult:
    """Result of a flush or close over all sinks."""
    operation: str
    sinks_processed: int
    failures: List[SinkFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


class PipelineEngine:
    """
    Owns the sink registration table and the middleware chain.

    Sinks are kept in registration order; fan-out follows that order when
    initiating deliveries, though asynchronous deliveries may complete in
    any order across sinks.
    """

    def __init__(
        self,
        sinks: Iterable[Sink] = (),
        middleware: Iterable[Stage] = (),
        alerts: Iterable[RuleLike] = (),
        level: LevelLike = LogLevel.TRACE,
        diagnostics: Optional[DiagnosticsChannel] = None,
        metrics: Optional[MetricsCollector] = None,
    ) -> None:
        self.metrics = metrics
        self.diagnostics = diagnostics if diagnostics is not None else DiagnosticsChannel(metrics)
        self.level = resolve_level(level)
        self._pending: PendingSet = set()
        self._sinks: Dict[str, SinkRegistration] = {}
        self._chain = MiddlewareChain(middleware, diagnostics=self.diagnostics, pending=self._pending)
        self._closing = False
        self._closed = False

        rules: List[AlertRule] = [ThresholdAlerter._coerce_rule(rule) for rule in alerts]
        if rules:
            self._chain.add(
                ThresholdAlerter(
                    rules,
                    diagnostics=self.diagnostics,
                    metrics=metrics,
                    pending=self._pending,
                )
            )

        for sink in sinks:
            self.add_sink(sink)

        logger.info(
            "Pipeline engine initialized",
            sinks=self.sink_names,
            stages=len(self._chain),
            level=level_name(self.level),
            has_metrics=metrics is not None,
        )

    # Registration

    @property
    def sink_names(self) -> List[str]:
        return list(self._sinks)

    @property
    def closed(self) -> bool:
        return self._closed or self._closing

    def get_sink(self, name: str) -> Optional[Sink]:
        registration = self._sinks.get(name)
        return registration.sink if registration else None

    def add_sink(self, sink: Sink, level: Optional[LevelLike] = None) -> None:
        """
        Register ``sink``. ``level`` overrides the sink's own level filter.

        Raises ConfigurationError for a duplicate name or a closed engine.
        """
        name = getattr(sink, "name", None)
        if not name:
            raise ConfigurationError("Sink must have a non-empty name")
        if not callable(getattr(sink, "deliver", None)):
            raise ConfigurationError(f"Sink '{name}' has no deliver method")
        if name in self._sinks:
            raise ConfigurationError(
                f"Sink '{name}' is already registered",
                details={"sink": name},
            )
        if self.closed:
            raise ConfigurationError(f"Cannot add sink '{name}' to a closed pipeline")

        filter_level = level if level is not None else getattr(sink, "level", None)
        resolved = resolve_level(filter_level) if filter_level is not None else None
        self._sinks[name] = SinkRegistration(sink=sink, level=resolved)

        logger.debug(
            "Sink registered",
            sink=name,
            level=level_name(resolved) if resolved is not None else None,
        )

    def remove_sink(self, name: str) -> Optional[Sink]:
        """Unregister a sink without closing it. Returns it, or None if unknown."""
        registration = self._sinks.pop(name, None)
        if registration is None:
            logger.debug("Remove of unknown sink ignored", sink=name)
            return None
        logger.debug("Sink removed", sink=name)
        return registration.sink

    def add_middleware(self, stage: Stage) -> None:
        self._chain.add(stage)

    # Record flow

    def is_enabled(self, level: float) -> bool:
        return not self.closed and level >= self.level

    def emit(self, record: LogRecord) -> None:
        if self.closed:
            logger.debug("Emit after close ignored", record_id=record.id)
            if self.metrics:
                self.metrics.record_dropped("closed")
            return

        if record.level < self.level:
            if self.metrics:
                self.metrics.record_dropped("level")
            return

        if self.metrics:
            self.metrics.record_emitted(record.level_name)

        self._chain.run(record, self._fan_out)

    def _fan_out(self, record: LogRecord) -> None:
        if self._closed:
            if self.metrics:
                self.metrics.record_dropped("closed")
            return

        for name, registration in list(self._sinks.items()):
            if registration.level is not None and record.level < registration.level:
                continue

            if self.metrics:
                self.metrics.record_delivery(name)

            invoke(
                registration.sink.deliver,
                record,
                on_error=partial(self._report_delivery_failure, name, "deliver", record.id),
                pending=self._pending,
            )

    def _report_delivery_failure(
        self,
        sink: str,
        operation: str,
        record_id: Optional[str],
        exc: BaseException,
    ) -> None:
        self.diagnostics.report(
            DeliveryFailure(sink=sink, operation=operation, cause=exc, record_id=record_id)
        )

    # Lifecycle

    async def flush(self) -> FlushResult:
        """Wait for in-flight work, then flush every sink."""
        await drain(self._pending)
        return await self._call_sinks("flush")

    async def close(self) -> FlushResult:
        """
        Stop accepting records, drain what is in flight and close every sink.

        Calling close again is a no-op.
        """
        if self.closed:
            return FlushResult(operation="close", sinks_processed=0)

        self._closing = True
        logger.info("Closing pipeline", sinks=self.sink_names)

        await drain(self._pending)
        result = await self._call_sinks("close")
        self._closed = True

        logger.info(
            "Pipeline closed",
            sinks_processed=result.sinks_processed,
            failures=len(result.failures),
        )
        return result

    async def _call_sinks(self, operation: str) -> FlushResult:
        failures: List[SinkFailure] = []
        pending: PendingSet = set()
        processed = 0

        def on_error(name: str, exc: BaseException) -> None:
            failures.append(SinkFailure(sink=name, operation=operation, error=exc))
            self._report_delivery_failure(name, operation, None, exc)

        for name, registration in list(self._sinks.items()):
            method: Any = getattr(registration.sink, operation, None)
            if not callable(method):
                continue
            processed += 1
            invoke(method, on_error=partial(on_error, name), pending=pending)

        await drain(pending)

        if failures:
            logger.warning(
                "Sink operation failures",
                operation=operation,
                failed_sinks=[failure.sink for failure in failures],
            )
        return FlushResult(operation=operation, sinks_processed=processed, failures=failures)
