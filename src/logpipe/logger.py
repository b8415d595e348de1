"""
Logger facade and child scopes.

A ``Logger`` builds records (id, clock timestamp, bound-context snapshot,
error description) and hands them to a shared ``PipelineEngine``. Child
loggers keep a reference to their parent and their own bindings; nothing
registers or owns them.
"""

import copy
import time
from types import TracebackType
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Type, Union

import structlog

from .config import Settings, get_settings
from .core.alerting import RuleLike
from .core.chain import Stage
from .core.diagnostics import DiagnosticsChannel, configure_logging
from .core.exceptions import StageFailure
from .core.levels import SILENT, LevelLike, LogLevel, resolve_level, should_include_stack
from .core.masking import redaction_middleware
from .core.metrics import MetricsCollector
from .core.pipeline import FlushResult, PipelineEngine
from .core.sampling import sampling_middleware
from .models.record import LogError, LogRecord
from .sinks.base import Sink

logger = structlog.get_logger(__name__)

Clock = Callable[[], int]


def system_clock() -> int:
    """Wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def snapshot(values: Mapping[str, Any]) -> Dict[str, Any]:
    """Deep copy of ``values``; entries that cannot be deep-copied are shared."""
    try:
        return copy.deepcopy(dict(values))
    except Exception as e:
        logger.debug("Deep copy failed, using shallow copy", error=str(e))
        return {key: _copy_entry(value) for key, value in values.items()}


def _copy_entry(value: Any) -> Any:
    try:
        return copy.deepcopy(value)
    except Exception:
        return value


class Logger:
    """
    Emits records into a pipeline.

    Level methods take ``meta`` as a payload. Error-carrying calls pass the
    exception explicitly through ``exc=``.
    """

    def __init__(
        self,
        engine: PipelineEngine,
        clock: Clock = system_clock,
        include_stack: Union[bool, LevelLike] = "ERROR",
        context: Optional[Mapping[str, Any]] = None,
        parent: Optional["Logger"] = None,
    ) -> None:
        self.engine = engine
        self.clock = clock
        self.include_stack = include_stack
        self.parent = parent
        self._bindings: Dict[str, Any] = dict(context or {})

    # Scopes

    @property
    def bound_context(self) -> Dict[str, Any]:
        """Resolved bindings: parent chain first, own bindings on top."""
        inherited = self.parent.bound_context if self.parent is not None else {}
        return {**inherited, **self._bindings}

    def child(self, context: Optional[Mapping[str, Any]] = None, **bindings: Any) -> "Logger":
        """Derive a scope with additional bindings."""
        return Logger(
            self.engine,
            clock=self.clock,
            include_stack=self.include_stack,
            context={**(context or {}), **bindings},
            parent=self,
        )

    def bind(self, **bindings: Any) -> "Logger":
        """Add bindings to this scope. Only records emitted afterwards see them."""
        self._bindings.update(bindings)
        return self

    def unbind(self, *keys: str) -> "Logger":
        for key in keys:
            self._bindings.pop(key, None)
        return self

    # Emission

    def is_enabled(self, level: LevelLike) -> bool:
        return self.engine.is_enabled(resolve_level(level))

    def log(
        self,
        level: LevelLike,
        message: str,
        meta: Optional[Mapping[str, Any]] = None,
        *,
        exc: Optional[BaseException] = None,
        correlation_id: Optional[str] = None,
    ) -> None:
        numeric = resolve_level(level)
        if numeric == SILENT or not self.engine.is_enabled(numeric):
            return

        try:
            error = None
            if exc is not None:
                error = LogError.from_exception(
                    exc, include_stack=should_include_stack(self.include_stack, numeric)
                )

            record = LogRecord(
                level=int(numeric),
                message=message,
                timestamp=int(self.clock()),
                meta=snapshot(meta or {}),
                bound_context=snapshot(self.bound_context),
                correlation_id=correlation_id,
                error=error,
            )
        except Exception as e:
            self.engine.diagnostics.report(StageFailure(stage="record", cause=e))
            return

        self.engine.emit(record)

    def trace(self, message: str, meta: Optional[Mapping[str, Any]] = None) -> None:
        self.log(LogLevel.TRACE, message, meta)

    def debug(self, message: str, meta: Optional[Mapping[str, Any]] = None) -> None:
        self.log(LogLevel.DEBUG, message, meta)

    def info(self, message: str, meta: Optional[Mapping[str, Any]] = None) -> None:
        self.log(LogLevel.INFO, message, meta)

    def warn(self, message: str, meta: Optional[Mapping[str, Any]] = None) -> None:
        self.log(LogLevel.WARN, message, meta)

    warning = warn

    def error(
        self,
        message: str,
        meta: Optional[Mapping[str, Any]] = None,
        *,
        exc: Optional[BaseException] = None,
    ) -> None:
        self.log(LogLevel.ERROR, message, meta, exc=exc)

    def fatal(
        self,
        message: str,
        meta: Optional[Mapping[str, Any]] = None,
        *,
        exc: Optional[BaseException] = None,
    ) -> None:
        self.log(LogLevel.FATAL, message, meta, exc=exc)

    # Pipeline management

    def add_sink(self, sink: Sink, level: Optional[LevelLike] = None) -> None:
        self.engine.add_sink(sink, level=level)

    def remove_sink(self, name: str) -> Optional[Sink]:
        return self.engine.remove_sink(name)

    def add_middleware(self, stage: Stage) -> None:
        self.engine.add_middleware(stage)

    async def flush(self) -> FlushResult:
        return await self.engine.flush()

    async def close(self) -> FlushResult:
        return await self.engine.close()

    async def __aenter__(self) -> "Logger":
        return self

    async def __aexit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc_value: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        await self.close()


def create_logger(
    settings: Optional[Settings] = None,
    *,
    sinks: Iterable[Sink] = (),
    middleware: Iterable[Stage] = (),
    alerts: Iterable[RuleLike] = (),
    clock: Optional[Clock] = None,
    metrics: Optional[MetricsCollector] = None,
    diagnostics: Optional[DiagnosticsChannel] = None,
) -> Logger:
    """
    Build a root logger and its pipeline.

    Stage order: redaction (when paths are configured), user middleware,
    sampling (when enabled), alerting.
    """
    settings = settings or get_settings()

    if settings.configure_logging:
        configure_logging(settings.diagnostics_log_level)

    stages: List[Stage] = []
    if settings.redaction.paths:
        stages.append(
            redaction_middleware(
                settings.redaction.paths,
                partial_rules=settings.redaction.partial_rules,
                heuristics=settings.redaction.heuristics,
            )
        )
    stages.extend(middleware)
    if settings.sampling.enabled:
        stages.append(
            sampling_middleware(
                max_per_window=settings.sampling.max_per_window,
                window_ms=settings.sampling.window_ms,
            )
        )

    engine = PipelineEngine(
        sinks=sinks,
        middleware=stages,
        alerts=alerts,
        level=settings.level,
        diagnostics=diagnostics,
        metrics=metrics,
    )

    # Validate the stack policy up front.
    if not isinstance(settings.include_stack, bool):
        resolve_level(settings.include_stack)

    logger.debug("Logger created", sinks=engine.sink_names, stages=len(stages))

    return Logger(
        engine,
        clock=clock or system_clock,
        include_stack=settings.include_stack,
        context=settings.context,
    )
