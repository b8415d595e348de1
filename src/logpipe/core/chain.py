"""
Middleware chain.

A stage is called as ``stage(record, proceed)``. Calling ``proceed(record)``
hands a (possibly replaced) record to the next stage; returning without
calling it drops the record. The last ``proceed`` reaches the terminal
callback, which for the pipeline engine is the sink fan-out.
"""

from typing import Any, Awaitable, Callable, Iterable, List, Optional

import structlog

from ..models.record import LogRecord
from .diagnostics import DiagnosticsChannel
from .dispatch import PendingSet, invoke
from .exceptions import StageFailure

logger = structlog.get_logger(__name__)

Proceed = Callable[[LogRecord], None]
Stage = Callable[[LogRecord, Proceed], Optional[Awaitable[Any]]]


def stage_name(stage: Stage) -> str:
    name = getattr(stage, "name", None) or getattr(stage, "__name__", None)
    return str(name) if name else type(stage).__name__


class MiddlewareChain:
    """Ordered sequence of middleware stages."""

    def __init__(
        self,
        stages: Iterable[Stage] = (),
        diagnostics: Optional[DiagnosticsChannel] = None,
        pending: Optional[PendingSet] = None,
    ) -> None:
        self._stages: List[Stage] = list(stages)
        self.diagnostics = diagnostics if diagnostics is not None else DiagnosticsChannel()
        self.pending: PendingSet = pending if pending is not None else set()

    def add(self, stage: Stage) -> None:
        if not callable(stage):
            raise TypeError(f"Middleware stage must be callable, got {type(stage).__name__}")
        self._stages.append(stage)
        logger.debug("Middleware stage added", stage=stage_name(stage), position=len(self._stages))

    @property
    def stages(self) -> List[Stage]:
        return list(self._stages)

    def __len__(self) -> int:
        return len(self._stages)

    def run(self, record: LogRecord, terminal: Callable[[LogRecord], None]) -> None:
        """
        Run ``record`` through the stages, then ``terminal``.

        The stage list is captured when the run starts, so stages added
        while a record is in flight only apply to later records.
        """
        self._dispatch(tuple(self._stages), 0, record, terminal)

    def _dispatch(
        self,
        stages: tuple,
        index: int,
        record: LogRecord,
        terminal: Callable[[LogRecord], None],
    ) -> None:
        if index == len(stages):
            terminal(record)
            return

        stage = stages[index]
        name = stage_name(stage)
        forwarded = False

        def proceed(next_record: LogRecord) -> None:
            nonlocal forwarded
            if forwarded:
                logger.warning(
                    "Stage called proceed more than once, ignoring",
                    stage=name,
                    record_id=record.id,
                )
                return
            forwarded = True
            self._dispatch(stages, index + 1, next_record, terminal)

        def on_error(exc: BaseException) -> None:
            self.diagnostics.report(StageFailure(stage=name, cause=exc, record_id=record.id))

        invoke(stage, record, proceed, on_error=on_error, pending=self.pending)
