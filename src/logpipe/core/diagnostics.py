"""
Internal diagnostics channel.

Runtime failures inside the pipeline are never raised to the emitting call
site. They are logged here through structlog (the stdlib ``logging`` tree,
never a logpipe pipeline) and handed to any subscribed listeners.
"""

import logging
from typing import Callable, List, Optional

import structlog

from .exceptions import PipelineFailure
from .metrics import MetricsCollector

logger = structlog.get_logger(__name__)

DiagnosticsListener = Callable[[PipelineFailure], None]


def configure_logging(log_level: str = "WARNING") -> None:
    """Configure structured logging for logpipe's own diagnostics."""
    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, log_level.upper()),
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


class DiagnosticsChannel:
    """
    Collects pipeline failures.

    Listeners run synchronously inside ``report``. A failure reported while a
    listener is running is logged but not dispatched again.
    """

    def __init__(self, metrics: Optional[MetricsCollector] = None) -> None:
        self.metrics = metrics
        self._listeners: List[DiagnosticsListener] = []
        self._dispatching = False

    def subscribe(self, listener: DiagnosticsListener) -> Callable[[], None]:
        """Register a listener; returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def report(self, failure: PipelineFailure) -> None:
        cause = failure.cause
        logger.error(
            "Pipeline failure",
            error_code=failure.error_code,
            error=str(failure),
            error_type=type(cause).__name__ if cause is not None else None,
            **failure.details,
        )

        if self.metrics:
            self.metrics.record_failure(failure.error_code)

        if self._dispatching:
            logger.warning(
                "Failure reported from a diagnostics listener, not re-dispatched",
                error_code=failure.error_code,
            )
            return

        self._dispatching = True
        try:
            for listener in list(self._listeners):
                try:
                    listener(failure)
                except Exception as e:
                    logger.error(
                        "Diagnostics listener failed",
                        error=str(e),
                        error_type=type(e).__name__,
                    )
        finally:
            self._dispatching = False
