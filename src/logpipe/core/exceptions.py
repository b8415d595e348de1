"""
Custom exceptions for the logpipe pipeline.

Construction problems raise ``ConfigurationError`` immediately. Everything
that goes wrong while records are flowing is wrapped in a ``PipelineFailure``
subclass and handed to the diagnostics channel instead of being raised.
"""

from typing import Any, Dict, Optional


class LogPipeException(Exception):
    """Base exception for logpipe."""

    def __init__(
        self,
        message: str,
        error_code: str = "internal_error",
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.error_code = error_code
        self.details = details or {}


class ConfigurationError(LogPipeException):
    """Raised when a component is constructed with invalid parameters."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(
            message=message,
            error_code="configuration_error",
            details=details,
        )


class PipelineFailure(LogPipeException):
    """A runtime failure caught inside the pipeline."""

    def __init__(
        self,
        message: str,
        error_code: str,
        cause: Optional[BaseException] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message=message, error_code=error_code, details=details)
        self.cause = cause
        self.__cause__ = cause


class StageFailure(PipelineFailure):
    """Raised when a middleware stage throws or its awaitable fails."""

    def __init__(
        self,
        stage: str,
        cause: BaseException,
        record_id: Optional[str] = None,
    ) -> None:
        super().__init__(
            message=f"Middleware stage '{stage}' failed: {cause}",
            error_code="stage_failure",
            cause=cause,
            details={"stage": stage, "record_id": record_id},
        )


class DeliveryFailure(PipelineFailure):
    """Raised when a sink's deliver/flush/close throws or its awaitable fails."""

    def __init__(
        self,
        sink: str,
        operation: str,
        cause: BaseException,
        record_id: Optional[str] = None,
    ) -> None:
        super().__init__(
            message=f"Sink '{sink}' failed during {operation}: {cause}",
            error_code="delivery_failure",
            cause=cause,
            details={"sink": sink, "operation": operation, "record_id": record_id},
        )


class AlertCallbackFailure(PipelineFailure):
    """Raised when an alert rule's predicate or callback fails."""

    def __init__(self, rule: str, cause: BaseException, phase: str = "on_alert") -> None:
        super().__init__(
            message=f"Alert rule '{rule}' failed in {phase}: {cause}",
            error_code="alert_callback_failure",
            cause=cause,
            details={"rule": rule, "phase": phase},
        )


class WebhookError(LogPipeException):
    """Raised when posting a batch to a webhook fails after all retries."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(
            message=message,
            error_code="webhook_error",
            details=details,
        )
