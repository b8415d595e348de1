"""
logpipe - in-process structured logging pipeline.

Records pass through an ordered middleware chain (enrichment, redaction,
sampling, alerting) and fan out to independently filtered sinks, with
batching, flush and close lifecycle and failure isolation throughout.
"""

__version__ = "0.1.0"

from .config import Settings, get_settings, reload_settings
from .core.alerting import ThresholdAlerter, alert_middleware
from .core.chain import MiddlewareChain, Proceed, Stage
from .core.diagnostics import DiagnosticsChannel, configure_logging
from .core.enrichment import correlation_middleware, enrich_middleware
from .core.exceptions import (
    AlertCallbackFailure,
    ConfigurationError,
    DeliveryFailure,
    LogPipeException,
    PipelineFailure,
    StageFailure,
    WebhookError,
)
from .core.levels import SILENT, LogLevel, level_name, resolve_level, should_include_stack, should_log
from .core.masking import MaskingEngine, redaction_middleware
from .core.metrics import MetricsCollector
from .core.pipeline import FlushResult, PipelineEngine, SinkFailure
from .core.sampling import RateLimiter, sampling_middleware
from .logger import Logger, create_logger, system_clock
from .models import AlertRule, LogError, LogRecord
from .sinks import (
    BatchingSink,
    ConsoleSink,
    FileSink,
    JsonStreamSink,
    PubSubSink,
    Sink,
    WebhookSink,
    create_sink,
)

__all__ = [
    "Settings",
    "get_settings",
    "reload_settings",
    "Logger",
    "create_logger",
    "system_clock",
    "PipelineEngine",
    "FlushResult",
    "SinkFailure",
    "MiddlewareChain",
    "Stage",
    "Proceed",
    "RateLimiter",
    "sampling_middleware",
    "ThresholdAlerter",
    "alert_middleware",
    "MaskingEngine",
    "redaction_middleware",
    "correlation_middleware",
    "enrich_middleware",
    "DiagnosticsChannel",
    "configure_logging",
    "MetricsCollector",
    "LogLevel",
    "SILENT",
    "level_name",
    "resolve_level",
    "should_log",
    "should_include_stack",
    "LogPipeException",
    "ConfigurationError",
    "PipelineFailure",
    "StageFailure",
    "DeliveryFailure",
    "AlertCallbackFailure",
    "WebhookError",
    "AlertRule",
    "LogError",
    "LogRecord",
    "Sink",
    "create_sink",
    "BatchingSink",
    "ConsoleSink",
    "JsonStreamSink",
    "FileSink",
    "WebhookSink",
    "PubSubSink",
]
