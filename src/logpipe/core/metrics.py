"""
Prometheus metrics collection.

Each collector owns its registry so several pipelines can live in one
process without colliding on metric names.
"""

from typing import Optional

import structlog
from prometheus_client import CollectorRegistry, Counter, Info

logger = structlog.get_logger(__name__)


class MetricsCollector:
    """
    Counters for the record flow through one pipeline.

    Keep metrics simple, use in-memory counters, let Prometheus handle
    storage.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None) -> None:
        self.registry = registry if registry is not None else CollectorRegistry()

        self.pipeline_info = Info(
            "logpipe_pipeline",
            "logpipe pipeline information",
            registry=self.registry,
        )
        self.pipeline_info.info({"version": "0.1.0"})

        self.records_emitted_total = Counter(
            "logpipe_records_emitted_total",
            "Total records submitted to the pipeline",
            ["level"],
            registry=self.registry,
        )

        self.records_dropped_total = Counter(
            "logpipe_records_dropped_total",
            "Total records dropped before reaching any sink",
            ["reason"],
            registry=self.registry,
        )

        self.records_delivered_total = Counter(
            "logpipe_records_delivered_total",
            "Total deliveries initiated per sink",
            ["sink"],
            registry=self.registry,
        )

        self.failures_total = Counter(
            "logpipe_failures_total",
            "Total failures reported to the diagnostics channel",
            ["error_code"],
            registry=self.registry,
        )

        self.alerts_fired_total = Counter(
            "logpipe_alerts_fired_total",
            "Total alert firings",
            ["rule"],
            registry=self.registry,
        )

        self.batch_flushes_total = Counter(
            "logpipe_batch_flushes_total",
            "Total batch flushes",
            ["sink", "trigger"],
            registry=self.registry,
        )

    def record_emitted(self, level_name: str) -> None:
        self.records_emitted_total.labels(level=level_name).inc()

    def record_dropped(self, reason: str) -> None:
        self.records_dropped_total.labels(reason=reason).inc()

    def record_delivery(self, sink: str) -> None:
        self.records_delivered_total.labels(sink=sink).inc()

    def record_failure(self, error_code: str) -> None:
        self.failures_total.labels(error_code=error_code).inc()

    def record_alert(self, rule: str) -> None:
        self.alerts_fired_total.labels(rule=rule).inc()

    def record_batch_flush(self, sink: str, trigger: str, size: int) -> None:
        self.batch_flushes_total.labels(sink=sink, trigger=trigger).inc()
        logger.debug("Batch flushed", sink=sink, trigger=trigger, size=size)

    def value(self, name: str, **labels: str) -> float:
        """Current sample value, 0.0 when the series does not exist yet."""
        sample = self.registry.get_sample_value(name, labels)
        return sample if sample is not None else 0.0
