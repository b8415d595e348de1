"""
Threshold alerting middleware.

Each rule accumulates the records matching its predicate. When the
accumulation reaches the rule's threshold and the cooldown has elapsed the
rule fires: the accumulation is handed to ``on_alert`` and cleared. While
the cooldown blocks a fire the accumulation is kept and keeps growing,
bounded only by window eviction, so the next permitted fire carries the
whole batch.
"""

from collections import deque
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, Iterable, List, Mapping, Optional, Union

import structlog

from ..models.record import LogRecord
from ..models.rules import AlertRule
from .chain import Proceed
from .diagnostics import DiagnosticsChannel
from .dispatch import PendingSet, invoke
from .exceptions import AlertCallbackFailure, ConfigurationError
from .metrics import MetricsCollector

logger = structlog.get_logger(__name__)

RuleLike = Union[AlertRule, Mapping[str, Any]]


@dataclass
class RuleState:
    """Pending accumulation for one rule."""
    matched: Deque[LogRecord] = field(default_factory=deque)
    last_fired_at: Optional[int] = None


class ThresholdAlerter:
    """
    Evaluates alert rules against every record, then forwards it.

    Alerting never drops records.
    """

    name = "alerting"

    def __init__(
        self,
        rules: Iterable[RuleLike],
        diagnostics: Optional[DiagnosticsChannel] = None,
        metrics: Optional[MetricsCollector] = None,
        pending: Optional[PendingSet] = None,
    ) -> None:
        self.rules: List[AlertRule] = [self._coerce_rule(rule) for rule in rules]

        names = [rule.name for rule in self.rules]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ConfigurationError(
                "Alert rule names must be unique",
                details={"duplicates": duplicates},
            )

        self.diagnostics = diagnostics if diagnostics is not None else DiagnosticsChannel(metrics)
        self.metrics = metrics
        self.pending: PendingSet = pending if pending is not None else set()
        self.states: Dict[str, RuleState] = {rule.name: RuleState() for rule in self.rules}

        logger.debug("Threshold alerter initialized", rules=names)

    @staticmethod
    def _coerce_rule(rule: RuleLike) -> AlertRule:
        if isinstance(rule, AlertRule):
            return rule
        return AlertRule(**dict(rule))

    def evaluate(self, record: LogRecord) -> None:
        for rule in self.rules:
            try:
                matched = bool(rule.when(record))
            except Exception as e:
                self.diagnostics.report(AlertCallbackFailure(rule=rule.name, cause=e, phase="when"))
                continue

            if matched:
                self._accumulate(rule, record)

    def _accumulate(self, rule: AlertRule, record: LogRecord) -> None:
        state = self.states[rule.name]
        now = record.timestamp

        if rule.window_ms is not None:
            while state.matched and now - state.matched[0].timestamp > rule.window_ms:
                state.matched.popleft()

        state.matched.append(record)

        if len(state.matched) < rule.threshold:
            return

        if state.last_fired_at is not None and now - state.last_fired_at < rule.cooldown_ms:
            logger.debug(
                "Alert threshold reached during cooldown",
                rule=rule.name,
                pending=len(state.matched),
            )
            return

        batch = list(state.matched)
        state.matched.clear()
        state.last_fired_at = now

        logger.info("Alert fired", rule=rule.name, entries=len(batch))
        if self.metrics:
            self.metrics.record_alert(rule.name)

        def on_error(exc: BaseException) -> None:
            self.diagnostics.report(AlertCallbackFailure(rule=rule.name, cause=exc))

        invoke(rule.on_alert, batch, on_error=on_error, pending=self.pending)

    def __call__(self, record: LogRecord, proceed: Proceed) -> None:
        self.evaluate(record)
        proceed(record)


def alert_middleware(
    rules: Iterable[RuleLike],
    diagnostics: Optional[DiagnosticsChannel] = None,
    metrics: Optional[MetricsCollector] = None,
) -> ThresholdAlerter:
    """Create an alerting stage for ``rules``."""
    return ThresholdAlerter(rules, diagnostics=diagnostics, metrics=metrics)
