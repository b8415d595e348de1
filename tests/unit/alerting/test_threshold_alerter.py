"""
Tests for threshold alerting.

Tests threshold/window/cooldown semantics and isolation of callback
failures.
"""

import asyncio
from typing import List

import pytest

from logpipe.core.alerting import ThresholdAlerter, alert_middleware
from logpipe.core.exceptions import AlertCallbackFailure, ConfigurationError
from logpipe.models.record import LogRecord
from logpipe.models.rules import AlertRule


def is_error(record: LogRecord) -> bool:
    return record.level >= 50


def feed(alerter, records):
    forwarded = []
    for record in records:
        alerter(record, forwarded.append)
    return forwarded


class TestThresholdFiring:
    """Test when rules fire and what they carry."""

    def test_threshold_cooldown_sequence(self, make_record) -> None:
        """Three matches fire once; a fourth during cooldown is held."""

        fired: List[List[LogRecord]] = []
        alerter = alert_middleware([
            AlertRule(
                name="error-spike",
                when=is_error,
                threshold=3,
                window_ms=5000,
                cooldown_ms=60_000,
                on_alert=fired.append,
            )
        ])

        records = [make_record(message=f"e{i}", level=50, timestamp=t)
                   for i, t in enumerate([0, 1000, 2000], start=1)]
        feed(alerter, records)

        assert len(fired) == 1
        assert [r.message for r in fired[0]] == ["e1", "e2", "e3"]

        feed(alerter, [make_record(message="e4", level=50, timestamp=3000)])
        assert len(fired) == 1
        assert [r.message for r in alerter.states["error-spike"].matched] == ["e4"]

    def test_cooldown_accumulation_fires_as_one_batch(self, make_record) -> None:
        """Matches held back by the cooldown are delivered together once it elapses."""

        fired: List[List[LogRecord]] = []
        alerter = ThresholdAlerter([
            AlertRule(
                name="burst",
                when=is_error,
                threshold=3,
                window_ms=5000,
                cooldown_ms=4000,
                on_alert=fired.append,
            )
        ])

        timeline = [("e1", 0), ("e2", 1000), ("e3", 2000),
                    ("e4", 3000), ("e5", 3500), ("e6", 4000), ("e7", 6000)]
        feed(alerter, [make_record(message=m, level=50, timestamp=t) for m, t in timeline])

        assert [[r.message for r in batch] for batch in fired] == [
            ["e1", "e2", "e3"],
            ["e4", "e5", "e6", "e7"],
        ]
        assert alerter.states["burst"].last_fired_at == 6000
        assert not alerter.states["burst"].matched

    def test_window_evicts_old_matches(self, make_record) -> None:
        fired: List[List[LogRecord]] = []
        alerter = ThresholdAlerter([
            AlertRule(name="pair", when=is_error, threshold=2, window_ms=1000, on_alert=fired.append)
        ])

        feed(alerter, [
            make_record(message="a", level=50, timestamp=0),
            make_record(message="b", level=50, timestamp=1500),
        ])
        assert fired == []
        assert [r.message for r in alerter.states["pair"].matched] == ["b"]

        feed(alerter, [make_record(message="c", level=50, timestamp=2000)])
        assert [[r.message for r in batch] for batch in fired] == [["b", "c"]]

    def test_no_window_accumulates_without_decay(self, make_record) -> None:
        fired: List[List[LogRecord]] = []
        alerter = ThresholdAlerter([
            AlertRule(name="slow", when=is_error, threshold=2, on_alert=fired.append)
        ])

        feed(alerter, [
            make_record(level=50, timestamp=0),
            make_record(level=50, timestamp=10_000_000),
        ])
        assert len(fired) == 1

    def test_default_threshold_fires_on_every_match(self, make_record) -> None:
        fired: List[List[LogRecord]] = []
        alerter = ThresholdAlerter([
            {"name": "any-error", "when": is_error, "on_alert": fired.append}
        ])

        feed(alerter, [make_record(level=50, timestamp=t) for t in (0, 1, 2)])
        assert [len(batch) for batch in fired] == [1, 1, 1]

    def test_non_matching_records_ignored(self, make_record) -> None:
        fired: List[List[LogRecord]] = []
        alerter = ThresholdAlerter([
            AlertRule(name="errors", when=is_error, on_alert=fired.append)
        ])

        feed(alerter, [make_record(level=30), make_record(level=40)])
        assert fired == []
        assert not alerter.states["errors"].matched

    def test_records_always_forwarded(self, make_record) -> None:
        alerter = ThresholdAlerter([
            AlertRule(name="errors", when=is_error, on_alert=lambda batch: None)
        ])
        records = [make_record(level=30), make_record(level=50)]
        assert feed(alerter, records) == records


class TestAlertFailures:
    """Test isolation of predicate and callback failures."""

    def test_callback_failure_reported_and_state_cleared(
        self, make_record, diagnostics, captured_failures
    ) -> None:
        def explode(batch):
            raise RuntimeError("pager down")

        alerter = ThresholdAlerter(
            [AlertRule(name="boom", when=is_error, on_alert=explode)],
            diagnostics=diagnostics,
        )
        forwarded = feed(alerter, [make_record(level=50, timestamp=5)])

        assert len(forwarded) == 1
        assert len(captured_failures) == 1
        failure = captured_failures[0]
        assert isinstance(failure, AlertCallbackFailure)
        assert failure.details["rule"] == "boom"
        assert isinstance(failure.cause, RuntimeError)
        assert alerter.states["boom"].last_fired_at == 5
        assert not alerter.states["boom"].matched

    def test_predicate_failure_skips_rule(self, make_record, diagnostics, captured_failures) -> None:
        fired = []

        def broken(record):
            raise KeyError("missing")

        alerter = ThresholdAlerter(
            [
                AlertRule(name="broken", when=broken, on_alert=fired.append),
                AlertRule(name="ok", when=is_error, on_alert=fired.append),
            ],
            diagnostics=diagnostics,
        )
        forwarded = feed(alerter, [make_record(level=50)])

        assert len(forwarded) == 1
        assert len(fired) == 1
        assert captured_failures[0].details == {"rule": "broken", "phase": "when"}

    @pytest.mark.asyncio
    async def test_async_callback_failure_reported(
        self, make_record, diagnostics, captured_failures
    ) -> None:
        async def notify(batch):
            await asyncio.sleep(0)
            raise ConnectionError("webhook unreachable")

        alerter = ThresholdAlerter(
            [AlertRule(name="async", when=is_error, on_alert=notify)],
            diagnostics=diagnostics,
        )
        feed(alerter, [make_record(level=50)])
        assert len(alerter.pending) == 1

        await asyncio.gather(*alerter.pending, return_exceptions=True)
        await asyncio.sleep(0)

        assert len(captured_failures) == 1
        assert isinstance(captured_failures[0].cause, ConnectionError)

    def test_alerts_counted(self, make_record, diagnostics, metrics) -> None:
        alerter = ThresholdAlerter(
            [AlertRule(name="errors", when=is_error, on_alert=lambda batch: None)],
            diagnostics=diagnostics,
            metrics=metrics,
        )
        feed(alerter, [make_record(level=50), make_record(level=50)])
        assert metrics.value("logpipe_alerts_fired_total", rule="errors") == 2


class TestAlertRuleConfiguration:
    """Test construction-time validation of rules."""

    def test_zero_threshold_rejected(self) -> None:
        with pytest.raises(ConfigurationError):
            AlertRule(name="bad", when=is_error, on_alert=print, threshold=0)

    def test_negative_window_rejected(self) -> None:
        with pytest.raises(ConfigurationError):
            AlertRule(name="bad", when=is_error, on_alert=print, window_ms=-1)

    def test_negative_cooldown_rejected(self) -> None:
        with pytest.raises(ConfigurationError):
            AlertRule(name="bad", when=is_error, on_alert=print, cooldown_ms=-5)

    def test_duplicate_rule_names_rejected(self) -> None:
        rule = AlertRule(name="dup", when=is_error, on_alert=print)
        with pytest.raises(ConfigurationError):
            ThresholdAlerter([rule, rule])
