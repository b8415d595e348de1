"""
Tests for the middleware chain.

Tests ordering, dropping, record replacement, async stages and failure
isolation.
"""

import asyncio

import pytest

from logpipe.core.chain import MiddlewareChain, stage_name
from logpipe.core.exceptions import StageFailure


class TestChainOrdering:
    """Test stage ordering and record flow."""

    def test_stages_run_in_registration_order(self, make_record) -> None:
        calls = []

        def first(record, proceed):
            calls.append("first")
            proceed(record)

        def second(record, proceed):
            calls.append("second")
            proceed(record)

        delivered = []
        chain = MiddlewareChain([first, second])
        chain.run(make_record(), delivered.append)

        assert calls == ["first", "second"]
        assert len(delivered) == 1

    def test_empty_chain_reaches_terminal(self, make_record) -> None:
        delivered = []
        record = make_record()
        MiddlewareChain().run(record, delivered.append)
        assert delivered == [record]

    def test_stage_can_replace_record(self, make_record) -> None:
        def tag(record, proceed):
            proceed(record.with_meta(tagged=True))

        delivered = []
        original = make_record(meta={"a": 1})
        MiddlewareChain([tag]).run(original, delivered.append)

        assert delivered[0].meta == {"a": 1, "tagged": True}
        assert original.meta == {"a": 1}

    def test_stage_not_calling_proceed_drops(self, make_record) -> None:
        seen = []

        def drop(record, proceed):
            return None

        def after(record, proceed):
            seen.append(record)
            proceed(record)

        delivered = []
        MiddlewareChain([drop, after]).run(make_record(), delivered.append)

        assert seen == []
        assert delivered == []

    def test_double_proceed_forwards_once(self, make_record) -> None:
        def eager(record, proceed):
            proceed(record)
            proceed(record)

        delivered = []
        MiddlewareChain([eager]).run(make_record(), delivered.append)
        assert len(delivered) == 1

    def test_stage_added_later_applies_to_later_records(self, make_record) -> None:
        chain = MiddlewareChain()
        delivered = []

        def late(record, proceed):
            proceed(record.with_meta(late=True))

        def adder(record, proceed):
            chain.add(late)
            proceed(record)

        chain.add(adder)
        chain.run(make_record(message="one"), delivered.append)
        assert "late" not in delivered[0].meta

        chain.run(make_record(message="two"), delivered.append)
        assert delivered[1].meta["late"] is True

    def test_non_callable_stage_rejected(self) -> None:
        with pytest.raises(TypeError):
            MiddlewareChain().add("not a stage")


class TestChainFailures:
    """Test that stage failures stay inside the chain."""

    def test_raising_stage_reported_and_record_dropped(
        self, make_record, diagnostics, captured_failures
    ) -> None:
        def broken(record, proceed):
            raise ValueError("bad stage")

        delivered = []
        record = make_record()
        MiddlewareChain([broken], diagnostics=diagnostics).run(record, delivered.append)

        assert delivered == []
        assert len(captured_failures) == 1
        failure = captured_failures[0]
        assert isinstance(failure, StageFailure)
        assert failure.details == {"stage": "broken", "record_id": record.id}
        assert isinstance(failure.cause, ValueError)

    def test_failure_counted(self, make_record, diagnostics, metrics) -> None:
        def broken(record, proceed):
            raise ValueError("bad stage")

        MiddlewareChain([broken], diagnostics=diagnostics).run(make_record(), lambda r: None)
        assert metrics.value("logpipe_failures_total", error_code="stage_failure") == 1

    def test_sync_async_stage_runs_without_loop(self, make_record) -> None:
        async def slow(record, proceed):
            await asyncio.sleep(0)
            proceed(record.with_meta(async_seen=True))

        delivered = []
        MiddlewareChain([slow]).run(make_record(), delivered.append)
        assert delivered[0].meta["async_seen"] is True


class TestAsyncStages:
    """Test stages returning awaitables under a running loop."""

    @pytest.mark.asyncio
    async def test_async_stage_tracked_until_done(self, make_record) -> None:
        async def slow(record, proceed):
            await asyncio.sleep(0.01)
            proceed(record)

        delivered = []
        chain = MiddlewareChain([slow])
        chain.run(make_record(), delivered.append)

        assert delivered == []
        assert len(chain.pending) == 1

        await asyncio.gather(*chain.pending)
        assert len(delivered) == 1

    @pytest.mark.asyncio
    async def test_async_stage_failure_reported(
        self, make_record, diagnostics, captured_failures
    ) -> None:
        async def broken(record, proceed):
            await asyncio.sleep(0)
            raise RuntimeError("async failure")

        chain = MiddlewareChain([broken], diagnostics=diagnostics)
        chain.run(make_record(), lambda r: None)

        await asyncio.gather(*chain.pending, return_exceptions=True)
        await asyncio.sleep(0)

        assert len(captured_failures) == 1
        assert isinstance(captured_failures[0].cause, RuntimeError)


class TestStageName:
    """Test stage naming for diagnostics."""

    def test_function_name(self) -> None:
        def redact(record, proceed):
            proceed(record)

        assert stage_name(redact) == "redact"

    def test_name_attribute_wins(self) -> None:
        class Stage:
            name = "custom"

            def __call__(self, record, proceed):
                proceed(record)

        assert stage_name(Stage()) == "custom"

    def test_class_name_fallback(self) -> None:
        class Anonymous:
            def __call__(self, record, proceed):
                proceed(record)

        assert stage_name(Anonymous()) == "Anonymous"
