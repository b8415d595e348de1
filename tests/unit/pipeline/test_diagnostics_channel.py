"""
Tests for the diagnostics channel and sync/async dispatch helpers.
"""

import asyncio

import pytest

from logpipe.core.diagnostics import DiagnosticsChannel
from logpipe.core.dispatch import drain, invoke
from logpipe.core.exceptions import DeliveryFailure, StageFailure


def failure(name: str = "sink") -> DeliveryFailure:
    return DeliveryFailure(sink=name, operation="deliver", cause=RuntimeError("x"))


class TestDiagnosticsChannel:
    """Test listener dispatch."""

    def test_listeners_receive_failures(self) -> None:
        received = []
        channel = DiagnosticsChannel()
        channel.subscribe(received.append)

        reported = failure()
        channel.report(reported)

        assert received == [reported]

    def test_unsubscribe(self) -> None:
        received = []
        channel = DiagnosticsChannel()
        unsubscribe = channel.subscribe(received.append)

        unsubscribe()
        unsubscribe()
        channel.report(failure())

        assert received == []

    def test_failing_listener_does_not_stop_others(self) -> None:
        received = []

        def broken(f):
            raise RuntimeError("listener bug")

        channel = DiagnosticsChannel()
        channel.subscribe(broken)
        channel.subscribe(received.append)
        channel.report(failure())

        assert len(received) == 1

    def test_reentrant_report_not_redispatched(self) -> None:
        received = []
        channel = DiagnosticsChannel()

        def echo(f):
            received.append(f)
            channel.report(StageFailure(stage="echo", cause=RuntimeError("again")))

        channel.subscribe(echo)
        channel.report(failure())

        assert len(received) == 1

    def test_failures_counted(self, metrics) -> None:
        channel = DiagnosticsChannel(metrics=metrics)
        channel.report(failure())
        channel.report(failure())
        assert metrics.value("logpipe_failures_total", error_code="delivery_failure") == 2


class TestInvoke:
    """Test sync/async invocation routing."""

    def test_sync_result_not_tracked(self) -> None:
        pending = set()
        errors = []
        assert invoke(lambda: 1, on_error=errors.append, pending=pending) is None
        assert not pending
        assert errors == []

    def test_sync_exception_routed(self) -> None:
        errors = []

        def boom():
            raise ValueError("bad")

        invoke(boom, on_error=errors.append, pending=set())
        assert isinstance(errors[0], ValueError)

    def test_awaitable_run_in_place_without_loop(self) -> None:
        done = []

        async def work():
            done.append(True)

        invoke(work, on_error=lambda e: None, pending=set())
        assert done == [True]

    def test_in_place_run_settles_spawned_tasks(self) -> None:
        pending = set()
        done = []

        async def child():
            await asyncio.sleep(0.01)
            done.append("child")

        async def parent():
            invoke(child, on_error=lambda e: None, pending=pending)

        invoke(parent, on_error=lambda e: None, pending=pending)

        assert done == ["child"]
        assert not pending

    @pytest.mark.asyncio
    async def test_cancelled_task_reported(self) -> None:
        errors = []

        async def work():
            await asyncio.sleep(10)

        task = invoke(work, on_error=errors.append, pending=set())
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        await asyncio.sleep(0)

        assert len(errors) == 1
        assert isinstance(errors[0], asyncio.CancelledError)

    @pytest.mark.asyncio
    async def test_awaitable_tracked_with_loop(self) -> None:
        pending = set()
        errors = []

        async def work():
            await asyncio.sleep(0.01)
            raise KeyError("late")

        task = invoke(work, on_error=errors.append, pending=pending)
        assert task in pending

        await drain(pending)
        await asyncio.sleep(0)

        assert not pending
        assert isinstance(errors[0], KeyError)

    @pytest.mark.asyncio
    async def test_drain_waits_for_spawned_tasks(self) -> None:
        pending = set()
        order = []

        async def child():
            await asyncio.sleep(0.01)
            order.append("child")

        async def parent():
            invoke(child, on_error=lambda e: None, pending=pending)
            order.append("parent")

        invoke(parent, on_error=lambda e: None, pending=pending)
        await drain(pending)

        assert order == ["parent", "child"]
