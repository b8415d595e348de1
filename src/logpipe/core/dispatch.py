"""
Invocation of user callables that may be synchronous or asynchronous.

Stages, sinks and alert callbacks can return an awaitable. With a running
event loop the awaitable is scheduled as a task and tracked in the caller's
pending set (fire-and-initiate); without one it is run to completion in
place on a temporary loop, which is not closed until every task spawned
on it has finished. Failures go to ``on_error`` in both cases and are never
raised.
"""

import asyncio
import inspect
from typing import Any, Awaitable, Callable, Optional, Set

import structlog

logger = structlog.get_logger(__name__)

ErrorHandler = Callable[[BaseException], None]
PendingSet = Set["asyncio.Task[Any]"]


def running_loop() -> Optional[asyncio.AbstractEventLoop]:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


async def _await(awaitable: Awaitable[Any]) -> Any:
    return await awaitable


async def _run_in_place(awaitable: Awaitable[Any]) -> Any:
    try:
        return await awaitable
    finally:
        # Settle tasks spawned on this loop, such as async sink deliveries.
        current = asyncio.current_task()
        while True:
            others = [t for t in asyncio.all_tasks() if t is not current]
            if not others:
                break
            await asyncio.gather(*others, return_exceptions=True)


def invoke(
    fn: Callable[..., Any],
    *args: Any,
    on_error: ErrorHandler,
    pending: PendingSet,
) -> Optional["asyncio.Task[Any]"]:
    """Call ``fn(*args)``, routing exceptions and awaitables."""
    try:
        result = fn(*args)
    except Exception as e:
        on_error(e)
        return None

    if not inspect.isawaitable(result):
        return None
    return track(result, on_error=on_error, pending=pending)


def track(
    awaitable: Awaitable[Any],
    *,
    on_error: ErrorHandler,
    pending: PendingSet,
) -> Optional["asyncio.Task[Any]"]:
    loop = running_loop()
    if loop is None:
        try:
            asyncio.run(_run_in_place(awaitable))
        except Exception as e:
            on_error(e)
        return None

    task = loop.create_task(_await(awaitable))
    pending.add(task)

    def _done(t: "asyncio.Task[Any]") -> None:
        pending.discard(t)
        if t.cancelled():
            logger.warning("Pending pipeline task cancelled")
            on_error(asyncio.CancelledError("task cancelled before completion"))
            return
        exc = t.exception()
        if exc is not None:
            on_error(exc)

    task.add_done_callback(_done)
    return task


async def drain(pending: PendingSet) -> None:
    """
    Wait until every tracked task on the running loop, including ones
    spawned meanwhile, is done.
    """
    loop = asyncio.get_running_loop()
    while True:
        tasks = [t for t in pending if t.get_loop() is loop]
        if not tasks:
            return
        await asyncio.gather(*tasks, return_exceptions=True)
