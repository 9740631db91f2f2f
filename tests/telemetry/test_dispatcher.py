"""Tests for fire-and-forget dispatch."""

import asyncio

from services.telemetry import EventDispatcher


async def test_dispatch_does_not_wait_for_sink():
    dispatcher = EventDispatcher()
    release = asyncio.Event()
    delivered = []

    async def slow_sink(value):
        await release.wait()
        delivered.append(value)

    dispatcher.dispatch("analytics", "slow", slow_sink, 1)

    assert delivered == []
    assert dispatcher.pending == 1

    release.set()
    await dispatcher.drain()

    assert delivered == [1]
    assert dispatcher.pending == 0


async def test_sink_failure_is_not_raised():
    dispatcher = EventDispatcher()

    async def broken_sink():
        raise ConnectionError("unreachable")

    task = dispatcher.dispatch("audit", "n8n.workflow.failed", broken_sink)
    await dispatcher.drain()

    assert isinstance(task.exception(), ConnectionError)
    assert dispatcher.pending == 0


async def test_sync_sink_error_stays_inside_task():
    dispatcher = EventDispatcher()

    def not_a_coroutine():
        raise RuntimeError("bad sink")

    # The call itself happens inside the task, so dispatch() returns normally
    dispatcher.dispatch("audit", "n8n.node.started", not_a_coroutine)
    await dispatcher.drain()

    assert dispatcher.pending == 0


async def test_one_failing_sink_does_not_block_the_other():
    dispatcher = EventDispatcher()
    delivered = []

    async def broken():
        raise ValueError("nope")

    async def working(value):
        delivered.append(value)

    dispatcher.dispatch("audit", "a", broken)
    dispatcher.dispatch("analytics", "b", working, "ok")
    await dispatcher.drain()

    assert delivered == ["ok"]


async def test_same_sink_calls_start_in_emission_order():
    dispatcher = EventDispatcher()
    order = []

    async def sink(value):
        order.append(value)

    for i in range(5):
        dispatcher.dispatch("analytics", f"event-{i}", sink, i)
    await dispatcher.drain()

    assert order == [0, 1, 2, 3, 4]
