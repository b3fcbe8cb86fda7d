from __future__ import annotations

import asyncio

from core.rate_gate import RateGate


def test_open_gate_does_not_block() -> None:
    gate = RateGate()

    async def scenario() -> None:
        await asyncio.wait_for(gate.wait(), timeout=1)

    asyncio.run(scenario())
    assert not gate.halted
    assert gate.halts == 0


def test_concurrent_trips_share_one_cooldown() -> None:
    calls: list[float] = []

    async def scenario() -> None:
        release = asyncio.Event()

        async def sleep(seconds: float) -> None:
            calls.append(seconds)
            await release.wait()

        gate = RateGate(sleep=sleep)
        tripper = asyncio.ensure_future(gate.trip(1000))
        await asyncio.sleep(0)

        joiners = [asyncio.ensure_future(gate.trip(5000)) for _ in range(3)]
        waiters = [asyncio.ensure_future(gate.wait()) for _ in range(3)]
        for _ in range(3):
            await asyncio.sleep(0)

        assert gate.halted
        assert not any(task.done() for task in [tripper, *joiners, *waiters])

        release.set()
        await asyncio.wait_for(asyncio.gather(tripper, *joiners, *waiters), timeout=1)

        assert not gate.halted
        assert gate.halts == 1

    asyncio.run(scenario())
    # Later trips joined the first halt; they neither restarted nor extended it.
    assert calls == [1.0]


def test_gate_can_halt_again_after_reopening() -> None:
    calls: list[float] = []

    async def sleep(seconds: float) -> None:
        calls.append(seconds)
        await asyncio.sleep(0)

    async def scenario() -> RateGate:
        gate = RateGate(sleep=sleep)
        await gate.trip(100)
        assert not gate.halted
        await gate.trip(200)
        return gate

    gate = asyncio.run(scenario())
    assert gate.halts == 2
    assert calls == [0.1, 0.2]


def test_cancelled_waiter_does_not_cancel_cooldown() -> None:
    async def scenario() -> None:
        release = asyncio.Event()

        async def sleep(seconds: float) -> None:
            await release.wait()

        gate = RateGate(sleep=sleep)
        tripper = asyncio.ensure_future(gate.trip(1000))
        await asyncio.sleep(0)
        waiter = asyncio.ensure_future(gate.wait())
        await asyncio.sleep(0)

        waiter.cancel()
        await asyncio.sleep(0)
        assert waiter.cancelled()
        assert gate.halted

        release.set()
        await asyncio.wait_for(tripper, timeout=1)
        assert not gate.halted

    asyncio.run(scenario())
