"""Tests for the concurrency limiter."""

from __future__ import annotations

import asyncio

import pytest

from runtree.limiter import ConcurrencyLimiter, limit_concurrency


class TestConcurrencyLimiterInit:
    """Tests for construction."""

    @pytest.mark.parametrize("n", [0, -1])
    def test_rejects_less_than_one(self, n: int) -> None:
        with pytest.raises(ValueError, match="concurrency"):
            limit_concurrency(n)

    def test_initial_state(self) -> None:
        limiter = limit_concurrency(3)

        assert isinstance(limiter, ConcurrencyLimiter)
        assert limiter.concurrency == 3
        assert limiter.active_count == 0
        assert limiter.pending_count == 0


class TestConcurrencyLimiterBounds:
    """Tests for bounded, FIFO execution."""

    @pytest.mark.asyncio
    async def test_never_exceeds_limit(self) -> None:
        limiter = limit_concurrency(3)
        active = 0
        peak = 0

        async def work(i: int) -> int:
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1
            return i * 2

        results = await asyncio.gather(*(limiter(lambda i=i: work(i)) for i in range(10)))

        assert results == [i * 2 for i in range(10)]
        assert peak == 3
        assert limiter.active_count == 0

    @pytest.mark.asyncio
    async def test_queued_calls_start_in_submission_order(self) -> None:
        limiter = limit_concurrency(1)
        started: list[int] = []

        async def work(i: int) -> None:
            started.append(i)
            await asyncio.sleep(0)

        await asyncio.gather(*(limiter(lambda i=i: work(i)) for i in range(6)))

        assert started == list(range(6))

    @pytest.mark.asyncio
    async def test_pending_count(self) -> None:
        limiter = limit_concurrency(1)
        release = asyncio.Event()

        async def blocker() -> None:
            await release.wait()

        tasks = [asyncio.create_task(limiter(blocker)) for _ in range(3)]
        await asyncio.sleep(0)

        assert limiter.active_count == 1
        assert limiter.pending_count == 2

        release.set()
        await asyncio.gather(*tasks)
        assert limiter.active_count == 0


class TestConcurrencyLimiterErrors:
    """Tests for error pass-through and cancellation."""

    @pytest.mark.asyncio
    async def test_exception_passes_through_and_frees_slot(self) -> None:
        limiter = limit_concurrency(1)

        async def boom() -> None:
            raise KeyError("boom")

        async def ok() -> str:
            return "ok"

        results = await asyncio.gather(limiter(boom), limiter(ok), return_exceptions=True)

        assert isinstance(results[0], KeyError)
        assert results[1] == "ok"
        assert limiter.active_count == 0

    @pytest.mark.asyncio
    async def test_cancelled_waiter_is_removed(self) -> None:
        limiter = limit_concurrency(1)
        release = asyncio.Event()
        ran: list[str] = []

        async def blocker() -> None:
            await release.wait()

        async def record(name: str) -> None:
            ran.append(name)

        first = asyncio.create_task(limiter(blocker))
        waiting = asyncio.create_task(limiter(lambda: record("cancelled")))
        last = asyncio.create_task(limiter(lambda: record("last")))
        await asyncio.sleep(0)

        waiting.cancel()
        await asyncio.sleep(0)
        release.set()
        await asyncio.gather(first, last)

        assert waiting.cancelled()
        assert ran == ["last"]
        assert limiter.active_count == 0
        assert limiter.pending_count == 0
