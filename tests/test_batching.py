"""Tests for batching.py — bounded concurrency and per-item failure tracking."""
from __future__ import annotations

import asyncio

import pytest

from ragbench.batching import BatchOutcome, bounded, run_bounded
from ragbench.errors import ConfigurationError


class TestRunBounded:
    def test_results_keep_input_order(self):
        async def worker(n: int) -> int:
            await asyncio.sleep(0.001 * (5 - n))
            return n * 10

        outcome = asyncio.run(run_bounded(range(5), worker, concurrency=5))
        assert outcome.results == [0, 10, 20, 30, 40]
        assert outcome.failures == []

    def test_failures_recorded_without_aborting(self):
        async def worker(n: int) -> int:
            if n % 2:
                raise ValueError(f"odd {n}")
            return n

        outcome = asyncio.run(run_bounded([0, 1, 2, 3], worker, concurrency=2))
        assert outcome.results == [0, 2]
        assert [failure.item for failure in outcome.failures] == [1, 3]
        assert outcome.failures[0].error == "odd 1"
        assert outcome.success_count == 2
        assert outcome.failure_count == 2

    def test_concurrency_is_bounded(self):
        in_flight = 0
        peak = 0

        async def worker(n: int) -> int:
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.005)
            in_flight -= 1
            return n

        asyncio.run(run_bounded(range(12), worker, concurrency=3))
        assert peak <= 3

    def test_progress_callback(self):
        seen: list[tuple[int, int]] = []

        async def worker(n: int) -> int:
            return n

        asyncio.run(run_bounded([1, 2, 3], worker, on_done=lambda done, total: seen.append((done, total))))
        assert seen[-1] == (3, 3)
        assert len(seen) == 3

    def test_empty_items(self):
        async def worker(n: int) -> int:
            return n

        outcome = asyncio.run(run_bounded([], worker))
        assert isinstance(outcome, BatchOutcome)
        assert outcome.results == []

    def test_non_positive_concurrency_rejected(self):
        async def worker(n: int) -> int:
            return n

        with pytest.raises(ConfigurationError):
            asyncio.run(run_bounded([1], worker, concurrency=0))


class TestBounded:
    def test_limits_calls_in_flight(self):
        in_flight = 0
        peak = 0

        async def call(n: int) -> int:
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.005)
            in_flight -= 1
            return n * 2

        limited = bounded(call, 2)

        async def run() -> list[int]:
            return list(await asyncio.gather(*(limited(n) for n in range(10))))

        assert asyncio.run(run()) == [n * 2 for n in range(10)]
        assert peak == 2

    def test_non_positive_limit_rejected(self):
        async def call(n: int) -> int:
            return n

        with pytest.raises(ConfigurationError):
            bounded(call, 0)
