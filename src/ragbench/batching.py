"""Bounded-concurrency task pool that records failures per item.

One item failing never aborts the batch: the outcome carries the successful
results in input order next to a list of `(item, error)` failures.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Generic, Iterable, TypeVar

from .errors import ConfigurationError

T = TypeVar("T")
R = TypeVar("R")


@dataclass(slots=True)
class ItemFailure(Generic[T]):
    item: T
    error: str


@dataclass(slots=True)
class BatchOutcome(Generic[T, R]):
    """Per-item results of one pooled run."""

    results: list[R] = field(default_factory=list)
    failures: list[ItemFailure[T]] = field(default_factory=list)

    @property
    def success_count(self) -> int:
        return len(self.results)

    @property
    def failure_count(self) -> int:
        return len(self.failures)


async def run_bounded(
    items: Iterable[T],
    worker: Callable[[T], Awaitable[R]],
    concurrency: int = 5,
    on_done: Callable[[int, int], None] | None = None,
) -> BatchOutcome[T, R]:
    """Run `worker` over `items` with at most `concurrency` calls in flight.

    Args:
        items: Inputs to process.
        worker: Async callable applied to each item.
        concurrency: Maximum number of concurrent worker calls.
        on_done: Optional progress callback receiving `(finished, total)`.

    Returns:
        `BatchOutcome` with results in input order and the failed items.
    """
    if concurrency <= 0:
        raise ConfigurationError(f"concurrency must be positive, got {concurrency}")

    pending = list(items)
    semaphore = asyncio.Semaphore(concurrency)
    finished = 0

    async def _guarded(item: T) -> tuple[bool, R | Exception]:
        nonlocal finished
        async with semaphore:
            try:
                result: R | Exception = await worker(item)
                ok = True
            except Exception as exc:
                result, ok = exc, False
        finished += 1
        if on_done is not None:
            on_done(finished, len(pending))
        return ok, result

    settled = await asyncio.gather(*(_guarded(item) for item in pending))

    outcome: BatchOutcome[T, R] = BatchOutcome()
    for item, (ok, result) in zip(pending, settled, strict=True):
        if ok:
            outcome.results.append(result)  # type: ignore[arg-type]
        else:
            outcome.failures.append(ItemFailure(item=item, error=str(result)))
    return outcome


def bounded(fn: Callable[[T], Awaitable[R]], limit: int) -> Callable[[T], Awaitable[R]]:
    """Wrap an async callable so at most `limit` calls run at once.

    All callers of the returned function share one semaphore, so the cap
    holds across documents and across sentences of one document.
    """
    if limit <= 0:
        raise ConfigurationError(f"limit must be positive, got {limit}")
    semaphore = asyncio.Semaphore(limit)

    async def _limited(arg: T) -> R:
        async with semaphore:
            return await fn(arg)

    return _limited
