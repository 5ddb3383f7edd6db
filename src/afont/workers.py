"""Bounded-concurrency fan-out over a shared work queue."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from typing import TypeVar

T = TypeVar("T")
R = TypeVar("R")


async def map_bounded(
    items: Sequence[T],
    limit: int,
    fn: Callable[[T], Awaitable[R]],
) -> list[R]:
    """Apply ``fn`` to every item with at most ``limit`` calls in flight.

    A fixed pool of worker tasks pulls ``(index, item)`` pairs off one queue,
    so results come back in input order regardless of completion order.
    ``fn`` is expected to absorb soft failures itself; an exception it raises
    propagates once the remaining workers have drained the queue.
    """
    if not items:
        return []

    queue: asyncio.Queue[tuple[int, T]] = asyncio.Queue()
    for position, item in enumerate(items):
        queue.put_nowait((position, item))
    results: list[R | None] = [None] * len(items)

    async def worker() -> None:
        while True:
            try:
                position, item = queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            results[position] = await fn(item)

    worker_count = min(max(1, limit), len(items))
    outcomes = await asyncio.gather(
        *(worker() for _ in range(worker_count)), return_exceptions=True
    )
    for outcome in outcomes:
        if isinstance(outcome, BaseException):
            raise outcome
    return results  # type: ignore[return-value]
