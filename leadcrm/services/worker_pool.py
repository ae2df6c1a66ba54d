"""Bounded asyncio worker pool for best-effort batch work."""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Any, Generic, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


@dataclass
class ItemOutcome(Generic[T, R]):
    """Result of one work item: either ``result`` or ``error`` is set."""

    item: T
    result: Optional[R] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


async def map_with_concurrency(
    items: Sequence[T],
    worker: Callable[[T], Awaitable[R]],
    concurrency: int = 4,
    label: str = "batch",
) -> list[ItemOutcome[T, R]]:
    """Run ``worker`` over ``items`` with at most ``concurrency`` in flight.

    Workers pull the next index from a shared counter, so every item is
    handled exactly once. An exception raised for one item is recorded on its
    outcome and does not stop the others. Outcomes keep input order.
    """
    outcomes: list[Any] = [None] * len(items)
    next_index = 0

    async def run_worker():
        nonlocal next_index
        while next_index < len(items):
            current = next_index
            next_index += 1
            item = items[current]
            try:
                outcomes[current] = ItemOutcome(item=item, result=await worker(item))
            except Exception as exc:
                logger.exception(f"{label}: item {current} failed")
                outcomes[current] = ItemOutcome(item=item, error=exc)

    worker_count = max(1, min(concurrency, len(items)))
    if items:
        await asyncio.gather(*(run_worker() for _ in range(worker_count)))
    return outcomes
