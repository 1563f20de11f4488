"""Bounded concurrency helpers for the async engines."""

import asyncio
from typing import Any, Awaitable, Callable, Iterable, List, TypeVar

T = TypeVar("T")


async def gather_limited(
    limit: int,
    items: Iterable[T],
    worker: Callable[[T], Awaitable[Any]],
    return_exceptions: bool = False,
) -> List[Any]:
    """
    Run ``worker`` over ``items`` with at most ``limit`` running at once.

    Results keep the order of ``items``. With ``return_exceptions`` a failing item
    yields its exception instead of cancelling the others.
    """
    semaphore = asyncio.Semaphore(limit)

    async def run(item: T) -> Any:
        async with semaphore:
            return await worker(item)

    return await asyncio.gather(*(run(item) for item in items), return_exceptions=return_exceptions)
