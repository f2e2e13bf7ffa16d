"""Bounded worker pool that yields each job as it settles."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from typing import (
    Any,
    AsyncIterator,
    Awaitable,
    Callable,
    Deque,
    Dict,
    Generic,
    Iterable,
    Optional,
    TypeVar,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

DEFAULT_CONCURRENCY = 2

CancelCheck = Callable[[], Awaitable[bool]]


@dataclass
class Outcome(Generic[T, R]):
    item: T
    value: Optional[R] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class ConcurrencyScheduler:
    """Run at most ``limit`` workers at once over a FIFO queue of items.

    Cancellation is cooperative: once ``should_stop`` reports true nothing new
    is dispatched, in-flight workers finish, and their outcomes are still
    yielded.
    """

    def __init__(self, limit: int = DEFAULT_CONCURRENCY) -> None:
        if limit < 1:
            raise ValueError("Concurrency limit must be at least 1")
        self.limit = limit

    async def run(
        self,
        items: Iterable[T],
        worker: Callable[[T], Awaitable[R]],
        should_stop: Optional[CancelCheck] = None,
    ) -> AsyncIterator[Outcome[T, R]]:
        queue: Deque[T] = deque(items)
        in_flight: Dict["asyncio.Task[Any]", T] = {}
        stopping = False

        async def invoke(item: T) -> R:
            # Calling the worker inside the task turns a synchronous raise into a task failure.
            return await worker(item)

        try:
            while queue or in_flight:
                if not stopping and should_stop is not None and await should_stop():
                    stopping = True
                    logger.info("Stop requested, draining in-flight work", extra={"skipped": len(queue)})
                    queue.clear()
                if not stopping:
                    while queue and len(in_flight) < self.limit:
                        item = queue.popleft()
                        in_flight[asyncio.ensure_future(invoke(item))] = item
                if not in_flight:
                    break

                done, _pending = await asyncio.wait(in_flight, return_when=asyncio.FIRST_COMPLETED)
                for task in done:
                    item = in_flight.pop(task)
                    if task.cancelled():
                        yield Outcome(item=item, error=asyncio.CancelledError())
                        continue
                    exc = task.exception()
                    if exc is not None:
                        yield Outcome(item=item, error=exc)
                    else:
                        yield Outcome(item=item, value=task.result())
        finally:
            if in_flight:
                await asyncio.gather(*in_flight, return_exceptions=True)


__all__ = ["ConcurrencyScheduler", "Outcome", "CancelCheck", "DEFAULT_CONCURRENCY"]
