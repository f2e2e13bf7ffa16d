"""Bounded retries with linear backoff around one generation call."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

from tenacity import AsyncRetrying, RetryCallState, stop_after_attempt, wait_incrementing

logger = logging.getLogger(__name__)

R = TypeVar("R")

RetryHook = Callable[[int, BaseException], None]

DEFAULT_MAX_ATTEMPTS = 4
DEFAULT_BASE_DELAY_SECONDS = 5.0


@dataclass
class RetryPolicy:
    """Run a coroutine factory up to ``max_attempts`` times.

    The delay before attempt ``n`` (n >= 2) is ``base_delay * (n - 1)``; there
    is no jitter. Only the last error reaches the caller.
    """

    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    base_delay: float = DEFAULT_BASE_DELAY_SECONDS
    on_retry: Optional[RetryHook] = None
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay < 0:
            raise ValueError("base_delay must not be negative")

    def delay_before(self, attempt: int) -> float:
        return self.base_delay * max(attempt - 1, 0)

    def _before_sleep(self, state: RetryCallState) -> None:
        exc = state.outcome.exception() if state.outcome else None
        if exc is None:
            return
        logger.warning(
            "Attempt %s/%s failed: %s; retrying in %.1fs",
            state.attempt_number,
            self.max_attempts,
            exc,
            self.delay_before(state.attempt_number + 1),
        )
        if self.on_retry is not None:
            try:
                self.on_retry(state.attempt_number, exc)
            except Exception:
                logger.exception("Retry hook raised")

    async def execute(
        self,
        fn: Callable[[], Awaitable[R]],
        max_attempts: Optional[int] = None,
        base_delay: Optional[float] = None,
    ) -> R:
        attempts = self.max_attempts if max_attempts is None else max_attempts
        step = self.base_delay if base_delay is None else base_delay
        retrying = AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(attempts),
            wait=wait_incrementing(start=step, increment=step),
            before_sleep=self._before_sleep,
            sleep=self.sleep,
        )
        async for attempt in retrying:
            with attempt:
                return await fn()
        raise RuntimeError("retry loop exited without an outcome")  # pragma: no cover


__all__ = ["RetryPolicy", "RetryHook", "DEFAULT_MAX_ATTEMPTS", "DEFAULT_BASE_DELAY_SECONDS"]
