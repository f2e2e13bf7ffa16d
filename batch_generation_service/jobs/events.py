"""Per-batch listener registry."""

from __future__ import annotations

import inspect
import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from .models import Batch, JobError, JobResult

logger = logging.getLogger(__name__)

EVENT_NAMES = ("on_progress", "on_complete", "on_error", "on_config_complete", "on_config_error")


@dataclass
class BatchListeners:
    """Callbacks for one observer. Any of them may be a coroutine function."""

    on_progress: Optional[Callable[[Batch], Any]] = None
    on_complete: Optional[Callable[[Batch], Any]] = None
    on_error: Optional[Callable[[Batch, str], Any]] = None
    on_config_complete: Optional[Callable[[Batch, JobResult], Any]] = None
    on_config_error: Optional[Callable[[Batch, JobError], Any]] = None


class Subscription:
    """Handle returned by :meth:`ListenerRegistry.register`; closing it unregisters."""

    def __init__(self, registry: "ListenerRegistry", batch_id: str, listeners: BatchListeners) -> None:
        self._registry = registry
        self.batch_id = batch_id
        self.listeners = listeners
        self._closed = False

    @property
    def active(self) -> bool:
        return not self._closed

    def close(self) -> None:
        if not self._closed:
            self._registry._discard(self.batch_id, self.listeners)
            self._closed = True

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


class ListenerRegistry:
    def __init__(self) -> None:
        self._listeners: Dict[str, List[BatchListeners]] = defaultdict(list)

    def register(self, batch_id: str, listeners: BatchListeners) -> Subscription:
        self._listeners[batch_id].append(listeners)
        return Subscription(self, batch_id, listeners)

    def unregister(self, batch_id: str) -> None:
        self._listeners.pop(batch_id, None)

    def _discard(self, batch_id: str, listeners: BatchListeners) -> None:
        registered = self._listeners.get(batch_id)
        if not registered:
            return
        self._listeners[batch_id] = [item for item in registered if item is not listeners]
        if not self._listeners[batch_id]:
            del self._listeners[batch_id]

    def count(self, batch_id: str) -> int:
        return len(self._listeners.get(batch_id, ()))

    async def emit(self, batch_id: str, event: str, *args: Any) -> None:
        if event not in EVENT_NAMES:
            raise ValueError(f"Unknown batch event {event!r}")
        for listeners in list(self._listeners.get(batch_id, ())):
            callback = getattr(listeners, event)
            if callback is None:
                continue
            try:
                outcome = callback(*args)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception:
                logger.exception("Batch listener failed", extra={"batch_id": batch_id, "event": event})


__all__ = ["BatchListeners", "EVENT_NAMES", "ListenerRegistry", "Subscription"]
