import asyncio
from typing import Any, Dict, List, Set

import pytest

from batch_generation_service.jobs.models import JobConfig
from batch_generation_service.jobs.orchestrator import BatchOrchestrator
from batch_generation_service.jobs.retry import RetryPolicy
from batch_generation_service.jobs.store import JsonFileBatchStore


class RecordingClient:
    """Succeeds after a short sleep, tracking how many calls overlap."""

    def __init__(self, delay: float = 0.01, fail_names: Set[str] = frozenset()) -> None:
        self.delay = delay
        self.fail_names = set(fail_names)
        self.calls: List[Dict[str, Any]] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def generate(self, payload: Dict[str, Any]) -> Any:
        self.calls.append(payload)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
        finally:
            self.in_flight -= 1
        if payload.get("name") in self.fail_names:
            raise RuntimeError(f"generation failed for {payload['name']}")
        return {"id": f"result-{payload.get('name')}", "questions": [payload.get("name")]}


class FlakyClient:
    """Fails a fixed number of times per payload name before succeeding."""

    def __init__(self, failures: int) -> None:
        self.failures = failures
        self.attempts: Dict[str, int] = {}

    async def generate(self, payload: Dict[str, Any]) -> Any:
        name = payload["name"]
        self.attempts[name] = self.attempts.get(name, 0) + 1
        if self.attempts[name] <= self.failures:
            raise RuntimeError("temporary outage")
        return {"id": name}


def make_configs(*names: str) -> List[JobConfig]:
    return [JobConfig(id=f"cfg-{name}", name=name, payload={"name": name}) for name in names]


def make_orchestrator(store, client, **kwargs) -> BatchOrchestrator:
    kwargs.setdefault("retry_policy", RetryPolicy(max_attempts=2, base_delay=0))
    return BatchOrchestrator(store, client, **kwargs)


@pytest.fixture
def store(tmp_path):
    return JsonFileBatchStore(tmp_path / "batches.json")
