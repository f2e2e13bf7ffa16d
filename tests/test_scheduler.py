import asyncio

import pytest

from batch_generation_service.jobs.scheduler import ConcurrencyScheduler


async def _collect(scheduler, items, worker, should_stop=None):
    return [outcome async for outcome in scheduler.run(items, worker, should_stop=should_stop)]


def test_never_exceeds_limit():
    state = {"running": 0, "peak": 0}

    async def worker(item):
        state["running"] += 1
        state["peak"] = max(state["peak"], state["running"])
        await asyncio.sleep(0.01)
        state["running"] -= 1
        return item * 2

    outcomes = asyncio.run(_collect(ConcurrencyScheduler(3), range(10), worker))

    assert state["peak"] == 3
    assert sorted(outcome.value for outcome in outcomes) == [n * 2 for n in range(10)]
    assert all(outcome.ok for outcome in outcomes)


def test_limit_one_runs_in_submission_order():
    started = []

    async def worker(item):
        started.append(item)
        await asyncio.sleep(0)
        return item

    outcomes = asyncio.run(_collect(ConcurrencyScheduler(1), ["a", "b", "c"], worker))

    assert started == ["a", "b", "c"]
    assert [outcome.item for outcome in outcomes] == ["a", "b", "c"]


def test_worker_errors_are_yielded_not_raised():
    def worker(item):
        if item == "bad":
            raise ValueError("sync boom")
        return asyncio.sleep(0, result=item)

    outcomes = asyncio.run(_collect(ConcurrencyScheduler(2), ["ok", "bad"], worker))

    by_item = {outcome.item: outcome for outcome in outcomes}
    assert by_item["ok"].value == "ok"
    assert isinstance(by_item["bad"].error, ValueError)
    assert not by_item["bad"].ok


def test_stop_drains_in_flight_and_skips_queue():
    started = []
    flag = {"stop": False}

    async def worker(item):
        started.append(item)
        flag["stop"] = True
        await asyncio.sleep(0.01)
        return item

    async def should_stop():
        return flag["stop"]

    outcomes = asyncio.run(_collect(ConcurrencyScheduler(2), range(6), worker, should_stop))

    assert started == [0, 1]
    assert sorted(outcome.item for outcome in outcomes) == [0, 1]


def test_empty_input_yields_nothing():
    async def worker(item):
        return item

    assert asyncio.run(_collect(ConcurrencyScheduler(), [], worker)) == []


def test_invalid_limit():
    with pytest.raises(ValueError):
        ConcurrencyScheduler(0)
