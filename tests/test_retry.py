import asyncio

import pytest

from batch_generation_service.jobs.retry import RetryPolicy


class SleepRecorder:
    def __init__(self):
        self.delays = []

    async def __call__(self, seconds):
        self.delays.append(seconds)


def _failing_after(failures, calls):
    async def fn():
        calls.append(1)
        if len(calls) <= failures:
            raise RuntimeError(f"failure {len(calls)}")
        return "done"

    return fn


def test_succeeds_on_third_attempt():
    calls = []
    sleeper = SleepRecorder()
    policy = RetryPolicy(max_attempts=4, base_delay=5, sleep=sleeper)

    result = asyncio.run(policy.execute(_failing_after(2, calls)))

    assert result == "done"
    assert len(calls) == 3
    assert sleeper.delays == [5, 10]


def test_exhaustion_reraises_last_error():
    calls = []
    sleeper = SleepRecorder()
    policy = RetryPolicy(max_attempts=3, base_delay=2, sleep=sleeper)

    with pytest.raises(RuntimeError, match="failure 3"):
        asyncio.run(policy.execute(_failing_after(10, calls)))

    assert len(calls) == 3
    assert sleeper.delays == [2, 4]


def test_single_attempt_never_sleeps():
    calls = []
    sleeper = SleepRecorder()
    policy = RetryPolicy(max_attempts=1, base_delay=5, sleep=sleeper)

    with pytest.raises(RuntimeError):
        asyncio.run(policy.execute(_failing_after(1, calls)))

    assert len(calls) == 1
    assert sleeper.delays == []


def test_per_call_overrides():
    calls = []
    sleeper = SleepRecorder()
    policy = RetryPolicy(max_attempts=4, base_delay=5, sleep=sleeper)

    with pytest.raises(RuntimeError):
        asyncio.run(policy.execute(_failing_after(10, calls), max_attempts=2, base_delay=1))

    assert len(calls) == 2
    assert sleeper.delays == [1]


def test_retry_hook_is_notified_and_may_raise(caplog):
    seen = []

    def hook(attempt, exc):
        seen.append((attempt, str(exc)))
        raise ValueError("hook exploded")

    caplog.set_level("WARNING")
    policy = RetryPolicy(max_attempts=3, base_delay=0, on_retry=hook, sleep=SleepRecorder())

    result = asyncio.run(policy.execute(_failing_after(2, [])))

    assert result == "done"
    assert seen == [(1, "failure 1"), (2, "failure 2")]
    assert any("Retry hook raised" in record.message for record in caplog.records)


def test_delay_before_is_linear():
    policy = RetryPolicy(base_delay=5)
    assert [policy.delay_before(n) for n in (1, 2, 3, 4)] == [0, 5, 10, 15]


@pytest.mark.parametrize("kwargs", [{"max_attempts": 0}, {"base_delay": -1}])
def test_invalid_policy(kwargs):
    with pytest.raises(ValueError):
        RetryPolicy(**kwargs)
