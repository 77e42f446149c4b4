"""Retry coordinator tests."""

import pytest

from difylink.errors import ClientError, NetworkError, RateLimited, ServerError, ValidationError
from difylink.utils.retry import RetryCoordinator, compute_backoff


class Recorder:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


def flaky(*outcomes):
    """Coroutine factory that raises or returns ``outcomes`` in order."""
    calls = []

    async def request():
        outcome = outcomes[len(calls)]
        calls.append(outcome)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    return request, calls


def test_compute_backoff_without_jitter():
    assert [compute_backoff(n, base=1.0, jitter=0) for n in range(4)] == [1.0, 2.0, 4.0, 8.0]


def test_compute_backoff_jitter_bounds():
    for attempt in range(3):
        delay = compute_backoff(attempt, base=0.5, jitter=1.0)
        assert 0.5 * 2**attempt <= delay <= 0.5 * 2**attempt + 1.0


@pytest.mark.asyncio
async def test_retries_until_success():
    sleep = Recorder()
    retry = RetryCoordinator(max_retries=3, base_delay=1.0, jitter=0, sleep=sleep)
    request, calls = flaky(ServerError("boom"), RateLimited("slow down"), {"ok": True})

    assert await retry.run(request) == {"ok": True}
    assert len(calls) == 3
    assert sleep.delays == [1.0, 2.0]


@pytest.mark.asyncio
async def test_gives_up_after_max_retries():
    sleep = Recorder()
    retry = RetryCoordinator(max_retries=3, base_delay=1.0, jitter=0, sleep=sleep)
    request, calls = flaky(*[NetworkError(f"down {n}") for n in range(4)])

    with pytest.raises(NetworkError, match="down 3"):
        await retry.run(request)
    assert len(calls) == 4
    assert sleep.delays == [1.0, 2.0, 4.0]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error",
    [ClientError("bad", status_code=400), ValidationError("nope"), RuntimeError("bug")],
)
async def test_terminal_errors_are_not_retried(error):
    sleep = Recorder()
    retry = RetryCoordinator(sleep=sleep)
    request, calls = flaky(error)

    with pytest.raises(type(error)):
        await retry.run(request)
    assert len(calls) == 1
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_custom_classifier():
    sleep = Recorder()
    retry = RetryCoordinator(
        max_retries=1, base_delay=0, jitter=0, classify=lambda exc: True, sleep=sleep
    )
    request, calls = flaky(ValueError("odd"), "fine")

    assert await retry.run(request) == "fine"
    assert len(calls) == 2
