"""Workflow run poller tests."""

import pytest

from difylink.contracts import RunStatus
from difylink.errors import PollTimeoutError, ServerError, WorkflowExecutionError
from difylink.poller import WorkflowRunPoller
from difylink.utils.retry import RetryCoordinator


class FakeClock:
    """Clock that only moves when the fake sleep is awaited."""

    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def __call__(self):
        return self.now

    async def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


def scripted(*responses):
    calls = []

    async def fetch(run_id):
        calls.append(run_id)
        response = responses[min(len(calls), len(responses)) - 1]
        if isinstance(response, BaseException):
            raise response
        return response

    return fetch, calls


def make_poller(fetch, clock, timeout=60, interval=2):
    retry = RetryCoordinator(base_delay=0, jitter=0, sleep=clock.sleep)
    return WorkflowRunPoller(
        fetch, retry=retry, timeout=timeout, interval=interval, clock=clock, sleep=clock.sleep
    )


@pytest.mark.asyncio
async def test_polls_until_succeeded():
    clock = FakeClock()
    fetch, calls = scripted(
        {"status": "running"},
        {"status": "running"},
        {"status": "succeeded", "outputs": {"answer": 42}, "total_steps": 3},
    )

    state = await make_poller(fetch, clock).poll("run-1")

    assert state.status is RunStatus.SUCCEEDED
    assert state.outputs == {"answer": 42}
    assert state.total_steps == 3
    assert state.polls == 3
    assert calls == ["run-1"] * 3
    assert clock.sleeps == [2, 2]


@pytest.mark.asyncio
async def test_stopped_is_terminal():
    clock = FakeClock()
    fetch, _ = scripted({"status": "stopped"})
    state = await make_poller(fetch, clock).poll("run-2")
    assert state.status is RunStatus.STOPPED
    assert state.outputs == {}


@pytest.mark.asyncio
async def test_failed_run_raises():
    clock = FakeClock()
    fetch, _ = scripted({"status": "running"}, {"status": "failed", "error": "node crashed"})

    with pytest.raises(WorkflowExecutionError) as info:
        await make_poller(fetch, clock).poll("run-3")
    assert info.value.run_id == "run-3"
    assert info.value.detail == "node crashed"


@pytest.mark.asyncio
async def test_timeout_raises_poll_timeout():
    clock = FakeClock()
    fetch, calls = scripted({"status": "running"})

    with pytest.raises(PollTimeoutError) as info:
        await make_poller(fetch, clock, timeout=5, interval=2).poll("run-4")
    assert info.value.run_id == "run-4"
    assert info.value.elapsed > 5
    assert len(calls) == 3


@pytest.mark.asyncio
async def test_transient_status_errors_are_retried():
    clock = FakeClock()
    fetch, calls = scripted(ServerError("hiccup"), {"status": "succeeded", "outputs": {}})

    state = await make_poller(fetch, clock).poll("run-5")
    assert state.status is RunStatus.SUCCEEDED
    assert len(calls) == 2


def test_status_parsing():
    assert RunStatus.parse("partial-succeeded") is RunStatus.SUCCEEDED
    assert RunStatus.parse("waiting") is RunStatus.RUNNING
    assert RunStatus.parse(None) is RunStatus.RUNNING
    assert RunStatus.FAILED.is_terminal and not RunStatus.RUNNING.is_terminal
