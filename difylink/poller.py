"""Polling state machine for blocking-mode workflow runs."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional

from .constants import DEFAULT_POLL_INTERVAL, DEFAULT_WORKFLOW_TIMEOUT
from .contracts import RunStatus, WorkflowRunState
from .errors import PollTimeoutError, WorkflowExecutionError
from .utils.retry import RetryCoordinator, Sleep

logger = logging.getLogger(__name__)

FetchStatus = Callable[[str], Awaitable[Dict[str, Any]]]


class WorkflowRunPoller:
    """Poll a workflow run until it is terminal or the timeout elapses.

    Every status call goes through ``retry``. The loop is sequential and owns
    its :class:`WorkflowRunState`; a timeout does not cancel the remote run.

    Args:
        fetch_status: Coroutine function returning the run details for a run id.
        retry: Coordinator wrapping each status call.
        timeout: Total seconds allowed, measured from the start of :meth:`poll`.
        interval: Seconds slept between status calls.
        clock: Monotonic clock, injectable for tests.
        sleep: Awaitable sleep, injectable for tests.
    """

    def __init__(
        self,
        fetch_status: FetchStatus,
        retry: Optional[RetryCoordinator] = None,
        timeout: float = DEFAULT_WORKFLOW_TIMEOUT,
        interval: float = DEFAULT_POLL_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
        sleep: Optional[Sleep] = None,
    ) -> None:
        self._fetch_status = fetch_status
        self._retry = retry or RetryCoordinator()
        self.timeout = timeout
        self.interval = interval
        self._clock = clock
        self._sleep = sleep or asyncio.sleep

    async def poll(self, run_id: str) -> WorkflowRunState:
        """Drive the run to a terminal state.

        Returns:
            The final state for ``succeeded`` or ``stopped`` runs.

        Raises:
            PollTimeoutError: The run was still running when the timeout passed.
            WorkflowExecutionError: The run finished with status ``failed``.
        """
        state = WorkflowRunState(run_id=run_id)
        started = self._clock()

        while True:
            elapsed = self._clock() - started
            if elapsed > self.timeout:
                logger.warning(
                    f"Workflow run {run_id} still {state.status.value} after {elapsed:.1f}s"
                )
                raise PollTimeoutError(run_id, elapsed)

            details = await self._retry.run(lambda: self._fetch_status(run_id))
            state.apply(details or {}, self._clock() - started)
            logger.debug(
                f"Workflow run {run_id} poll {state.polls}: {state.status.value}"
            )

            if state.status is RunStatus.FAILED:
                raise WorkflowExecutionError(
                    f"Workflow execution failed: {state.error}",
                    run_id=run_id,
                    detail=state.error,
                )
            if state.status.is_terminal:
                logger.info(
                    f"Workflow run {run_id} {state.status.value} after {state.polls} polls"
                )
                return state

            await self._sleep(self.interval)
