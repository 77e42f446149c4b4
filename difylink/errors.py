"""Exception taxonomy for difylink."""

from __future__ import annotations

from typing import Any, Optional


class DifyError(Exception):
    """Base class for every error raised by difylink."""

    retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        item_index: Optional[int] = None,
        operation: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.item_index = item_index
        self.operation = operation


class TransportError(DifyError):
    """A single HTTP call failed."""

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        body: Any = None,
        code: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.status_code = status_code
        self.body = body
        self.code = code


class ClientError(TransportError):
    """4xx response other than 429. Never retried."""


class RateLimited(TransportError):
    """429 response."""

    retryable = True


class ServerError(TransportError):
    """5xx response."""

    retryable = True


class NetworkError(TransportError):
    """Connection failure or timeout before a response arrived."""

    retryable = True


class ValidationError(DifyError):
    """Local precondition failed before any network call."""


class PollTimeoutError(DifyError):
    """Workflow run did not reach a terminal state in time."""

    def __init__(self, run_id: str, elapsed: float, **kwargs: Any) -> None:
        super().__init__(
            f"Workflow run {run_id} did not finish within {elapsed:.1f}s", **kwargs
        )
        self.run_id = run_id
        self.elapsed = elapsed


class WorkflowExecutionError(DifyError):
    """The remote platform reported a failed workflow run."""

    def __init__(
        self, message: str, *, run_id: Optional[str] = None, detail: Any = None, **kwargs: Any
    ) -> None:
        super().__init__(message, **kwargs)
        self.run_id = run_id
        self.detail = detail


class OperationError(DifyError):
    """Failure of one operation for one input item, as surfaced to the host."""

    def __init__(
        self,
        message: str,
        *,
        item_index: int,
        resource: Optional[str] = None,
        operation: Optional[str] = None,
    ) -> None:
        super().__init__(message, item_index=item_index, operation=operation)
        self.resource = resource


def remote_message(body: Any, default: str) -> str:
    """Pull a human readable message out of a remote error body."""
    if isinstance(body, dict):
        for key in ("message", "detail", "error"):
            value = body.get(key)
            if isinstance(value, str) and value:
                return value
    elif isinstance(body, str) and body.strip():
        return body.strip()
    return default


def error_for_status(status_code: Optional[int], body: Any = None) -> TransportError:
    """Build the taxonomy error matching an HTTP status code."""
    code = body.get("code") if isinstance(body, dict) else None
    message = remote_message(body, f"Request failed with status {status_code}")

    if status_code == 429:
        cls: type[TransportError] = RateLimited
    elif status_code is not None and status_code >= 500:
        cls = ServerError
    else:
        cls = ClientError
    return cls(message, status_code=status_code, body=body, code=code)


def is_retryable(exc: BaseException) -> bool:
    """Classification used by the retry coordinator."""
    return isinstance(exc, DifyError) and exc.retryable
