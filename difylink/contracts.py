"""Core data contracts for the difylink request/response pipeline."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Annotated, Any, Dict, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

logger = logging.getLogger(__name__)

HttpMethod = Literal["GET", "POST", "PUT", "PATCH", "DELETE"]


class FilePart(BaseModel):
    """One file part of a multipart body."""

    model_config = ConfigDict(frozen=True)

    field: str = "file"
    filename: str
    content: bytes
    mime_type: str = "application/octet-stream"


class RequestDescriptor(BaseModel):
    """Everything Transport needs for exactly one call attempt."""

    model_config = ConfigDict(frozen=True)

    method: HttpMethod
    path: str
    query: Dict[str, Any] = Field(default_factory=dict)
    body: Optional[Dict[str, Any]] = None
    files: Tuple[FilePart, ...] = ()
    encoding: Literal["json", "multipart"] = "json"
    timeout: float = Field(default=30.0, gt=0)
    headers: Dict[str, str] = Field(default_factory=dict)
    response_mode: Literal["json", "stream", "raw"] = "json"


class RawResponse(BaseModel):
    """Undecoded response body, returned for ``response_mode="raw"``."""

    status_code: int
    headers: Dict[str, str] = Field(default_factory=dict)
    content: bytes = b""

    @property
    def content_type(self) -> str:
        return self.headers.get("content-type", "application/octet-stream")


class SSEEvent(BaseModel):
    """A complete Server-Sent Event."""

    event: Optional[str] = None
    id: Optional[str] = None
    retry: Optional[int] = None
    data: Any = None

    @property
    def name(self) -> str:
        """Event name, falling back to the ``event`` key of the payload."""
        if self.event:
            return self.event
        if isinstance(self.data, dict) and isinstance(self.data.get("event"), str):
            return self.data["event"]
        return "message"


class RunStatus(str, Enum):
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    STOPPED = "stopped"

    @property
    def is_terminal(self) -> bool:
        return self is not RunStatus.RUNNING

    @classmethod
    def parse(cls, value: Any) -> "RunStatus":
        """Map a remote status string onto the run state machine."""
        if value == "partial-succeeded":
            return cls.SUCCEEDED
        try:
            return cls(value)
        except ValueError:
            logger.debug(f"Treating unknown workflow status {value!r} as running")
            return cls.RUNNING


class WorkflowRunState(BaseModel):
    """Observed state of one workflow run, keyed by its run id."""

    run_id: str
    status: RunStatus = RunStatus.RUNNING
    elapsed: float = 0.0
    polls: int = 0
    outputs: Optional[Dict[str, Any]] = None
    error: Optional[Any] = None
    inputs: Optional[Any] = None
    elapsed_time: Optional[float] = None
    total_steps: Optional[int] = None
    total_tokens: Optional[int] = None
    created_at: Optional[Any] = None
    finished_at: Optional[Any] = None

    def apply(self, details: Dict[str, Any], elapsed: float) -> None:
        """Fold one status response into the state."""
        self.status = RunStatus.parse(details.get("status"))
        self.elapsed = elapsed
        self.polls += 1
        self.inputs = details.get("inputs", self.inputs)
        self.elapsed_time = details.get("elapsed_time", self.elapsed_time)
        self.total_steps = details.get("total_steps", self.total_steps)
        self.total_tokens = details.get("total_tokens", self.total_tokens)
        self.created_at = details.get("created_at", self.created_at)
        self.finished_at = details.get("finished_at", self.finished_at)
        if self.status.is_terminal:
            self.outputs = details.get("outputs") or {}
        if self.status is RunStatus.FAILED:
            self.error = details.get("error") or "Unknown error"


class RetryAttempt(BaseModel):
    """Bookkeeping for one failed attempt inside the retry coordinator."""

    attempt: int
    retryable: bool
    delay: float = 0.0
    error: str = ""


class BinaryAttachment(BaseModel):
    """Binary data handed over by the host for one input item."""

    name: str = "unnamed_file"
    data: bytes = b""
    mime_type: str = "application/octet-stream"

    @property
    def size(self) -> int:
        return len(self.data)


class Credentials(BaseModel):
    base_url: str
    api_key: str


class OutputRecord(BaseModel):
    """Caller-facing result of one operation for one input item."""

    data: Dict[str, Any] = Field(default_factory=dict)
    item_index: int = 0
    binary: Optional[BinaryAttachment] = None


# Streaming payloads, discriminated by their ``event`` field.


class _StreamPayload(BaseModel):
    model_config = ConfigDict(extra="allow")

    task_id: Optional[str] = None
    created_at: Optional[Any] = None


class MessageEvent(_StreamPayload):
    event: Literal["message"]
    answer: str = ""
    conversation_id: Optional[str] = None
    message_id: Optional[str] = None


class MessageEndEvent(_StreamPayload):
    event: Literal["message_end"]
    conversation_id: Optional[str] = None
    message_id: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


class WorkflowStartedEvent(_StreamPayload):
    event: Literal["workflow_started"]
    workflow_run_id: Optional[str] = None
    data: Optional[Dict[str, Any]] = None


class NodeStartedEvent(_StreamPayload):
    event: Literal["node_started"]
    workflow_run_id: Optional[str] = None
    data: Optional[Dict[str, Any]] = None


class NodeFinishedEvent(_StreamPayload):
    event: Literal["node_finished"]
    workflow_run_id: Optional[str] = None
    data: Optional[Dict[str, Any]] = None


class WorkflowFinishedEvent(_StreamPayload):
    event: Literal["workflow_finished"]
    workflow_run_id: Optional[str] = None
    message_id: Optional[str] = None
    data: Optional[Dict[str, Any]] = None


class ErrorEvent(_StreamPayload):
    event: Literal["error"]
    status: Optional[int] = None
    code: Optional[str] = None
    message: Optional[str] = None
    data: Any = None


StreamPayload = Annotated[
    Union[
        MessageEvent,
        MessageEndEvent,
        WorkflowStartedEvent,
        NodeStartedEvent,
        NodeFinishedEvent,
        WorkflowFinishedEvent,
        ErrorEvent,
    ],
    Field(discriminator="event"),
]

_stream_payload_adapter: TypeAdapter = TypeAdapter(StreamPayload)


def parse_stream_payload(event: SSEEvent) -> Optional[_StreamPayload]:
    """Turn an SSE event into its typed payload, or ``None`` if not one we handle.

    ``error`` events always yield an :class:`ErrorEvent`, even when their data
    is plain text or does not fit the expected shape.
    """
    if not isinstance(event.data, dict):
        if event.name == "error":
            return _loose_error(event.data)
        return None
    payload = {**event.data, "event": event.name}
    try:
        return _stream_payload_adapter.validate_python(payload)
    except PydanticValidationError:
        if event.name == "error":
            return _loose_error(event.data)
        logger.debug(f"Ignoring stream event {event.name!r}")
        return None


def _loose_error(data: Any) -> ErrorEvent:
    if not isinstance(data, dict):
        text = str(data).strip() if data is not None else ""
        return ErrorEvent(event="error", message=text or None)
    status = data.get("status")
    message = data.get("message")
    return ErrorEvent(
        event="error",
        task_id=data.get("task_id") if isinstance(data.get("task_id"), str) else None,
        status=status if isinstance(status, int) and not isinstance(status, bool) else None,
        code=str(data["code"]) if data.get("code") is not None else None,
        message=str(message) if message else None,
        data=data.get("data"),
    )
