"""Workflow operations: execute, inspect, stop and fetch logs."""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, List, Optional

from ..client import DifyClient
from ..constants import DEFAULT_MAX_WORKFLOW_FILES
from ..context import OperationContext
from ..contracts import (
    ErrorEvent,
    NodeFinishedEvent,
    NodeStartedEvent,
    OutputRecord,
    SSEEvent,
    WorkflowFinishedEvent,
    WorkflowStartedEvent,
    parse_stream_payload,
)
from ..errors import ValidationError, WorkflowExecutionError
from ..files import (
    detect_file_type,
    validate_file_upload,
    validate_resource_id,
    validate_task_id,
)
from ..request import build_request, path_segment
from .base import (
    OperationResult,
    client_for,
    collect_binaries,
    options,
    param,
    record,
    stream_error,
)

logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


async def _workflow_files(
    context: OperationContext,
    client: DifyClient,
    item_index: int,
    field: Optional[str],
    max_files: int,
    user: Optional[str],
) -> Optional[List[Dict[str, Any]]]:
    if not field:
        return None
    files = collect_binaries(context, item_index, field)[:max_files]
    for file in files:
        try:
            validate_file_upload(file)
        except ValidationError as exc:
            raise ValidationError(f"File validation failed: {exc.message}") from exc

    references = []
    for file in files:
        uploaded = await client.upload(file, user)
        references.append(
            {
                "type": detect_file_type(file.name, file.mime_type),
                "transfer_method": "local_file",
                "upload_file_id": uploaded.get("id"),
            }
        )
    return references or None


async def execute_workflow(context: OperationContext, item_index: int) -> OperationResult:
    """Run a workflow, streaming its events or polling until it finishes."""
    inputs = context.get_parameter("inputs", item_index, {}) or {}
    if not inputs:
        raise ValidationError("Workflow inputs are required")

    response_mode = param(context, "responseMode", item_index, "blocking") or "blocking"
    user = param(context, "user", item_index, "")
    binary_property = param(context, "binaryProperty", item_index, "")
    opts = options(context, "additionalOptions", item_index)
    max_files = int(opts.get("maxFiles") or DEFAULT_MAX_WORKFLOW_FILES)

    client = client_for(context)
    files = await _workflow_files(context, client, item_index, binary_property, max_files, user)
    body = {"inputs": inputs, "response_mode": response_mode, "user": user, "files": files}

    if response_mode == "streaming":
        return await _execute_streaming(client, body, opts, item_index)
    return await _execute_blocking(context, client, body, opts, item_index)


async def _execute_streaming(
    client: DifyClient, body: Dict[str, Any], opts: Dict[str, Any], item_index: int
) -> List[OutputRecord]:
    intermediate = bool(opts.get("returnIntermediateResults"))
    records: List[OutputRecord] = []
    final: Dict[str, Any] = {}
    ids = {"workflow_run_id": "", "task_id": ""}

    def handle(event: SSEEvent) -> None:
        payload = parse_stream_payload(event)
        if payload is None:
            return
        if payload.task_id:
            ids["task_id"] = payload.task_id
        run_id = getattr(payload, "workflow_run_id", None)
        if run_id:
            ids["workflow_run_id"] = run_id

        if isinstance(payload, WorkflowStartedEvent):
            if intermediate:
                records.append(
                    record({"event": payload.event, **ids, "timestamp": _now_ms()}, item_index)
                )
        elif isinstance(payload, (NodeStartedEvent, NodeFinishedEvent)):
            if intermediate and payload.data:
                records.append(
                    record(
                        {
                            "event": payload.event,
                            "workflow_run_id": ids["workflow_run_id"],
                            "node_data": payload.data,
                            "timestamp": _now_ms(),
                        },
                        item_index,
                    )
                )
        elif isinstance(payload, WorkflowFinishedEvent):
            final.update(
                event=payload.event,
                **ids,
                data=payload.data,
                message_id=payload.message_id,
                created_at=payload.created_at,
            )
        elif isinstance(payload, ErrorEvent):
            raise stream_error(payload)

    await client.stream(
        build_request(
            "POST",
            "/workflows/run",
            body=body,
            timeout=client.config.timeouts.workflow,
            response_mode="stream",
        ),
        handle,
    )

    if final:
        records.append(record(final, item_index))
    if not records:
        records.append(
            record({**ids, "status": "completed", "timestamp": _now_ms()}, item_index)
        )
    return records


async def _execute_blocking(
    context: OperationContext,
    client: DifyClient,
    body: Dict[str, Any],
    opts: Dict[str, Any],
    item_index: int,
) -> OutputRecord:
    timeout = float(opts.get("timeout") or context.config.timeouts.workflow)
    poll_interval = opts.get("pollInterval")
    poll_interval = context.config.polling.interval if poll_interval is None else float(poll_interval)

    started = await client.request_with_retry(
        lambda: build_request("POST", "/workflows/run", body=body, timeout=timeout)
    )
    run_id = started.get("workflow_run_id") if isinstance(started, dict) else None
    if not run_id:
        raise WorkflowExecutionError("Failed to start workflow execution")

    logger.info(f"Workflow run {run_id} started; polling every {poll_interval}s")
    began = time.monotonic()
    state = await client.poller(timeout=timeout, interval=poll_interval).poll(run_id)

    result: Dict[str, Any] = {
        "workflow_run_id": run_id,
        "status": state.status.value,
        "inputs": state.inputs,
        "outputs": state.outputs or {},
        "elapsed_time": state.elapsed_time,
        "total_steps": state.total_steps,
        "created_at": state.created_at,
        "finished_at": state.finished_at,
    }
    if opts.get("includeUsage") and state.total_tokens:
        result["usage"] = {"total_tokens": state.total_tokens}
    if opts.get("includeMetadata"):
        result["metadata"] = {
            "execution_time_ms": int((time.monotonic() - began) * 1000),
            "poll_interval": poll_interval,
            "polls": state.polls,
        }
    return record(result, item_index)


def _required_run_id(context: OperationContext, item_index: int) -> str:
    run_id = param(context, "workflowRunId", item_index, "")
    if not run_id:
        raise ValidationError("Workflow Run ID is required")
    if not validate_resource_id(str(run_id)):
        raise ValidationError(f"Invalid workflow run ID format: {run_id}")
    return run_id


async def get_workflow_details(context: OperationContext, item_index: int) -> OperationResult:
    run_id = _required_run_id(context, item_index)
    details = await client_for(context).request_with_retry(
        lambda: build_request(
            "GET",
            f"/workflows/run/{path_segment(run_id)}",
            timeout=context.config.timeouts.workflow,
        )
    )
    return record(details, item_index)


async def stop_workflow(context: OperationContext, item_index: int) -> OperationResult:
    task_id = param(context, "taskId", item_index, "")
    if not task_id:
        raise ValidationError("Task ID is required")
    if not validate_task_id(task_id):
        raise ValidationError('Invalid task ID format. Task ID should start with "task-"')

    user = param(context, "user", item_index, "")
    response = await client_for(context).request_with_retry(
        lambda: build_request(
            "POST",
            f"/workflows/tasks/{path_segment(task_id)}/stop",
            body={"user": user},
            timeout=context.config.timeouts.workflow,
        )
    )
    return record(
        {
            "task_id": task_id,
            "result": (response or {}).get("result") or "success",
            "message": "Workflow execution stopped successfully",
            "timestamp": _now_ms(),
        },
        item_index,
    )


async def get_workflow_logs(context: OperationContext, item_index: int) -> OperationResult:
    run_id = _required_run_id(context, item_index)
    response = await client_for(context).request_with_retry(
        lambda: build_request(
            "GET",
            f"/workflows/run/{path_segment(run_id)}/logs",
            timeout=context.config.timeouts.workflow,
        )
    )
    return [record(log, item_index) for log in response.get("workflow_run_logs") or []]
