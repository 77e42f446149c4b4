"""Chat, completion and feedback operations."""

from __future__ import annotations

import logging
from typing import Any, Dict, List

from ..client import DifyClient
from ..context import OperationContext, collection_to_dict
from ..contracts import (
    ErrorEvent,
    MessageEndEvent,
    MessageEvent,
    OutputRecord,
    RequestDescriptor,
    SSEEvent,
    parse_stream_payload,
)
from ..errors import ValidationError
from ..files import validate_resource_id
from ..normalize import normalize_response
from ..request import build_request, path_segment
from .base import (
    OperationResult,
    client_for,
    options,
    param,
    record,
    stream_error,
    timeout_option,
    upload_message_files,
)

logger = logging.getLogger(__name__)


def _normalized(response: Any, opts: Dict[str, Any]) -> Dict[str, Any]:
    return normalize_response(
        response,
        include_usage=bool(opts.get("includeUsage")),
        include_retriever_resources=bool(opts.get("includeRetrieverResources")),
    )


async def _stream_messages(
    client: DifyClient, descriptor: RequestDescriptor, item_index: int
) -> List[OutputRecord]:
    """Turn a message stream into one record per delta plus a final record."""
    records: List[OutputRecord] = []
    complete_response = ""
    last: Dict[str, Any] = {}
    finished = False

    def handle(event: SSEEvent) -> None:
        nonlocal complete_response, finished
        payload = parse_stream_payload(event)
        if isinstance(payload, MessageEvent):
            complete_response += payload.answer
            last.update(conversation_id=payload.conversation_id, message_id=payload.message_id)
            records.append(
                record(
                    {
                        "event": "message",
                        "answer": payload.answer,
                        "conversation_id": payload.conversation_id,
                        "message_id": payload.message_id,
                        "created_at": payload.created_at,
                        "complete_response": complete_response,
                    },
                    item_index,
                )
            )
        elif isinstance(payload, MessageEndEvent):
            finished = True
            records.append(
                record(
                    {
                        "event": "message_end",
                        "conversation_id": payload.conversation_id,
                        "message_id": payload.message_id,
                        "metadata": payload.metadata,
                        "complete_response": complete_response,
                        "final": True,
                    },
                    item_index,
                )
            )
        elif isinstance(payload, ErrorEvent):
            raise stream_error(payload)

    await client.stream(descriptor, handle)

    if not finished:
        logger.info("Message stream closed without message_end; emitting aggregate record")
        records.append(
            record({**last, "complete_response": complete_response, "final": True}, item_index)
        )
    return records


async def send_chat_message(context: OperationContext, item_index: int) -> OperationResult:
    """Send a chat message in blocking or streaming mode."""
    query = context.get_parameter("query", item_index)
    response_mode = param(context, "responseMode", item_index, "blocking") or "blocking"
    conversation_id = param(context, "conversationId", item_index, "")
    user = param(context, "user", item_index, "")
    auto_generate_name = context.get_parameter("autoGenerateName", item_index, True)
    inputs = collection_to_dict(context.get_parameter("inputs.inputsValues", item_index, []))
    opts = options(context, "additionalOptions", item_index)
    timeout = timeout_option(opts, context.config.timeouts.chat)

    if conversation_id and not validate_resource_id(conversation_id):
        raise ValidationError(f"Invalid conversation ID format: {conversation_id}")

    client = client_for(context)
    files = await upload_message_files(context, client, item_index, user)
    body = {
        "query": query,
        "inputs": inputs,
        "response_mode": response_mode,
        "user": user,
        "auto_generate_name": auto_generate_name,
        "conversation_id": conversation_id,
        "files": files,
    }

    if response_mode == "streaming":
        descriptor = build_request(
            "POST", "/chat-messages", body=body, timeout=timeout, response_mode="stream"
        )
        return await _stream_messages(client, descriptor, item_index)

    response = await client.request_with_retry(
        lambda: build_request("POST", "/chat-messages", body=body, timeout=timeout)
    )
    return record(_normalized(response, opts), item_index)


async def _stop_generation(
    context: OperationContext, item_index: int, path: str
) -> OperationResult:
    task_id = context.get_parameter("taskId", item_index)
    if not validate_resource_id(str(task_id)):
        raise ValidationError(f"Invalid task ID format: {task_id}")

    user = param(context, "user", item_index, "")
    response = await client_for(context).request(
        build_request("POST", f"{path}/{path_segment(task_id)}/stop", body={"user": user})
    )
    return record({"success": True, "task_id": task_id, **(response or {})}, item_index)


async def stop_chat_generation(context: OperationContext, item_index: int) -> OperationResult:
    return await _stop_generation(context, item_index, "/chat-messages")


async def get_chat_suggestions(context: OperationContext, item_index: int) -> OperationResult:
    message_id = context.get_parameter("messageId", item_index)
    user = param(context, "user", item_index, "")
    if not validate_resource_id(str(message_id)):
        raise ValidationError(f"Invalid message ID format: {message_id}")

    response = await client_for(context).request(
        build_request(
            "GET", f"/messages/{path_segment(message_id)}/suggested", query={"user": user}
        )
    )
    return record(
        {"message_id": message_id, "suggestions": response.get("data") or []}, item_index
    )


async def create_completion(context: OperationContext, item_index: int) -> OperationResult:
    inputs = collection_to_dict(context.get_parameter("inputs.inputsValues", item_index, []))
    if not inputs:
        raise ValidationError("At least one input is required for text completion")

    response_mode = param(context, "responseMode", item_index, "blocking") or "blocking"
    user = param(context, "user", item_index, "")
    opts = options(context, "additionalOptions", item_index)
    timeout = timeout_option(opts, context.config.timeouts.chat)

    client = client_for(context)
    files = await upload_message_files(context, client, item_index, user)
    body = {
        "inputs": inputs,
        "response_mode": response_mode,
        "user": user,
        "files": files,
    }

    if response_mode == "streaming":
        descriptor = build_request(
            "POST", "/completion-messages", body=body, timeout=timeout, response_mode="stream"
        )
        return await _stream_messages(client, descriptor, item_index)

    response = await client.request_with_retry(
        lambda: build_request("POST", "/completion-messages", body=body, timeout=timeout)
    )
    return record(_normalized(response, opts), item_index)


async def stop_completion_generation(context: OperationContext, item_index: int) -> OperationResult:
    return await _stop_generation(context, item_index, "/completion-messages")


async def submit_feedback(context: OperationContext, item_index: int) -> OperationResult:
    message_id = context.get_parameter("messageId", item_index)
    rating = context.get_parameter("rating", item_index)
    content = param(context, "content", item_index, "")
    user = param(context, "user", item_index, "")

    if rating not in ("like", "dislike"):
        raise ValidationError(f"Rating must be 'like' or 'dislike', got {rating!r}")
    if not validate_resource_id(str(message_id)):
        raise ValidationError(f"Invalid message ID format: {message_id}")

    response = await client_for(context).request(
        build_request(
            "POST",
            f"/messages/{path_segment(message_id)}/feedbacks",
            body={"rating": rating, "content": content, "user": user},
        )
    )
    return record(
        {
            "success": True,
            "message_id": message_id,
            "rating": rating,
            "content": content or "",
            **(response or {}),
        },
        item_index,
    )
