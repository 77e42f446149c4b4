"""Helpers shared by the operation modules."""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from ..client import DifyClient
from ..constants import CREDENTIALS_NAME
from ..context import OperationContext
from ..contracts import BinaryAttachment, ErrorEvent, OutputRecord
from ..errors import TransportError, error_for_status
from ..files import detect_file_type, extract_file_info, validate_file_upload

OperationResult = Union[OutputRecord, List[OutputRecord]]
Operation = Callable[[OperationContext, int], Awaitable[OperationResult]]


def client_for(context: OperationContext) -> DifyClient:
    return DifyClient(
        context.get_credentials(CREDENTIALS_NAME),
        transport=context.transport,
        config=context.config,
    )


def optional(value: Any) -> Any:
    """Empty strings count as absent."""
    return None if value == "" else value


def param(context: OperationContext, name: str, item_index: int, default: Any = None) -> Any:
    return optional(context.get_parameter(name, item_index, default))


def options(context: OperationContext, name: str, item_index: int) -> Dict[str, Any]:
    return dict(context.get_parameter(name, item_index, {}) or {})


def timeout_option(opts: Dict[str, Any], default: float) -> float:
    value = opts.get("timeout")
    return float(value) if value else default


def record(data: Dict[str, Any], item_index: int, binary: Optional[BinaryAttachment] = None) -> OutputRecord:
    return OutputRecord(data=data, item_index=item_index, binary=binary)


def stream_error(event: ErrorEvent) -> TransportError:
    """Translate an SSE ``error`` event into the regular error taxonomy."""
    detail = event.data
    if isinstance(detail, dict):
        fallback = detail.get("error") or detail.get("message")
    else:
        fallback = str(detail).strip() if detail else None
    return error_for_status(
        event.status,
        {
            "message": event.message or fallback or "Unknown stream error",
            "code": event.code,
        },
    )


def collect_binaries(context: OperationContext, item_index: int, field: str) -> List[BinaryAttachment]:
    """Fetch one or several attachments stored under ``field``."""
    value: Any = context.get_binary(item_index, field)
    items = value if isinstance(value, list) else [value]
    return [extract_file_info(item) for item in items]


async def upload_message_files(
    context: OperationContext,
    client: DifyClient,
    item_index: int,
    user: Optional[str],
) -> Optional[List[Dict[str, Any]]]:
    """Validate and upload the files configured for a chat or completion message.

    All files are validated before the first upload starts.
    """
    configured = context.get_parameter("files.filesValues", item_index, []) or []
    pending = []
    for entry in configured:
        field = entry.get("inputDataFieldName") or "data"
        for file in collect_binaries(context, item_index, field):
            validate_file_upload(file)
            pending.append((entry.get("type") or detect_file_type(file.name, file.mime_type), file))

    if not pending:
        return None

    references = []
    for file_type, file in pending:
        uploaded = await client.upload(file, user)
        references.append(
            {
                "type": file_type,
                "transfer_method": "local_file",
                "upload_file_id": uploaded.get("id"),
            }
        )
    return references
