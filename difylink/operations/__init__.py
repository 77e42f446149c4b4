"""Operation registry and the per-item execution loop."""

from __future__ import annotations

import logging
from typing import Dict, List, Tuple

from ..context import OperationContext
from ..contracts import OutputRecord
from ..errors import DifyError, OperationError
from .base import Operation
from .chat import (
    create_completion,
    get_chat_suggestions,
    send_chat_message,
    stop_chat_generation,
    stop_completion_generation,
    submit_feedback,
)
from .file import get_file_info, preview_file, upload_file
from .knowledge import KNOWLEDGE_OPERATIONS
from .workflow import execute_workflow, get_workflow_details, get_workflow_logs, stop_workflow

logger = logging.getLogger(__name__)

OPERATIONS: Dict[Tuple[str, str], Operation] = {
    ("chat", "send"): send_chat_message,
    ("chat", "stop"): stop_chat_generation,
    ("chat", "getSuggestions"): get_chat_suggestions,
    ("completion", "create"): create_completion,
    ("completion", "stop"): stop_completion_generation,
    ("feedback", "submit"): submit_feedback,
    ("workflow", "execute"): execute_workflow,
    ("workflow", "getDetails"): get_workflow_details,
    ("workflow", "stop"): stop_workflow,
    ("workflow", "getLogs"): get_workflow_logs,
    ("file", "upload"): upload_file,
    ("file", "preview"): preview_file,
    ("file", "getInfo"): get_file_info,
    **KNOWLEDGE_OPERATIONS,
}


def get_operation(resource: str, operation: str) -> Operation:
    try:
        return OPERATIONS[(resource, operation)]
    except KeyError:
        raise OperationError(
            f"Unsupported operation '{operation}' for resource '{resource}'",
            item_index=0,
            resource=resource,
            operation=operation,
        ) from None


async def execute(
    context: OperationContext, resource: str, operation: str
) -> List[OutputRecord]:
    """Run ``resource``/``operation`` once per input item, in order.

    With ``continue_on_fail`` a failing item yields an error record and the
    loop moves on; otherwise the first failure is raised as OperationError.
    """
    handler = get_operation(resource, operation)
    results: List[OutputRecord] = []

    for item_index in range(context.item_count()):
        try:
            outcome = await handler(context, item_index)
        except DifyError as exc:
            if context.continue_on_fail:
                logger.warning(
                    f"{resource}.{operation} failed for item {item_index}: {exc.message}"
                )
                results.append(
                    OutputRecord(
                        data={
                            "error": exc.message,
                            "resource": resource,
                            "operation": operation,
                            "item_index": item_index,
                        },
                        item_index=item_index,
                    )
                )
                continue
            raise OperationError(
                exc.message, item_index=item_index, resource=resource, operation=operation
            ) from exc

        if isinstance(outcome, list):
            results.extend(outcome)
        else:
            results.append(outcome)

    return results


__all__ = ["OPERATIONS", "execute", "get_operation"]
