"""File operations: upload, preview and info."""

from __future__ import annotations

import time
from typing import Any, Dict

from ..constants import MB
from ..context import OperationContext
from ..contracts import BinaryAttachment, RawResponse
from ..errors import ValidationError
from ..files import (
    detect_file_type,
    extension_of,
    extract_file_info,
    format_file_size,
    is_audio_file,
    is_document_file,
    is_image_file,
    is_video_file,
    max_file_size_for,
    supported_file_types,
    validate_file_extension,
    validate_file_id,
    validate_file_upload,
)
from ..request import build_request, path_segment
from .base import OperationResult, client_for, options, param, record, timeout_option


async def upload_file(context: OperationContext, item_index: int) -> OperationResult:
    """Validate a binary attachment locally, then upload it."""
    binary_field = param(context, "binaryData", item_index, "data") or "data"
    user = param(context, "user", item_index, "")
    opts = options(context, "options", item_index)
    file_type = opts.get("fileType") or "auto"
    max_size = int(float(opts.get("maxFileSize") or 15) * MB)
    allowed_extensions = [
        ext.strip().lower()
        for ext in (opts.get("allowedExtensions") or "").split(",")
        if ext.strip()
    ]
    timeout = timeout_option(
        options(context, "additionalOptions", item_index), context.config.timeouts.file
    )

    file = extract_file_info(context.get_binary(item_index, binary_field))

    if not validate_file_extension(file.name, allowed_extensions):
        raise ValidationError(
            f"File extension not allowed. Allowed extensions: {', '.join(allowed_extensions)}"
        )
    validate_file_upload(file, max_size=min(max_size, max_file_size_for(file_type)))

    extension = extension_of(file.name)
    if file_type != "auto":
        supported = supported_file_types().get(file_type, [])
        if extension and extension not in supported:
            raise ValidationError(
                f"File type {extension} is not supported for {file_type} files. "
                f"Supported types: {', '.join(supported)}"
            )

    response = await client_for(context).upload(file, user, timeout)

    return record(
        {
            "success": True,
            "file": {
                "id": response.get("id"),
                "name": response.get("name") or file.name,
                "size": response.get("size") or file.size,
                "extension": response.get("extension") or extension,
                "mime_type": response.get("mime_type") or file.mime_type,
                "created_by": response.get("created_by") or user,
                "created_at": response.get("created_at") or int(time.time()),
                "url": response.get("url"),
            },
            "upload_metadata": {
                "original_filename": file.name,
                "original_size": file.size,
                "original_mime_type": file.mime_type,
                "file_type_detected": (
                    detect_file_type(file.name, file.mime_type)
                    if file_type == "auto"
                    else file_type
                ),
                "validation_passed": True,
            },
        },
        item_index,
    )


def _checked_file_id(context: OperationContext, item_index: int) -> str:
    file_id = context.get_parameter("fileId", item_index)
    if not validate_file_id(file_id):
        raise ValidationError(f"Invalid file ID format: {file_id}")
    return file_id


async def preview_file(context: OperationContext, item_index: int) -> OperationResult:
    file_id = _checked_file_id(context, item_index)
    user = param(context, "user", item_index, "")
    opts = options(context, "additionalOptions", item_index)
    as_binary = bool(opts.get("returnBinaryData"))

    response = await client_for(context).request_with_retry(
        lambda: build_request(
            "GET",
            f"/files/{path_segment(file_id)}/preview",
            query={"user": user},
            timeout=timeout_option(opts, context.config.timeouts.file),
            response_mode="raw" if as_binary else "json",
        )
    )

    if isinstance(response, RawResponse):
        return record(
            {
                "success": True,
                "file_id": file_id,
                "preview": {"content_type": response.content_type, "size": len(response.content)},
            },
            item_index,
            binary=BinaryAttachment(
                name=f"preview_{file_id}",
                data=response.content,
                mime_type=response.content_type,
            ),
        )
    return record({"success": True, "file_id": file_id, "preview": response}, item_index)


def _format_file_info(info: Dict[str, Any], output_format: str) -> Dict[str, Any]:
    name = info.get("name") or ""
    mime_type = info.get("mime_type") or ""
    size = info.get("size") or 0

    if output_format == "compact":
        return {"id": info.get("id"), "name": name, "size": size, "type": mime_type}

    if output_format == "detailed":
        created_at = info.get("created_at") or 0
        return {
            **info,
            "file_info": {
                "size_formatted": format_file_size(size),
                "type_category": detect_file_type(name, mime_type),
                "is_image": is_image_file(mime_type),
                "is_document": is_document_file(mime_type),
                "is_audio": is_audio_file(mime_type),
                "is_video": is_video_file(mime_type),
            },
            "upload_info": {
                "uploaded_at": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(created_at)),
                "uploaded_by": info.get("created_by"),
                "time_since_upload": int(time.time() * 1000) - created_at * 1000,
            },
        }

    return {
        "id": info.get("id"),
        "name": name,
        "size": size,
        "size_formatted": format_file_size(size),
        "extension": info.get("extension"),
        "mime_type": mime_type,
        "type_category": detect_file_type(name, mime_type),
        "created_by": info.get("created_by"),
        "created_at": info.get("created_at"),
        "url": info.get("url"),
    }


async def get_file_info(context: OperationContext, item_index: int) -> OperationResult:
    file_id = _checked_file_id(context, item_index)
    user = param(context, "user", item_index, "")
    opts = options(context, "additionalOptions", item_index)

    response = await client_for(context).request_with_retry(
        lambda: build_request(
            "GET",
            f"/files/{path_segment(file_id)}",
            query={"user": user},
            timeout=timeout_option(opts, context.config.timeouts.file),
        )
    )
    return record(
        {
            "success": True,
            "file_id": file_id,
            "file_info": _format_file_info(response, opts.get("outputFormat") or "standard"),
        },
        item_index,
    )
