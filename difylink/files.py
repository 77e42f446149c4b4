"""File and identifier validation helpers.

Everything here runs before any network call; failures raise
:class:`~difylink.errors.ValidationError`.
"""

from __future__ import annotations

import re
from typing import Dict, Iterable, List, Optional, Sequence

from .constants import (
    DEFAULT_MAX_FILE_SIZE,
    MAX_FILE_SIZE_BY_TYPE,
    MB,
    SUPPORTED_FILE_TYPES,
)
from .contracts import BinaryAttachment
from .errors import ValidationError

_TASK_ID = re.compile(r"^task-[a-zA-Z0-9-]+$")
_RESOURCE_ID = re.compile(r"^[a-zA-Z0-9-]+$")
_FILE_ID = re.compile(r"^file-[a-zA-Z0-9-]+$")
_GENERIC_ID = re.compile(r"^[a-zA-Z0-9-]{8,}$")


def extract_file_info(binary: BinaryAttachment) -> BinaryAttachment:
    """Fill in defaults for a host attachment missing a name or MIME type."""
    return BinaryAttachment(
        name=binary.name or "unnamed_file",
        data=binary.data,
        mime_type=binary.mime_type or "application/octet-stream",
    )


def extension_of(filename: str) -> Optional[str]:
    if "." not in filename:
        return None
    return filename.rsplit(".", 1)[-1].lower() or None


def validate_file_upload(
    file: BinaryAttachment,
    allowed_types: Sequence[str] = (),
    max_size: int = DEFAULT_MAX_FILE_SIZE,
) -> None:
    if file.size > max_size:
        raise ValidationError(
            f"File size {file.size / MB:.2f}MB exceeds maximum allowed size of "
            f"{max_size / MB:.2f}MB"
        )
    if allowed_types and file.mime_type not in allowed_types:
        raise ValidationError(
            f"File type {file.mime_type} is not allowed. "
            f"Allowed types: {', '.join(allowed_types)}"
        )


def validate_file_extension(filename: str, allowed_extensions: Iterable[str]) -> bool:
    allowed = [ext.lower() for ext in allowed_extensions]
    if not allowed:
        return True
    extension = extension_of(filename)
    return extension is not None and extension in allowed


def supported_file_types() -> Dict[str, List[str]]:
    return {kind: list(exts) for kind, exts in SUPPORTED_FILE_TYPES.items()}


def max_file_size_for(file_type: str) -> int:
    """Maximum upload size in bytes for a declared file type."""
    return MAX_FILE_SIZE_BY_TYPE.get(file_type, MAX_FILE_SIZE_BY_TYPE["auto"]) * MB


def detect_file_type(filename: str, mime_type: str) -> str:
    """Classify a file as image, audio, video or document."""
    if mime_type.startswith("image/"):
        return "image"
    if mime_type.startswith("audio/"):
        return "audio"
    if mime_type.startswith("video/"):
        return "video"
    if any(marker in mime_type for marker in ("pdf", "document", "text")):
        return "document"

    extension = extension_of(filename)
    for kind, extensions in SUPPORTED_FILE_TYPES.items():
        if extension and extension in extensions:
            return kind
    return "document"


def is_image_file(mime_type: str) -> bool:
    return mime_type.startswith("image/")


def is_document_file(mime_type: str) -> bool:
    return any(
        marker in mime_type for marker in ("pdf", "document", "text", "rtf", "html")
    )


def is_audio_file(mime_type: str) -> bool:
    return mime_type.startswith("audio/")


def is_video_file(mime_type: str) -> bool:
    return mime_type.startswith("video/")


def format_file_size(size: int) -> str:
    """Human readable size, e.g. ``1.5 KB``."""
    if size <= 0:
        return "0 Bytes"
    units = ["Bytes", "KB", "MB", "GB", "TB"]
    value = float(size)
    index = 0
    while value >= 1024 and index < len(units) - 1:
        value /= 1024
        index += 1
    return f"{round(value, 2):g} {units[index]}"


def validate_file_id(file_id: str) -> bool:
    return bool(_FILE_ID.match(file_id) or _GENERIC_ID.match(file_id))


def validate_task_id(task_id: str) -> bool:
    return bool(_TASK_ID.match(task_id))


def validate_resource_id(value: str) -> bool:
    """Message and conversation ids: letters, digits and hyphens."""
    return bool(_RESOURCE_ID.match(value))
