"""Request builder: turns caller intent into an immutable RequestDescriptor."""

from __future__ import annotations

from typing import Any, Dict, Iterable, Mapping, Optional
from urllib.parse import quote

from .constants import API_VERSION_SUFFIX, DEFAULT_CHAT_TIMEOUT
from .contracts import FilePart, HttpMethod, RequestDescriptor
from .errors import ValidationError


def normalize_base_url(base_url: str) -> str:
    """Return ``base_url`` ending in the API version segment exactly once."""
    url = base_url.strip().rstrip("/")
    if url.endswith(API_VERSION_SUFFIX):
        return url
    return f"{url}{API_VERSION_SUFFIX}"


def path_segment(value: Any) -> str:
    """Escape one caller-supplied value for use as a single URL path segment."""
    text = str(value)
    if text in ("", ".", ".."):
        raise ValidationError(f"Invalid path parameter: {text!r}")
    return quote(text, safe="")


def strip_absent(value: Any) -> Any:
    """Drop ``None`` entries from mappings, recursively.

    The remote API treats field presence as meaningful, so an unset optional
    field must be missing from the payload rather than sent as ``null``.
    """
    if isinstance(value, Mapping):
        return {k: strip_absent(v) for k, v in value.items() if v is not None}
    if isinstance(value, (list, tuple)):
        return [strip_absent(v) for v in value]
    return value


def build_request(
    method: HttpMethod,
    path: str,
    *,
    query: Optional[Mapping[str, Any]] = None,
    body: Optional[Mapping[str, Any]] = None,
    files: Iterable[FilePart] = (),
    encoding: Optional[str] = None,
    timeout: Optional[float] = None,
    headers: Optional[Mapping[str, str]] = None,
    response_mode: str = "json",
) -> RequestDescriptor:
    """Assemble a descriptor for one API call.

    Args:
        method: HTTP verb.
        path: Endpoint path relative to the normalized base URL.
        query: Query parameters; ``None`` values are dropped.
        body: Request body; ``None`` values are dropped at every level.
            Ignored for ``GET``.
        files: File parts. Supplying any switches the encoding to multipart.
        encoding: ``"json"`` or ``"multipart"``; inferred when omitted.
        timeout: Seconds before the call is abandoned.
        headers: Extra headers merged over the defaults.
        response_mode: ``"json"``, ``"stream"`` or ``"raw"``.
    """
    file_parts = tuple(files)
    if encoding is None:
        encoding = "multipart" if file_parts else "json"

    clean_body: Optional[Dict[str, Any]] = None
    if body is not None and method != "GET":
        clean_body = strip_absent(body)

    return RequestDescriptor(
        method=method,
        path=path if path.startswith("/") else f"/{path}",
        query=strip_absent(query or {}),
        body=clean_body,
        files=file_parts,
        encoding=encoding,
        timeout=timeout or DEFAULT_CHAT_TIMEOUT,
        headers=dict(headers or {}),
        response_mode=response_mode,
    )
