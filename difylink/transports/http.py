"""httpx-backed transport for the Dify REST API."""

from __future__ import annotations

import copy
import json
import logging
from typing import Any, AsyncIterator, Dict, Optional

import httpx

from ..contracts import RawResponse, RequestDescriptor
from ..errors import NetworkError, error_for_status
from ..request import normalize_base_url
from .base import BaseTransport

logger = logging.getLogger(__name__)


def _form_value(value: Any) -> str:
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _decode_body(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


class HttpTransport(BaseTransport):
    """Authenticated HTTP transport.

    Args:
        base_url: Configured base URL; normalized to end with ``/v1``.
        api_key: Bearer token sent with every request.
        http_transport: Optional httpx transport, e.g. ``httpx.MockTransport``
            in tests.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        http_transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = normalize_base_url(base_url)
        self.api_key = api_key
        self._http_transport = http_transport

    def _client(self, timeout: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=timeout, transport=self._http_transport)

    def _url(self, descriptor: RequestDescriptor) -> str:
        return f"{self.base_url}{descriptor.path}"

    def _headers(self, descriptor: RequestDescriptor) -> Dict[str, str]:
        headers = {"Authorization": f"Bearer {self.api_key}"}
        # httpx sets the multipart content type itself so the boundary matches
        if descriptor.encoding == "json":
            headers["Content-Type"] = "application/json"
        if descriptor.response_mode == "stream":
            headers["Accept"] = "text/event-stream"
        headers.update(descriptor.headers)
        return headers

    def _request_kwargs(self, descriptor: RequestDescriptor) -> Dict[str, Any]:
        # descriptors are shared across attempts; hand httpx copies only
        kwargs: Dict[str, Any] = {"headers": self._headers(descriptor)}
        if descriptor.query:
            kwargs["params"] = copy.deepcopy(descriptor.query)
        if descriptor.encoding == "multipart":
            kwargs["data"] = {
                key: _form_value(value) for key, value in (descriptor.body or {}).items()
            }
            kwargs["files"] = [
                (part.field, (part.filename, part.content, part.mime_type))
                for part in descriptor.files
            ]
        elif descriptor.body is not None:
            kwargs["json"] = copy.deepcopy(descriptor.body)
        return kwargs

    def _raise_for_status(self, response: httpx.Response) -> None:
        if response.is_error:
            body = _decode_body(response)
            logger.warning(
                f"Dify API responded {response.status_code} for "
                f"{response.request.method} {response.request.url.path}"
            )
            raise error_for_status(response.status_code, body)

    async def send(self, descriptor: RequestDescriptor) -> Any:
        """Perform one call and decode the response per ``response_mode``."""
        async with self._client(descriptor.timeout) as client:
            try:
                response = await client.request(
                    descriptor.method,
                    self._url(descriptor),
                    **self._request_kwargs(descriptor),
                )
            except httpx.TimeoutException as exc:
                raise NetworkError(
                    f"Request to {descriptor.path} timed out after {descriptor.timeout}s"
                ) from exc
            except httpx.TransportError as exc:
                raise NetworkError(f"Request to {descriptor.path} failed: {exc}") from exc

        self._raise_for_status(response)

        if descriptor.response_mode == "raw":
            return RawResponse(
                status_code=response.status_code,
                headers={k.lower(): v for k, v in response.headers.items()},
                content=response.content,
            )
        body = _decode_body(response)
        return {} if body is None else body

    async def stream(self, descriptor: RequestDescriptor) -> AsyncIterator[str]:
        """Yield the response body as text chunks.

        A plain JSON body (the API answered in blocking form) is re-framed as a
        single ``data:`` event so consumers see one uniform shape.
        """
        async with self._client(descriptor.timeout) as client:
            try:
                async with client.stream(
                    descriptor.method,
                    self._url(descriptor),
                    **self._request_kwargs(descriptor),
                ) as response:
                    if response.is_error:
                        await response.aread()
                        self._raise_for_status(response)

                    content_type = response.headers.get("content-type", "")
                    if "text/event-stream" not in content_type:
                        await response.aread()
                        body = _decode_body(response)
                        if body is not None:
                            yield f"data: {json.dumps(body)}\n\n"
                        return

                    async for chunk in response.aiter_text():
                        yield chunk
            except httpx.TimeoutException as exc:
                raise NetworkError(
                    f"Stream from {descriptor.path} timed out after {descriptor.timeout}s"
                ) from exc
            except httpx.TransportError as exc:
                raise NetworkError(f"Stream from {descriptor.path} failed: {exc}") from exc
