"""In-memory transport for testing."""

from __future__ import annotations

from collections import defaultdict, deque
from typing import Any, AsyncIterator, Deque, Dict, Iterable, List, Tuple

from ..contracts import RequestDescriptor
from ..errors import ClientError
from .base import BaseTransport

RouteKey = Tuple[str, str]


class InMemoryTransport(BaseTransport):
    """Replays scripted responses per ``(method, path)`` and records every call.

    A scripted response that is an exception instance is raised instead of
    returned. The last response scripted for a route is repeated once the
    others are used up. Streams are scripted as lists of text chunks.
    """

    def __init__(self) -> None:
        self._responses: Dict[RouteKey, Deque[Any]] = defaultdict(deque)
        self._streams: Dict[RouteKey, Deque[Any]] = defaultdict(deque)
        self.sent: List[RequestDescriptor] = []

    def add_response(self, method: str, path: str, *responses: Any) -> None:
        self._responses[(method, path)].extend(responses)

    def add_stream(self, method: str, path: str, chunks: Iterable[str] | BaseException) -> None:
        self._streams[(method, path)].append(
            chunks if isinstance(chunks, BaseException) else list(chunks)
        )

    def calls(self, method: str, path: str) -> List[RequestDescriptor]:
        return [d for d in self.sent if d.method == method and d.path == path]

    async def send(self, descriptor: RequestDescriptor) -> Any:
        self.sent.append(descriptor)
        queue = self._responses[(descriptor.method, descriptor.path)]
        if not queue:
            raise ClientError(
                f"No scripted response for {descriptor.method} {descriptor.path}",
                status_code=404,
            )
        response = queue.popleft() if len(queue) > 1 else queue[0]
        if isinstance(response, BaseException):
            raise response
        return response

    async def stream(self, descriptor: RequestDescriptor) -> AsyncIterator[str]:
        self.sent.append(descriptor)
        queue = self._streams[(descriptor.method, descriptor.path)]
        if not queue:
            raise ClientError(
                f"No scripted stream for {descriptor.method} {descriptor.path}",
                status_code=404,
            )
        chunks = queue.popleft()
        if isinstance(chunks, BaseException):
            raise chunks
        for chunk in chunks:
            yield chunk
