"""Server-Sent Events reconciliation.

Text arrives in arbitrary chunks: a line, or a whole event, may be split
across chunk boundaries. :class:`SSEDecoder` buffers the incomplete tail of
each chunk and assembles complete :class:`SSEEvent` objects. Event
accumulation follows ``EMPTY -> ACCUMULATING -> (blank line) -> EMPTY``;
each accumulated event is emitted exactly once.

A ``data: [DONE]`` line ends the stream immediately; nothing after it is
decoded and no event is emitted for it. Streams that close without the
sentinel are flushed by :meth:`SSEDecoder.close`.
"""

from __future__ import annotations

import inspect
import json
import logging
from typing import Any, AsyncIterable, Awaitable, Callable, List, Optional, Union

from .constants import STREAM_DONE_SENTINEL
from .contracts import SSEEvent

logger = logging.getLogger(__name__)

EventHandler = Callable[[SSEEvent], Union[None, Awaitable[None]]]


class SSEDecoder:
    """Incremental, chunk-boundary-safe SSE decoder."""

    def __init__(self) -> None:
        self._pending = ""
        self._fields: dict[str, Any] = {}
        self._accumulating = False
        self.done = False

    def feed(self, chunk: str) -> List[SSEEvent]:
        """Decode ``chunk`` and return the events it completes, in order."""
        if self.done or not chunk:
            return []

        lines = (self._pending + chunk).split("\n")
        # last fragment is incomplete unless the chunk ended in a newline
        self._pending = lines.pop()

        events: List[SSEEvent] = []
        for line in lines:
            event = self._process_line(line.rstrip("\r"))
            if event is not None:
                events.append(event)
            if self.done:
                self._pending = ""
                break
        return events

    def close(self) -> List[SSEEvent]:
        """Flush a trailing line and any accumulated event at end of stream."""
        if self.done:
            return []
        events: List[SSEEvent] = []
        if self._pending:
            line, self._pending = self._pending, ""
            event = self._process_line(line.rstrip("\r"))
            if event is not None:
                events.append(event)
        if not self.done:
            event = self._emit()
            if event is not None:
                events.append(event)
        self.done = True
        return events

    def _emit(self) -> Optional[SSEEvent]:
        if not self._accumulating:
            return None
        event = SSEEvent(**self._fields)
        self._fields = {}
        self._accumulating = False
        return event

    def _process_line(self, line: str) -> Optional[SSEEvent]:
        if not line.strip():
            return self._emit()
        if line.startswith(":"):
            # comment / keep-alive
            return None

        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]

        if field == "data":
            payload = value.strip()
            if payload == STREAM_DONE_SENTINEL:
                self.done = True
                return None
            try:
                self._fields["data"] = json.loads(payload)
            except ValueError:
                logger.debug(f"SSE data line is not JSON, keeping text: {payload[:80]!r}")
                self._fields["data"] = payload
        elif field == "event":
            self._fields["event"] = value.strip()
        elif field == "id":
            self._fields["id"] = value.strip()
        elif field == "retry":
            try:
                self._fields["retry"] = int(value.strip())
            except ValueError:
                return None
        else:
            return None

        self._accumulating = True
        return None


async def reconcile_stream(chunks: AsyncIterable[str], handler: EventHandler) -> int:
    """Decode ``chunks`` and hand each event to ``handler`` in arrival order.

    ``handler`` may be a plain function or a coroutine function; the next event
    is not dispatched until it returns. Returns the number of events handled.
    """
    decoder = SSEDecoder()
    handled = 0

    async def dispatch(events: List[SSEEvent]) -> None:
        nonlocal handled
        for event in events:
            result = handler(event)
            if inspect.isawaitable(result):
                await result
            handled += 1

    iterator = chunks.__aiter__()
    try:
        async for chunk in iterator:
            await dispatch(decoder.feed(chunk))
            if decoder.done:
                break
        await dispatch(decoder.close())
    finally:
        aclose = getattr(iterator, "aclose", None)
        if aclose is not None:
            await aclose()
    return handled
