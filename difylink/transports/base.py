"""Base transport interface for difylink."""

from __future__ import annotations

import abc
from typing import Any, AsyncIterator

from ..contracts import RequestDescriptor


class BaseTransport(metaclass=abc.ABCMeta):
    """Abstract single-call transport.

    Implementations perform exactly one call per invocation and never retry;
    failures are raised as ``TransportError`` subclasses.
    """

    @abc.abstractmethod
    async def send(self, descriptor: RequestDescriptor) -> Any:
        """Perform the call and return the decoded response body."""
        raise NotImplementedError

    @abc.abstractmethod
    def stream(self, descriptor: RequestDescriptor) -> AsyncIterator[str]:
        """Perform the call and yield the response body as text chunks."""
        raise NotImplementedError
