"""Client facade tying builder, transport, retry, streaming and polling together."""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from .config import DifyConfig
from .constants import DEFAULT_PAGE_LIMIT
from .contracts import (
    BinaryAttachment,
    Credentials,
    FilePart,
    RequestDescriptor,
)
from .poller import WorkflowRunPoller
from .request import build_request, path_segment
from .streaming import EventHandler, reconcile_stream
from .transports import BaseTransport, HttpTransport
from .utils.retry import RetryCoordinator

logger = logging.getLogger(__name__)

DescriptorFactory = Callable[[], RequestDescriptor]


class DifyClient:
    """Entry point for all calls against one Dify application.

    Credentials and configuration are read-only for the lifetime of the client.
    """

    def __init__(
        self,
        credentials: Credentials,
        transport: Optional[BaseTransport] = None,
        retry: Optional[RetryCoordinator] = None,
        config: Optional[DifyConfig] = None,
    ) -> None:
        self.config = config or DifyConfig()
        self.credentials = credentials
        self.transport = transport or HttpTransport(credentials.base_url, credentials.api_key)
        self.retry = retry or RetryCoordinator(
            max_retries=self.config.retry.max_retries,
            base_delay=self.config.retry.base_delay,
            jitter=self.config.retry.jitter,
        )

    async def request(self, descriptor: RequestDescriptor) -> Any:
        """Issue a single attempt with no retry."""
        logger.debug(f"{descriptor.method} {descriptor.path}")
        return await self.transport.send(descriptor)

    async def request_with_retry(self, build: DescriptorFactory) -> Any:
        """Issue a call through the retry coordinator.

        ``build`` is invoked for every attempt so each attempt submits its own
        descriptor.
        """
        return await self.retry.run(lambda: self.request(build()))

    async def request_all_items(
        self,
        property_name: str,
        build_page: Callable[[int, int], RequestDescriptor],
        limit: Optional[int] = None,
    ) -> List[Any]:
        """Collect ``property_name`` across pages until ``has_more`` is false.

        Args:
            property_name: Key holding the page's items.
            build_page: Builds the descriptor for ``(page, page_limit)``.
            limit: Stop once this many items are collected.
        """
        items: List[Any] = []
        page = 1
        page_limit = limit or DEFAULT_PAGE_LIMIT
        while True:
            response = await self.request(build_page(page, page_limit))
            items.extend(response.get(property_name) or [])
            if not response.get("has_more") or (limit and len(items) >= limit):
                break
            page += 1
        return items[:limit] if limit else items

    async def stream(self, descriptor: RequestDescriptor, handler: EventHandler) -> int:
        """Stream ``descriptor`` and dispatch decoded events to ``handler``."""
        logger.debug(f"{descriptor.method} {descriptor.path} (stream)")
        return await reconcile_stream(self.transport.stream(descriptor), handler)

    async def upload(
        self,
        file: BinaryAttachment,
        user: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> Dict[str, Any]:
        """Upload one file to ``/files/upload`` as multipart form data."""
        part = FilePart(filename=file.name, content=file.data, mime_type=file.mime_type)
        return await self.request_with_retry(
            lambda: build_request(
                "POST",
                "/files/upload",
                body={"user": user},
                files=[part],
                timeout=timeout or self.config.timeouts.file,
            )
        )

    async def get_workflow_run(self, run_id: str) -> Dict[str, Any]:
        """Single attempt at ``GET /workflows/run/{id}``."""
        return await self.request(
            build_request(
                "GET",
                f"/workflows/run/{path_segment(run_id)}",
                timeout=self.config.timeouts.workflow,
            )
        )

    def poller(
        self,
        timeout: Optional[float] = None,
        interval: Optional[float] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ) -> WorkflowRunPoller:
        return WorkflowRunPoller(
            self.get_workflow_run,
            retry=self.retry,
            timeout=self.config.timeouts.workflow if timeout is None else timeout,
            interval=self.config.polling.interval if interval is None else interval,
            sleep=sleep,
        )
