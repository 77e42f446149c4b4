"""Transport factory and initialization."""

from __future__ import annotations

import os
from typing import Optional

from ..contracts import Credentials
from .base import BaseTransport
from .http import HttpTransport
from .inmemory import InMemoryTransport


def get_transport(
    credentials: Credentials, backend: Optional[str] = None
) -> BaseTransport:
    """Factory function to get the configured transport."""

    backend = (backend or os.getenv("DIFYLINK_TRANSPORT") or "http").lower()

    if backend == "http":
        return HttpTransport(credentials.base_url, credentials.api_key)
    elif backend == "inmemory":
        return InMemoryTransport()
    else:
        raise ValueError(f"Unsupported transport backend: {backend}")


__all__ = ["BaseTransport", "HttpTransport", "InMemoryTransport", "get_transport"]
