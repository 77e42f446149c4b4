"""Utility helpers for difylink."""

from .retry import RetryCoordinator, compute_backoff

__all__ = ["RetryCoordinator", "compute_backoff"]
