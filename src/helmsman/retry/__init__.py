"""Retry module - Backoff and circuit breaking for device actions."""

from .retry_coordinator import RetryCoordinator

__all__ = ["RetryCoordinator"]
