"""
Caller-supplied deadline and cancellation for API calls.

A `CallContext` is created once per command invocation and handed to the
client. Every request checks it first and bounds its own timeout by the time
that remains, so triggering the context makes outstanding and queued requests
fail promptly with `RequestCancelledError`.
"""

from __future__ import annotations

import threading
import time
from typing import Optional

from asc.pipeline.api.errors import RequestCancelledError


class CallContext:
    """Cancellation flag plus an optional monotonic deadline."""

    def __init__(self, timeout: Optional[float] = None) -> None:
        self._cancelled = threading.Event()
        self._deadline: Optional[float] = (
            time.monotonic() + float(timeout) if timeout is not None else None
        )

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline (None when unbounded)."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def check(self) -> None:
        """Raise `RequestCancelledError` if the call may no longer proceed."""
        if self._cancelled.is_set():
            raise RequestCancelledError("request cancelled")
        remaining = self.remaining()
        if remaining is not None and remaining <= 0.0:
            raise RequestCancelledError("deadline exceeded")

    def timeout_for(self, default: Optional[float]) -> Optional[float]:
        """Return the per-request timeout: `default` capped by the deadline."""
        remaining = self.remaining()
        if remaining is None:
            return default
        if default is None:
            return remaining
        return min(default, remaining)


__all__ = ["CallContext"]
