# libs/runtime/cancel.py
from __future__ import annotations

import threading
from time import monotonic
from typing import Optional

from libs.contracts.errors import FetchCancelled


class CancelToken:
    """
    One cancellation signal shared by a timer wait and the in-flight fetch.

    - cancel(): set by shutdown
    - deadline: optional absolute monotonic time (request timeout)
    - wait(seconds): sleeps until the timeout elapses or the token fires; returns True when cancelled
    """

    def __init__(self, *, timeout: Optional[float] = None) -> None:
        self._event = threading.Event()
        self._deadline = monotonic() + timeout if timeout is not None else None

    @classmethod
    def with_timeout(cls, seconds: float) -> "CancelToken":
        return cls(timeout=seconds)

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        return self._deadline is not None and monotonic() >= self._deadline

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline; None when there is no deadline."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - monotonic())

    def wait(self, seconds: float) -> bool:
        left = self.remaining()
        if left is not None:
            seconds = min(seconds, left)
        self._event.wait(max(0.0, seconds))
        return self.cancelled

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise FetchCancelled("operation cancelled")

    def http_timeout(self, default: float) -> float:
        """Per-request HTTP timeout bounded by the token's deadline."""
        left = self.remaining()
        if left is None:
            return default
        if left <= 0:
            raise FetchCancelled("deadline exceeded before request")
        return min(default, left)
