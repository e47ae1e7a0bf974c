"""Caller-driven cancellation and deadlines for generation requests."""

from __future__ import annotations

import threading
import time
from typing import Callable, Optional


class RequestCancelledError(RuntimeError):
    """Raised when a request is abandoned before the backend answered."""

    def __init__(self, message: str, *, deadline_exceeded: bool = False) -> None:
        super().__init__(message)
        self.deadline_exceeded = deadline_exceeded


class CancellationToken:
    """Shared flag plus optional deadline checked at every blocking point."""

    def __init__(
        self,
        timeout: float | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._event = threading.Event()
        self._clock = clock
        self._deadline: Optional[float] = clock() + timeout if timeout is not None else None

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def expired(self) -> bool:
        return self._deadline is not None and self._clock() >= self._deadline

    def remaining(self, default: float | None = None) -> float | None:
        """Seconds left before the deadline, capped by *default* when both exist."""
        if self._deadline is None:
            return default
        left = max(self._deadline - self._clock(), 0.0)
        if default is None:
            return left
        return min(left, default)

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise RequestCancelledError("Request was cancelled by the caller")
        if self.expired:
            raise RequestCancelledError(
                "Request deadline exceeded", deadline_exceeded=True
            )

    def wait(self, seconds: float) -> None:
        """Sleep up to *seconds*, waking early (and raising) on cancellation."""
        budget = self.remaining(seconds)
        if budget is not None and budget > 0:
            self._event.wait(budget)
        self.raise_if_cancelled()


__all__ = ["CancellationToken", "RequestCancelledError"]
