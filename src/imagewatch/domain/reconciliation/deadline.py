"""Pass-wide deadline threaded through every registry, ledger and webhook call."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Protocol

from imagewatch.domain.errors import DeadlineExceededError


class MonotonicClock(Protocol):
    def __call__(self) -> float: ...


@dataclass(frozen=True, slots=True)
class Deadline:
    """Absolute point on a monotonic clock after which no new call may start.

    ``expires_at=None`` means unbounded; ``Deadline.none()`` is the default for
    callers that do not care about cancellation.
    """

    expires_at: float | None = None
    clock: MonotonicClock = field(default=time.monotonic, compare=False)

    @classmethod
    def none(cls) -> Deadline:
        return cls()

    @classmethod
    def after(cls, seconds: float | None, *, clock: MonotonicClock = time.monotonic) -> Deadline:
        if seconds is None:
            return cls(clock=clock)
        if seconds <= 0:
            raise ValueError("Deadline budget must be positive")
        return cls(expires_at=clock() + seconds, clock=clock)

    def remaining(self) -> float | None:
        if self.expires_at is None:
            return None
        return max(0.0, self.expires_at - self.clock())

    @property
    def expired(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0.0

    def check(self, operation: str) -> None:
        if self.expired:
            raise DeadlineExceededError(f"Deadline exceeded before {operation}")

    def clamp(self, timeout: float) -> float:
        """Return ``timeout`` capped to the remaining budget."""

        remaining = self.remaining()
        if remaining is None:
            return timeout
        return min(timeout, remaining)
