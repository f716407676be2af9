"""Caller-supplied time bound shared by every port call of a request."""

from __future__ import annotations

import time
from dataclasses import dataclass

from .errors import DeadlineExceededError


@dataclass(frozen=True, slots=True)
class Deadline:
    """Absolute expiry expressed on the monotonic clock."""

    expires_at: float

    @classmethod
    def after(cls, seconds: float) -> "Deadline":
        return cls(time.monotonic() + seconds)

    def remaining(self) -> float:
        return max(0.0, self.expires_at - time.monotonic())

    def expired(self) -> bool:
        return time.monotonic() >= self.expires_at

    def check(self, operation: str, **context) -> float:
        """Return the seconds left, raising ``DeadlineExceededError`` when none are."""
        if self.expired():
            raise DeadlineExceededError(operation, **context)
        return self.remaining()

