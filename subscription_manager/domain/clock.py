"""Time sources injected into every time-dependent operation."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Protocol


class Clock(Protocol):
    def now(self) -> datetime:
        ...


class SystemClock:
    """Wall clock in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


@dataclass(slots=True)
class FixedClock:
    """Clock frozen at ``instant``; used for deterministic tests."""

    instant: datetime

    def now(self) -> datetime:
        return self.instant
