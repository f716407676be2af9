from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, List, Mapping, Optional, Protocol

from ..deadline import Deadline
from ..events import SubscriptionCancelled
from ..models import Subscription


class WriteKind(str, Enum):
    INSERT = "insert"
    UPDATE = "update"


@dataclass(frozen=True, slots=True)
class PendingWrite:
    """A prepared, uncommitted change to one stored record.

    ``condition`` holds column values the stored record must still have for an
    UPDATE to take effect; a write whose condition no longer holds fails the
    whole batch it was applied with.
    """

    kind: WriteKind
    table: str
    key: str
    values: Mapping[str, Any]
    condition: Mapping[str, Any] = field(default_factory=dict)


class SubscriptionRepository(Protocol):
    """Abstract storage for subscription aggregates."""

    def find_by_id(self, subscription_id: str, deadline: Optional[Deadline] = None) -> Subscription:
        ...

    def save(self, subscription: Subscription, deadline: Optional[Deadline] = None) -> PendingWrite:
        ...

    def apply(self, *writes: PendingWrite, deadline: Optional[Deadline] = None) -> None:
        ...


@dataclass(slots=True)
class OutboxEntry:
    subscription_id: str
    customer_id: str
    amount_cents: int
    cancelled_at: datetime
    attempts: int
    last_error: Optional[str]
    created_at: datetime


@dataclass(slots=True)
class DeadLetter:
    subscription_id: str
    customer_id: str
    amount_cents: int
    error: str
    transient: bool
    failed_at: datetime


class RefundOutbox(Protocol):
    """Durable queue of refunds recorded together with their cancellation."""

    def record(self, event: SubscriptionCancelled) -> PendingWrite:
        ...

    def pending(self, limit: int) -> List[OutboxEntry]:
        ...

    def mark_attempt(self, subscription_id: str, error: str) -> None:
        ...

    def mark_settled(self, subscription_id: str) -> None:
        ...

    def dead_letter(self, entry: OutboxEntry, error: str, transient: bool) -> None:
        ...

    def dead_letters(self, limit: int) -> List[DeadLetter]:
        ...
