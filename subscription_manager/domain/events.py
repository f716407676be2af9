"""Domain events returned by the subscription aggregate."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True, slots=True)
class SubscriptionCreated:
    subscription_id: str
    customer_id: str
    plan_id: str
    price_cents: int
    created_at: datetime


@dataclass(frozen=True, slots=True)
class SubscriptionCancelled:
    subscription_id: str
    customer_id: str
    refund_cents: int
    cancelled_at: datetime
