"""Subscription aggregate: the only place subscription state changes."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Tuple

from ..clock import Clock
from ..errors import (
    AlreadyCancelledError,
    InvalidCustomerError,
    InvalidPlanError,
    InvalidPriceError,
)
from ..events import SubscriptionCancelled, SubscriptionCreated

SECONDS_PER_DAY = 24 * 60 * 60


class SubscriptionStatus(str, Enum):
    ACTIVE = "ACTIVE"
    CANCELLED = "CANCELLED"


def _as_utc(moment: datetime) -> datetime:
    # Naive datetimes are UTC, as stored.
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def prorated_refund(price_cents: int, start_date: datetime, now: datetime, billing_cycle_days: int) -> int:
    """
    Refund for the unused part of the billing cycle, in whole cents.

    Elapsed time is counted in whole days (floored), never below zero and
    never beyond one cycle. Integer division truncates to whole cents, so
    the refund never exceeds the price. Naive datetimes are read as UTC.
    """
    if billing_cycle_days <= 0:
        raise ValueError("billing_cycle_days must be positive")

    days_elapsed = int((_as_utc(now) - _as_utc(start_date)).total_seconds() // SECONDS_PER_DAY)
    if days_elapsed < 0:
        days_elapsed = 0
    if days_elapsed > billing_cycle_days:
        days_elapsed = billing_cycle_days

    refund = (price_cents * (billing_cycle_days - days_elapsed)) // billing_cycle_days
    return max(refund, 0)


class Subscription:
    """
    Aggregate root for a customer's subscription to a plan.

    Attributes:
        id: Opaque unique identifier
        customer_id: Owning customer
        plan_id: Subscribed plan
        price_cents: Price in minor currency units
        status: ACTIVE until cancelled, then CANCELLED for good
        start_date: Instant the subscription became active
    """

    __slots__ = ("_id", "_customer_id", "_plan_id", "_price_cents", "_status", "_start_date")

    def __init__(
        self,
        id: str,
        customer_id: str,
        plan_id: str,
        price_cents: int,
        status: SubscriptionStatus,
        start_date: datetime,
    ) -> None:
        self._id = id
        self._customer_id = customer_id
        self._plan_id = plan_id
        self._price_cents = price_cents
        self._status = status
        self._start_date = start_date

    @classmethod
    def create(
        cls,
        id: str,
        customer_id: str,
        plan_id: str,
        price_cents: int,
        clock: Clock,
    ) -> Tuple["Subscription", SubscriptionCreated]:
        """Validate input and start a new, active subscription."""
        if not customer_id:
            raise InvalidCustomerError("customer ID cannot be empty")
        if not plan_id:
            raise InvalidPlanError()
        # bool is an int subclass; neither it nor floats are valid money.
        if isinstance(price_cents, bool) or not isinstance(price_cents, int) or price_cents <= 0:
            raise InvalidPriceError()

        now = clock.now()
        subscription = cls(id, customer_id, plan_id, price_cents, SubscriptionStatus.ACTIVE, now)
        event = SubscriptionCreated(
            subscription_id=id,
            customer_id=customer_id,
            plan_id=plan_id,
            price_cents=price_cents,
            created_at=now,
        )
        return subscription, event

    @classmethod
    def reconstruct(
        cls,
        id: str,
        customer_id: str,
        plan_id: str,
        price_cents: int,
        status: SubscriptionStatus,
        start_date: datetime,
    ) -> "Subscription":
        """Rehydrate from trusted storage without re-validating."""
        return cls(id, customer_id, plan_id, price_cents, SubscriptionStatus(status), start_date)

    def cancel(self, clock: Clock, billing_cycle_days: int) -> SubscriptionCancelled:
        """Move to CANCELLED and compute the prorated refund."""
        if self._status is SubscriptionStatus.CANCELLED:
            raise AlreadyCancelledError(self._id)

        now = clock.now()
        refund = prorated_refund(self._price_cents, self._start_date, now, billing_cycle_days)
        self._status = SubscriptionStatus.CANCELLED
        return SubscriptionCancelled(
            subscription_id=self._id,
            customer_id=self._customer_id,
            refund_cents=refund,
            cancelled_at=now,
        )

    @property
    def id(self) -> str:
        return self._id

    @property
    def customer_id(self) -> str:
        return self._customer_id

    @property
    def plan_id(self) -> str:
        return self._plan_id

    @property
    def price_cents(self) -> int:
        return self._price_cents

    @property
    def status(self) -> SubscriptionStatus:
        return self._status

    @property
    def start_date(self) -> datetime:
        return self._start_date

    def is_active(self) -> bool:
        """Check if subscription is currently active."""
        return self._status is SubscriptionStatus.ACTIVE

    def __repr__(self) -> str:
        return f"<Subscription id={self._id} customer_id={self._customer_id} status={self._status.value}>"
