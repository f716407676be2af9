"""
Tests for the subscription aggregate.

Covers construction, validation, cancellation, and proration.
"""

from datetime import timedelta

import pytest

from subscription_manager.domain.clock import FixedClock
from subscription_manager.domain.errors import (
    AlreadyCancelledError,
    InvalidCustomerError,
    InvalidPlanError,
    InvalidPriceError,
)
from subscription_manager.domain.models import Subscription, SubscriptionStatus, prorated_refund
from tests.conftest import JAN_1, JAN_15


def _active(price_cents=3000):
    subscription, _ = Subscription.create("sub-1", "cust-123", "plan-premium", price_cents, FixedClock(JAN_1))
    return subscription


class TestCreate:
    """Test Subscription.create."""

    @pytest.mark.parametrize("price_cents", [1, 999, 3000, 2**62])
    def test_valid_input_starts_active_at_clock_now(self, clock, price_cents):
        subscription, event = Subscription.create("sub-1", "cust-123", "plan-premium", price_cents, clock)

        assert subscription.status is SubscriptionStatus.ACTIVE
        assert subscription.start_date == JAN_1
        assert subscription.price_cents == price_cents
        assert subscription.is_active()

        assert event.subscription_id == "sub-1"
        assert event.customer_id == "cust-123"
        assert event.plan_id == "plan-premium"
        assert event.price_cents == price_cents
        assert event.created_at == JAN_1

    def test_empty_customer_rejected(self, clock):
        with pytest.raises(InvalidCustomerError):
            Subscription.create("sub-1", "", "plan-premium", 3000, clock)

    def test_empty_plan_rejected(self, clock):
        with pytest.raises(InvalidPlanError):
            Subscription.create("sub-1", "cust-123", "", 3000, clock)

    @pytest.mark.parametrize("price_cents", [0, -1, -3000, 30.0, True, "3000"])
    def test_non_positive_or_non_integer_price_rejected(self, clock, price_cents):
        with pytest.raises(InvalidPriceError):
            Subscription.create("sub-1", "cust-123", "plan-premium", price_cents, clock)

    def test_customer_checked_before_plan_and_price(self, clock):
        with pytest.raises(InvalidCustomerError):
            Subscription.create("sub-1", "", "", 0, clock)


class TestCancel:
    """Test Subscription.cancel."""

    def test_cancel_transitions_and_reports_refund(self):
        subscription = _active()

        event = subscription.cancel(FixedClock(JAN_15), 30)

        assert subscription.status is SubscriptionStatus.CANCELLED
        assert not subscription.is_active()
        assert event.subscription_id == "sub-1"
        assert event.customer_id == "cust-123"
        assert event.refund_cents == 1600
        assert event.cancelled_at == JAN_15

    def test_second_cancel_raises_and_keeps_status(self):
        subscription = _active()
        subscription.cancel(FixedClock(JAN_15), 30)

        with pytest.raises(AlreadyCancelledError):
            subscription.cancel(FixedClock(JAN_15 + timedelta(days=1)), 30)

        assert subscription.status is SubscriptionStatus.CANCELLED

    def test_cancel_reconstructed_cancelled_subscription(self):
        subscription = Subscription.reconstruct(
            "sub-1", "cust-123", "plan-premium", 3000, SubscriptionStatus.CANCELLED, JAN_1
        )

        with pytest.raises(AlreadyCancelledError):
            subscription.cancel(FixedClock(JAN_15), 30)

    def test_zero_billing_cycle_rejected_without_transition(self):
        subscription = _active()

        with pytest.raises(ValueError):
            subscription.cancel(FixedClock(JAN_15), 0)

        assert subscription.status is SubscriptionStatus.ACTIVE


class TestProratedRefund:
    """Test the proration formula for a 3000 cent price over 30 days."""

    @pytest.mark.parametrize(
        "days_elapsed,expected",
        [
            (0, 3000),
            (1, 2900),
            (14, 1600),
            (15, 1500),
            (29, 100),
            (30, 0),
            (45, 0),
        ],
    )
    def test_refund_for_whole_days(self, days_elapsed, expected):
        now = JAN_1 + timedelta(days=days_elapsed)
        assert prorated_refund(3000, JAN_1, now, 30) == expected

    def test_partial_days_are_floored(self):
        now = JAN_1 + timedelta(days=1, hours=23, minutes=59)
        assert prorated_refund(3000, JAN_1, now, 30) == 2900

    def test_clock_behind_start_gives_full_refund(self):
        now = JAN_1 - timedelta(days=3)
        assert prorated_refund(3000, JAN_1, now, 30) == 3000

    def test_less_than_a_day_before_start_gives_full_refund(self):
        now = JAN_1 - timedelta(hours=2)
        assert prorated_refund(3000, JAN_1, now, 30) == 3000

    def test_division_truncates_to_whole_cents(self):
        # 1000 * 29 / 30 = 966.67
        now = JAN_1 + timedelta(days=1)
        assert prorated_refund(1000, JAN_1, now, 30) == 966

    def test_refund_never_exceeds_price(self):
        for days in range(-5, 40):
            now = JAN_1 + timedelta(days=days)
            refund = prorated_refund(999, JAN_1, now, 30)
            assert 0 <= refund <= 999
            assert isinstance(refund, int)

    def test_refund_is_exact_for_large_prices(self):
        price = 10**15 + 7
        now = JAN_1 + timedelta(days=10)
        assert prorated_refund(price, JAN_1, now, 30) == (price * 20) // 30


class TestReconstruct:
    """Test Subscription.reconstruct."""

    def test_round_trip_preserves_every_field(self, clock):
        original, _ = Subscription.create("sub-1", "cust-123", "plan-premium", 3000, clock)

        copy = Subscription.reconstruct(
            original.id,
            original.customer_id,
            original.plan_id,
            original.price_cents,
            original.status,
            original.start_date,
        )

        assert copy.id == original.id
        assert copy.customer_id == original.customer_id
        assert copy.plan_id == original.plan_id
        assert copy.price_cents == original.price_cents
        assert copy.status is original.status
        assert copy.start_date == original.start_date

    def test_skips_validation(self):
        subscription = Subscription.reconstruct("sub-1", "", "", 0, "CANCELLED", JAN_1)

        assert subscription.status is SubscriptionStatus.CANCELLED
        assert subscription.price_cents == 0

    def test_fields_are_read_only(self):
        subscription = _active()

        with pytest.raises(AttributeError):
            subscription.status = SubscriptionStatus.CANCELLED  # type: ignore[misc]
        with pytest.raises(AttributeError):
            subscription.price_cents = 1  # type: ignore[misc]

    def test_naive_and_aware_datetimes_are_compared_as_utc(self):
        naive_now = (JAN_1 + timedelta(days=14)).replace(tzinfo=None)
        assert prorated_refund(3000, JAN_1, naive_now, 30) == 1600
        assert prorated_refund(3000, JAN_1.replace(tzinfo=None), JAN_1 + timedelta(days=14), 30) == 1600
