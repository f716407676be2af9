from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional

import pytest

from subscription_manager.domain.clock import FixedClock
from subscription_manager.domain.deadline import Deadline
from subscription_manager.domain.errors import InvalidCustomerError
from subscription_manager.infrastructure.persistence.sqlite import SQLiteSubscriptionStore

JAN_1 = datetime(2024, 1, 1, tzinfo=timezone.utc)
JAN_15 = datetime(2024, 1, 15, tzinfo=timezone.utc)


class FakeBilling:
    """In-memory billing gateway recording every call."""

    def __init__(
        self,
        *,
        invalid_customers: tuple = (),
        refund_errors: Optional[List[Optional[Exception]]] = None,
    ) -> None:
        self.invalid_customers = set(invalid_customers)
        self.refund_errors = list(refund_errors or [])
        self.validated: List[str] = []
        self.refunds: List[int] = []

    def validate_customer(self, customer_id: str, deadline: Optional[Deadline] = None) -> None:
        self.validated.append(customer_id)
        if customer_id in self.invalid_customers:
            raise InvalidCustomerError(f"customer {customer_id} is not eligible")

    def process_refund(self, amount_cents: int, deadline: Optional[Deadline] = None) -> None:
        self.refunds.append(amount_cents)
        if self.refund_errors:
            error = self.refund_errors.pop(0)
            if error is not None:
                raise error


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(JAN_1)


@pytest.fixture
def billing() -> FakeBilling:
    return FakeBilling()


@pytest.fixture
def store(tmp_path):
    store = SQLiteSubscriptionStore(tmp_path / "subscriptions.db")
    yield store
    store.close()
