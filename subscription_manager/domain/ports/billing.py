from __future__ import annotations

from typing import Optional, Protocol

from ..deadline import Deadline


class BillingGateway(Protocol):
    """External money-movement system.

    Both calls return ``None`` on success and raise on failure:
    ``InvalidCustomerError`` for an ineligible customer, ``BillingError``
    (transient or permanent) when the billing system misbehaves.
    """

    def validate_customer(self, customer_id: str, deadline: Optional[Deadline] = None) -> None:
        ...

    def process_refund(self, amount_cents: int, deadline: Optional[Deadline] = None) -> None:
        ...
