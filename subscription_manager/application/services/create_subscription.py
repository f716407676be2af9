from __future__ import annotations

import logging
import uuid
from typing import Callable, Optional, Tuple

from ...domain.clock import Clock
from ...domain.deadline import Deadline
from ...domain.events import SubscriptionCreated
from ...domain.models import Subscription
from ...domain.ports.billing import BillingGateway
from ...domain.ports.persistence import SubscriptionRepository

logger = logging.getLogger(__name__)


def _new_subscription_id() -> str:
    return str(uuid.uuid4())


class CreateSubscription:
    """Validates the customer with billing, then builds and stores a subscription.

    Nothing is committed until the final ``apply``; any earlier failure leaves
    no trace, so the caller may retry the whole call.
    """

    def __init__(
        self,
        repository: SubscriptionRepository,
        billing: BillingGateway,
        clock: Clock,
        *,
        id_factory: Callable[[], str] = _new_subscription_id,
    ) -> None:
        self._repository = repository
        self._billing = billing
        self._clock = clock
        self._id_factory = id_factory

    def execute(
        self,
        customer_id: str,
        plan_id: str,
        price_cents: int,
        deadline: Optional[Deadline] = None,
    ) -> Tuple[Subscription, SubscriptionCreated]:
        self._billing.validate_customer(customer_id, deadline=deadline)

        subscription, event = Subscription.create(
            self._id_factory(),
            customer_id,
            plan_id,
            price_cents,
            self._clock,
        )

        write = self._repository.save(subscription, deadline=deadline)
        self._repository.apply(write, deadline=deadline)

        logger.info(
            "Subscription %s created for customer %s on plan %s (%s cents)",
            subscription.id,
            customer_id,
            plan_id,
            price_cents,
        )
        return subscription, event
