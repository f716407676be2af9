from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ...domain.clock import Clock
from ...domain.deadline import Deadline
from ...domain.errors import (
    AlreadyCancelledError,
    RefundSettlementError,
    WriteConflictError,
)
from ...domain.events import SubscriptionCancelled
from ...domain.ports.billing import BillingGateway
from ...domain.ports.persistence import RefundOutbox, SubscriptionRepository

logger = logging.getLogger(__name__)


class RefundStatus(str, Enum):
    NOT_REQUIRED = "not_required"
    SETTLED = "settled"
    FAILED = "failed"
    QUEUED = "queued"


@dataclass(frozen=True, slots=True)
class CancellationResult:
    """Outcome of a committed cancellation.

    ``refund_error`` is set only when the refund could not be settled after
    the cancellation was stored; the subscription is cancelled either way.
    """

    event: SubscriptionCancelled
    refund_status: RefundStatus
    refund_error: Optional[RefundSettlementError] = None

    @property
    def refund_pending(self) -> bool:
        return self.refund_status in (RefundStatus.FAILED, RefundStatus.QUEUED)


class CancelSubscription:
    """Cancels a subscription, stores it, then settles the prorated refund.

    Without an outbox the refund is requested right after the commit. With an
    outbox the refund is recorded in the same commit as the cancellation and
    settled later by the refund processor.
    """

    def __init__(
        self,
        repository: SubscriptionRepository,
        billing: BillingGateway,
        clock: Clock,
        billing_cycle_days: int,
        *,
        outbox: Optional[RefundOutbox] = None,
    ) -> None:
        if billing_cycle_days <= 0:
            raise ValueError("billing_cycle_days must be positive")
        self._repository = repository
        self._billing = billing
        self._clock = clock
        self._billing_cycle_days = billing_cycle_days
        self._outbox = outbox

    def execute(self, subscription_id: str, deadline: Optional[Deadline] = None) -> CancellationResult:
        subscription = self._repository.find_by_id(subscription_id, deadline=deadline)
        event = subscription.cancel(self._clock, self._billing_cycle_days)

        writes = [self._repository.save(subscription, deadline=deadline)]
        queue_refund = self._outbox is not None and event.refund_cents > 0
        if queue_refund:
            writes.append(self._outbox.record(event))

        try:
            self._repository.apply(*writes, deadline=deadline)
        except WriteConflictError as exc:
            logger.info("Subscription %s was cancelled concurrently; skipping refund", subscription_id)
            raise AlreadyCancelledError(subscription_id) from exc

        logger.info(
            "Subscription %s cancelled, refund due %s cents",
            subscription_id,
            event.refund_cents,
        )

        if event.refund_cents <= 0:
            return CancellationResult(event, RefundStatus.NOT_REQUIRED)
        if queue_refund:
            return CancellationResult(event, RefundStatus.QUEUED)
        return self._settle_refund(event, deadline)

    def _settle_refund(self, event: SubscriptionCancelled, deadline: Optional[Deadline]) -> CancellationResult:
        try:
            self._billing.process_refund(event.refund_cents, deadline=deadline)
        except Exception as exc:
            error = RefundSettlementError(event.subscription_id, event.refund_cents, exc)
            logger.error(
                "Refund of %s cents for cancelled subscription %s failed (transient=%s): %s",
                event.refund_cents,
                event.subscription_id,
                error.transient,
                exc,
            )
            return CancellationResult(event, RefundStatus.FAILED, error)
        return CancellationResult(event, RefundStatus.SETTLED)
