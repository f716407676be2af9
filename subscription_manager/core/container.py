from dataclasses import dataclass
from typing import Optional

from ..application.services.cancel_subscription import CancelSubscription
from ..application.services.create_subscription import CreateSubscription
from ..domain.ports.billing import BillingGateway
from ..domain.ports.persistence import RefundOutbox, SubscriptionRepository
from ..services.refund_processor import RefundProcessor
from .config import Settings


@dataclass(slots=True)
class ApplicationContainer:
    """Dependency registry shared across the FastAPI application lifecycle."""

    settings: Settings
    repository: SubscriptionRepository
    outbox: RefundOutbox
    billing: BillingGateway
    create_subscription: CreateSubscription
    cancel_subscription: CancelSubscription
    refund_processor: Optional[RefundProcessor] = None
