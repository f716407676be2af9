"""Domain models for the subscription service."""

from .subscription import Subscription, SubscriptionStatus, prorated_refund

__all__ = [
    "Subscription",
    "SubscriptionStatus",
    "prorated_refund",
]
