"""Error taxonomy for the subscription lifecycle.

Validation and conflict errors are raised by the aggregate and travel up to the
caller unchanged. External-dependency errors wrap failures of the persistence
and billing adapters with enough context to reconcile them later, and keep a
``transient`` flag that retry policies inspect.
"""

from __future__ import annotations

from typing import Optional


class SubscriptionError(Exception):
    """Base class for every error raised by this package."""


# Validation ---------------------------------------------------------------
class ValidationError(SubscriptionError):
    """Caller input is malformed; never retried."""


class InvalidCustomerError(ValidationError):
    def __init__(self, message: str = "invalid customer") -> None:
        super().__init__(message)


class InvalidPlanError(ValidationError):
    def __init__(self, message: str = "plan ID cannot be empty") -> None:
        super().__init__(message)


class InvalidPriceError(ValidationError):
    def __init__(self, message: str = "price must be a positive integer amount of cents") -> None:
        super().__init__(message)


# Lookup / conflict --------------------------------------------------------
class SubscriptionNotFoundError(SubscriptionError):
    def __init__(self, subscription_id: str) -> None:
        super().__init__(f"subscription {subscription_id} not found")
        self.subscription_id = subscription_id


class ConflictError(SubscriptionError):
    """The requested effect has already been achieved."""


class AlreadyCancelledError(ConflictError):
    def __init__(self, subscription_id: Optional[str] = None) -> None:
        message = "subscription already cancelled"
        if subscription_id:
            message = f"subscription {subscription_id} already cancelled"
        super().__init__(message)
        self.subscription_id = subscription_id


# External dependencies ----------------------------------------------------
class ExternalDependencyError(SubscriptionError):
    """Failure of a port call, classified as transient or permanent."""

    def __init__(
        self,
        operation: str,
        message: Optional[str] = None,
        *,
        transient: bool,
        subscription_id: Optional[str] = None,
        amount_cents: Optional[int] = None,
    ) -> None:
        super().__init__(message or f"{operation} failed")
        self.operation = operation
        self.transient = transient
        self.subscription_id = subscription_id
        self.amount_cents = amount_cents

    @property
    def retryable(self) -> bool:
        return self.transient


class BillingError(ExternalDependencyError):
    """The billing system rejected or failed a request."""


class PersistenceError(ExternalDependencyError):
    """The subscription store rejected or failed a request."""


class WriteConflictError(PersistenceError):
    """A conditional write lost against a concurrent writer."""

    def __init__(self, subscription_id: str) -> None:
        super().__init__(
            "apply",
            f"conditional write for subscription {subscription_id} lost to a concurrent writer",
            transient=False,
            subscription_id=subscription_id,
        )


class DeadlineExceededError(ExternalDependencyError):
    """The caller's deadline expired before the call could complete."""

    def __init__(
        self,
        operation: str,
        *,
        subscription_id: Optional[str] = None,
        amount_cents: Optional[int] = None,
    ) -> None:
        super().__init__(
            operation,
            f"{operation} exceeded its deadline",
            transient=True,
            subscription_id=subscription_id,
            amount_cents=amount_cents,
        )


class RefundSettlementError(BillingError):
    """Cancellation committed, but the refund could not be settled.

    The subscription stays cancelled; only the compensating refund is
    outstanding. The cause's transient/permanent classification is kept.
    """

    def __init__(self, subscription_id: str, amount_cents: int, cause: Exception) -> None:
        transient = cause.transient if isinstance(cause, ExternalDependencyError) else True
        super().__init__(
            "process_refund",
            f"refund of {amount_cents} cents for subscription {subscription_id} failed: {cause}",
            transient=transient,
            subscription_id=subscription_id,
            amount_cents=amount_cents,
        )
        self.cause = cause
