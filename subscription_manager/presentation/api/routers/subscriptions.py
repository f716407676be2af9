"""API router for the subscription lifecycle."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from ....application.services.cancel_subscription import CancelSubscription
from ....application.services.create_subscription import CreateSubscription
from ....core.config import Settings
from ....core.dependencies import (
    get_cancel_subscription,
    get_create_subscription,
    get_settings,
    get_subscription_repository,
)
from ....domain.deadline import Deadline
from ....domain.errors import (
    ConflictError,
    ExternalDependencyError,
    SubscriptionError,
    SubscriptionNotFoundError,
    ValidationError,
)
from ....domain.models import Subscription
from ....domain.ports.persistence import SubscriptionRepository
from ..schemas.subscription_schemas import (
    CancelSubscriptionResponse,
    CreateSubscriptionRequest,
    SubscriptionResponse,
)

router = APIRouter(prefix="/api/subscriptions", tags=["Subscriptions"])


# Blocking port calls: plain ``def`` handlers run in FastAPI's threadpool.
@router.post("", status_code=status.HTTP_201_CREATED, response_model=SubscriptionResponse)
def create_subscription(
    payload: CreateSubscriptionRequest,
    settings: Settings = Depends(get_settings),
    workflow: CreateSubscription = Depends(get_create_subscription),
) -> SubscriptionResponse:
    try:
        subscription, _ = workflow.execute(
            payload.customer_id,
            payload.plan_id,
            payload.price_cents,
            deadline=Deadline.after(settings.request_timeout_seconds),
        )
    except SubscriptionError as exc:
        raise _to_http_error(exc) from exc
    return _serialize_subscription(subscription)


@router.get("/{subscription_id}", response_model=SubscriptionResponse)
def get_subscription(
    subscription_id: str,
    settings: Settings = Depends(get_settings),
    repository: SubscriptionRepository = Depends(get_subscription_repository),
) -> SubscriptionResponse:
    try:
        subscription = repository.find_by_id(
            subscription_id,
            deadline=Deadline.after(settings.request_timeout_seconds),
        )
    except SubscriptionError as exc:
        raise _to_http_error(exc) from exc
    return _serialize_subscription(subscription)


@router.post("/{subscription_id}/cancel", response_model=CancelSubscriptionResponse)
def cancel_subscription(
    subscription_id: str,
    settings: Settings = Depends(get_settings),
    workflow: CancelSubscription = Depends(get_cancel_subscription),
) -> CancelSubscriptionResponse:
    try:
        result = workflow.execute(
            subscription_id,
            deadline=Deadline.after(settings.request_timeout_seconds),
        )
    except SubscriptionError as exc:
        raise _to_http_error(exc) from exc

    event = result.event
    error = result.refund_error
    return CancelSubscriptionResponse(
        subscription_id=event.subscription_id,
        customer_id=event.customer_id,
        refund_cents=event.refund_cents,
        cancelled_at=event.cancelled_at,
        refund_status=result.refund_status.value,
        refund_error=str(error) if error else None,
        refund_error_transient=error.transient if error else None,
    )


def _serialize_subscription(subscription: Subscription) -> SubscriptionResponse:
    return SubscriptionResponse(
        id=subscription.id,
        customer_id=subscription.customer_id,
        plan_id=subscription.plan_id,
        price_cents=subscription.price_cents,
        status=subscription.status.value,
        start_date=subscription.start_date,
        is_active=subscription.is_active(),
    )


def _to_http_error(exc: SubscriptionError) -> HTTPException:
    if isinstance(exc, ValidationError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    if isinstance(exc, SubscriptionNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, ConflictError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    if isinstance(exc, ExternalDependencyError) and exc.transient:
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))
    return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc))
