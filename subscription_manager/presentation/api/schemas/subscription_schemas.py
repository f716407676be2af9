"""Pydantic schemas for subscription API endpoints."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, StrictInt


class CreateSubscriptionRequest(BaseModel):
    """Request schema for creating a subscription."""

    customer_id: str = Field(..., max_length=255)
    plan_id: str = Field(..., max_length=255)
    # Money crosses the wire as integer cents only; floats are rejected.
    price_cents: StrictInt


class SubscriptionResponse(BaseModel):
    """Response schema for subscription data."""

    id: str
    customer_id: str
    plan_id: str
    price_cents: int
    status: str
    start_date: datetime
    is_active: bool


class CancelSubscriptionResponse(BaseModel):
    """Response schema for a committed cancellation."""

    subscription_id: str
    customer_id: str
    refund_cents: int
    cancelled_at: datetime
    refund_status: str
    refund_error: Optional[str] = None
    refund_error_transient: Optional[bool] = None


class DeadLetterResponse(BaseModel):
    """Response schema for a refund awaiting manual reconciliation."""

    subscription_id: str
    customer_id: str
    amount_cents: int
    error: str
    transient: bool
    failed_at: datetime
