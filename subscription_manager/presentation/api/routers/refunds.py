from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, Query

from ....core.dependencies import get_refund_outbox
from ....domain.ports.persistence import RefundOutbox
from ..schemas.subscription_schemas import DeadLetterResponse

router = APIRouter(prefix="/api/refunds", tags=["Refunds"])


@router.get("/dead-letters", response_model=List[DeadLetterResponse])
def list_dead_letters(
    limit: int = Query(default=100, ge=1, le=500),
    outbox: RefundOutbox = Depends(get_refund_outbox),
) -> List[DeadLetterResponse]:
    """Refunds that exhausted their retries and need manual reconciliation."""
    return [
        DeadLetterResponse(
            subscription_id=item.subscription_id,
            customer_id=item.customer_id,
            amount_cents=item.amount_cents,
            error=item.error,
            transient=item.transient,
            failed_at=item.failed_at,
        )
        for item in outbox.dead_letters(limit)
    ]
