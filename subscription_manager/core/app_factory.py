from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ..application.services.cancel_subscription import CancelSubscription
from ..application.services.create_subscription import CreateSubscription
from ..domain.clock import Clock, SystemClock
from ..domain.ports.billing import BillingGateway
from ..infrastructure.billing.http_client import HTTPBillingClient
from ..infrastructure.persistence.sqlite import SQLiteSubscriptionStore
from ..presentation.api.routers import refunds as refunds_router
from ..presentation.api.routers import subscriptions as subscriptions_router
from ..services.refund_processor import RefundDispatcher, RefundProcessor, RetryPolicy
from .config import Settings
from .container import ApplicationContainer
from .logging import configure_logging

logger = logging.getLogger(__name__)


def create_application(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or Settings()

    app = FastAPI(title="Subscription Manager", lifespan=_create_lifespan(settings))

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(subscriptions_router.router)
    app.include_router(refunds_router.router)

    @app.get("/health")
    async def health() -> Dict[str, Any]:
        container: ApplicationContainer = app.state.container  # type: ignore[attr-defined]
        processor = container.refund_processor
        return {
            "ok": True,
            "refund_delivery": container.settings.refund_delivery,
            "refund_processor_running": bool(processor and processor.running),
        }

    return app


def build_container(
    settings: Settings,
    store: SQLiteSubscriptionStore,
    billing: BillingGateway,
    clock: Optional[Clock] = None,
) -> ApplicationContainer:
    clock = clock or SystemClock()
    outbox = store if settings.uses_outbox else None
    refund_processor: Optional[RefundProcessor] = None
    if settings.uses_outbox:
        dispatcher = RefundDispatcher(
            store,
            billing,
            policy=RetryPolicy(
                max_attempts=settings.refund_max_attempts,
                base_delay_seconds=settings.refund_base_delay_seconds,
                attempt_timeout_seconds=settings.request_timeout_seconds,
            ),
        )
        refund_processor = RefundProcessor(dispatcher, poll_interval=settings.refund_poll_seconds)

    return ApplicationContainer(
        settings=settings,
        repository=store,
        outbox=store,
        billing=billing,
        create_subscription=CreateSubscription(store, billing, clock),
        cancel_subscription=CancelSubscription(
            store,
            billing,
            clock,
            settings.billing_cycle_days,
            outbox=outbox,
        ),
        refund_processor=refund_processor,
    )


def _create_lifespan(settings: Settings):
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        configure_logging(settings.log_level)
        clock = SystemClock()
        store = SQLiteSubscriptionStore(settings.database_path, clock=clock)
        billing = HTTPBillingClient(settings.billing_api_url, timeout=settings.request_timeout_seconds)
        container = build_container(settings, store, billing, clock)
        app.state.container = container  # type: ignore[attr-defined]

        if container.refund_processor is not None:
            await container.refund_processor.start()
        logger.info("Subscription manager started (refund delivery: %s)", settings.refund_delivery)

        try:
            yield
        finally:
            if container.refund_processor is not None:
                await container.refund_processor.stop()
            billing.close()
            store.close()

    return lifespan
