from fastapi import Depends, Request

from .container import ApplicationContainer


def get_container(request: Request) -> ApplicationContainer:
    container = getattr(request.app.state, "container", None)
    if not container:
        raise RuntimeError("Application container not initialised.")
    return container


def get_settings(container: ApplicationContainer = Depends(get_container)):
    return container.settings


def get_subscription_repository(container: ApplicationContainer = Depends(get_container)):
    return container.repository


def get_refund_outbox(container: ApplicationContainer = Depends(get_container)):
    return container.outbox


def get_create_subscription(container: ApplicationContainer = Depends(get_container)):
    return container.create_subscription


def get_cancel_subscription(container: ApplicationContainer = Depends(get_container)):
    return container.cancel_subscription
