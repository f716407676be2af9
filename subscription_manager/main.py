"""ASGI entrypoint for the subscription manager API.

Run with ``uvicorn subscription_manager.main:app``; settings come from the
environment (see ``core.config.Settings``).
"""

from .core.app_factory import create_application

app = create_application()

__all__ = ("app",)
