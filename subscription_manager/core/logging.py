import logging
import os
from typing import Optional

# Client libraries that log every billing call at INFO.
NOISY_LOGGERS = ("httpx", "httpcore")


def configure_logging(level: Optional[str] = None) -> None:
    """Configure logging for the subscription manager.

    ``level`` falls back to ``LOG_LEVEL``. Billing HTTP traffic is only logged
    when running at DEBUG.
    """
    level = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    client_level = logging.DEBUG if level == "DEBUG" else logging.WARNING
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(client_level)
