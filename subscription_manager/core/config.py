import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

REFUND_DELIVERY_MODES = ("inline", "outbox")


class Settings:
    """Centralised application configuration sourced from environment variables."""

    def __init__(self) -> None:
        load_dotenv()
        self.database_path = Path(os.getenv("DATABASE_PATH", "data/subscriptions.db")).resolve()
        self.billing_api_url = self._get("BILLING_API_URL")
        self.billing_cycle_days = self._get_positive_int("BILLING_CYCLE_DAYS", default=30)
        self.request_timeout_seconds = self._get_float("REQUEST_TIMEOUT_SECONDS", default=5.0)
        self.refund_delivery = os.getenv("REFUND_DELIVERY", "inline").strip().lower()
        if self.refund_delivery not in REFUND_DELIVERY_MODES:
            raise RuntimeError("REFUND_DELIVERY must be 'inline' or 'outbox'")
        self.refund_max_attempts = self._get_positive_int("REFUND_MAX_ATTEMPTS", default=3)
        self.refund_base_delay_seconds = self._get_float("REFUND_BASE_DELAY_SECONDS", default=1.0)
        self.refund_poll_seconds = self._get_float("REFUND_POLL_SECONDS", default=5.0)
        self.log_level = os.getenv("LOG_LEVEL", "INFO").strip().upper()
        origins = os.getenv("CORS_ALLOW_ORIGINS")
        if origins:
            self.cors_allow_origins = [item.strip() for item in origins.split(",") if item.strip()]
        else:
            self.cors_allow_origins = ["*"]

    @property
    def uses_outbox(self) -> bool:
        return self.refund_delivery == "outbox"

    @staticmethod
    def _get(key: str) -> str:
        value = os.getenv(key)
        if not value:
            raise RuntimeError(f"Missing required environment variable: {key}")
        return value

    @staticmethod
    def _get_int(key: str, default: Optional[int] = None) -> int:
        value = os.getenv(key)
        if value is None:
            if default is None:
                raise RuntimeError(f"Missing required environment variable: {key}")
            return default
        try:
            return int(value)
        except ValueError as exc:
            raise RuntimeError(f"Environment variable {key} must be an integer") from exc

    @classmethod
    def _get_positive_int(cls, key: str, default: Optional[int] = None) -> int:
        value = cls._get_int(key, default)
        if value <= 0:
            raise RuntimeError(f"Environment variable {key} must be positive")
        return value

    @staticmethod
    def _get_float(key: str, default: float) -> float:
        value = os.getenv(key)
        if value is None:
            return default
        try:
            return float(value)
        except ValueError as exc:
            raise RuntimeError(f"Environment variable {key} must be a number") from exc
