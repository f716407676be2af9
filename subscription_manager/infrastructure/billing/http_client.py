"""HTTP adapter for the external billing API."""

from __future__ import annotations

import logging
from typing import Optional
from urllib.parse import quote

import httpx

from ...domain.deadline import Deadline
from ...domain.errors import BillingError, InvalidCustomerError
from ...domain.ports.billing import BillingGateway

logger = logging.getLogger(__name__)


class HTTPBillingClient(BillingGateway):
    """Talks to the billing service over JSON/HTTP.

    ``GET /validate/{customer_id}`` answers ``{"valid": bool}``;
    ``POST /refund`` takes ``{"amount": <cents>}``. Any non-200 answer is a
    failure: 4xx is permanent, 5xx and transport errors are transient.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 5.0,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._client = client or httpx.Client()

    def close(self) -> None:
        self._client.close()

    def _request_timeout(self, operation: str, deadline: Optional[Deadline], **context) -> float:
        if deadline is None:
            return self._timeout
        return min(self._timeout, deadline.check(operation, **context))

    def validate_customer(self, customer_id: str, deadline: Optional[Deadline] = None) -> None:
        timeout = self._request_timeout("validate_customer", deadline)
        url = f"{self._base_url}/validate/{quote(customer_id, safe='')}"
        try:
            response = self._client.get(url, timeout=timeout)
        except httpx.TimeoutException as exc:
            raise BillingError("validate_customer", f"customer validation timed out: {exc}", transient=True) from exc
        except httpx.HTTPError as exc:
            raise BillingError("validate_customer", f"failed to validate customer: {exc}", transient=True) from exc

        if response.status_code >= 500:
            raise BillingError(
                "validate_customer",
                f"billing service answered {response.status_code} validating customer {customer_id}",
                transient=True,
            )
        if response.status_code != httpx.codes.OK:
            raise InvalidCustomerError(f"customer {customer_id} rejected by billing")

        try:
            payload = response.json()
        except ValueError as exc:
            raise BillingError("validate_customer", f"failed to decode response: {exc}", transient=False) from exc

        if not isinstance(payload, dict) or payload.get("valid") is not True:
            raise InvalidCustomerError(f"customer {customer_id} is not eligible")

    def process_refund(self, amount_cents: int, deadline: Optional[Deadline] = None) -> None:
        timeout = self._request_timeout("process_refund", deadline, amount_cents=amount_cents)
        try:
            response = self._client.post(
                f"{self._base_url}/refund",
                json={"amount": amount_cents},
                timeout=timeout,
            )
        except httpx.HTTPError as exc:
            raise BillingError(
                "process_refund",
                f"failed to process refund: {exc}",
                transient=True,
                amount_cents=amount_cents,
            ) from exc

        if response.status_code != httpx.codes.OK:
            raise BillingError(
                "process_refund",
                f"refund failed with status {response.status_code}: {response.text}",
                transient=response.status_code >= 500 or response.status_code == 429,
                amount_cents=amount_cents,
            )
        logger.debug("Refund of %s cents accepted by billing", amount_cents)
