from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable, List, Optional

from tenacity import RetryCallState, Retrying, retry_if_exception, stop_after_attempt, wait_exponential

from ..domain.deadline import Deadline
from ..domain.errors import BillingError, ExternalDependencyError
from ..domain.ports.billing import BillingGateway
from ..domain.ports.persistence import OutboxEntry, RefundOutbox

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class RetryPolicy:
    """Delivery budget for one outbox entry.

    ``max_attempts`` counts every billing call made for the entry, including
    calls made by earlier drains. Waits double from ``base_delay_seconds``.
    """

    max_attempts: int = 3
    base_delay_seconds: float = 1.0
    max_delay_seconds: float = 60.0
    attempt_timeout_seconds: float = 5.0


@dataclass(slots=True)
class DrainReport:
    settled: int = 0
    dead_lettered: int = 0


def _is_transient(exc: BaseException) -> bool:
    return isinstance(exc, ExternalDependencyError) and exc.transient


class RefundDispatcher:
    """Delivers refunds recorded in the outbox to the billing system.

    Transient failures are retried with exponential backoff; permanent
    failures and exhausted retries go to the dead-letter store.
    """

    def __init__(
        self,
        outbox: RefundOutbox,
        billing: BillingGateway,
        *,
        policy: Optional[RetryPolicy] = None,
        batch_size: int = 50,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._outbox = outbox
        self._billing = billing
        self._policy = policy or RetryPolicy()
        self._batch_size = batch_size
        self._sleep = sleep

    def drain(self) -> DrainReport:
        report = DrainReport()
        entries: List[OutboxEntry] = self._outbox.pending(self._batch_size)
        for entry in entries:
            if self.deliver(entry):
                report.settled += 1
            else:
                report.dead_lettered += 1
        if entries:
            logger.info(
                "Refund outbox drained: %s settled, %s dead-lettered",
                report.settled,
                report.dead_lettered,
            )
        return report

    def deliver(self, entry: OutboxEntry) -> bool:
        """Try to settle ``entry``; returns False once it has been dead-lettered."""
        policy = self._policy
        remaining = policy.max_attempts - entry.attempts
        if remaining <= 0:
            logger.error(
                "Refund for subscription %s already used %s of %s attempts; moving to dead letters",
                entry.subscription_id,
                entry.attempts,
                policy.max_attempts,
            )
            self._outbox.dead_letter(entry, entry.last_error or "retry budget exhausted", transient=True)
            return False

        retrying = Retrying(
            stop=stop_after_attempt(remaining),
            wait=wait_exponential(multiplier=policy.base_delay_seconds, max=policy.max_delay_seconds),
            retry=retry_if_exception(_is_transient),
            before_sleep=lambda state: self._log_retry(entry, state),
            sleep=self._sleep,
            reraise=True,
        )
        try:
            retrying(self._attempt, entry)
        except ExternalDependencyError as exc:
            if exc.transient:
                logger.error(
                    "Refund for subscription %s exhausted %s attempts; moving to dead letters",
                    entry.subscription_id,
                    policy.max_attempts,
                )
            else:
                logger.error(
                    "Refund of %s cents for subscription %s rejected permanently: %s",
                    entry.amount_cents,
                    entry.subscription_id,
                    exc,
                )
            self._outbox.dead_letter(entry, str(exc), transient=exc.transient)
            return False

        self._outbox.mark_settled(entry.subscription_id)
        logger.info("Refund of %s cents settled for subscription %s", entry.amount_cents, entry.subscription_id)
        return True

    def _attempt(self, entry: OutboxEntry) -> None:
        try:
            self._billing.process_refund(
                entry.amount_cents,
                deadline=Deadline.after(self._policy.attempt_timeout_seconds),
            )
        except ExternalDependencyError as exc:
            self._outbox.mark_attempt(entry.subscription_id, str(exc))
            raise
        except Exception as exc:
            error = BillingError(
                "process_refund",
                f"refund call failed unexpectedly: {exc}",
                transient=True,
                subscription_id=entry.subscription_id,
                amount_cents=entry.amount_cents,
            )
            self._outbox.mark_attempt(entry.subscription_id, str(error))
            raise error from exc

    def _log_retry(self, entry: OutboxEntry, state: RetryCallState) -> None:
        exc = state.outcome.exception() if state.outcome else None
        logger.warning(
            "Refund attempt %s/%s for subscription %s failed: %s",
            entry.attempts + state.attempt_number,
            self._policy.max_attempts,
            entry.subscription_id,
            exc,
        )


class RefundProcessor:
    """Background worker polling the refund outbox."""

    def __init__(self, dispatcher: RefundDispatcher, *, poll_interval: float = 5.0) -> None:
        self._dispatcher = dispatcher
        self._poll_interval = poll_interval
        self._task: Optional[asyncio.Task[None]] = None
        self._shutdown = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._task is not None

    async def start(self) -> None:
        if self._task is not None:
            return
        logger.info("Starting refund processor (poll every %ss).", self._poll_interval)
        self._shutdown.clear()
        self._task = asyncio.get_running_loop().create_task(self._run(), name="refund-processor")

    async def stop(self) -> None:
        if self._task is None:
            return
        logger.info("Stopping refund processor.")
        self._shutdown.set()
        await asyncio.gather(self._task, return_exceptions=True)
        self._task = None

    async def _run(self) -> None:
        while not self._shutdown.is_set():
            try:
                await asyncio.to_thread(self._dispatcher.drain)
            except Exception:  # pragma: no cover - keep polling after storage hiccups
                logger.exception("Unexpected error while draining refund outbox.")
            try:
                await asyncio.wait_for(self._shutdown.wait(), timeout=self._poll_interval)
            except asyncio.TimeoutError:
                continue
