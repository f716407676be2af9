from __future__ import annotations

import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator, List, Optional, Union

from ...domain.clock import Clock, SystemClock
from ...domain.deadline import Deadline
from ...domain.errors import (
    DeadlineExceededError,
    PersistenceError,
    SubscriptionNotFoundError,
    WriteConflictError,
)
from ...domain.events import SubscriptionCancelled
from ...domain.models import Subscription, SubscriptionStatus
from ...domain.ports.persistence import (
    DeadLetter,
    OutboxEntry,
    PendingWrite,
    RefundOutbox,
    SubscriptionRepository,
    WriteKind,
)
from .migrations import apply_migrations

# Upper bound on waiting for the connection when the caller gives no deadline.
DEFAULT_LOCK_TIMEOUT = 5.0

_TABLES = {
    "subscriptions": "id",
    "refund_outbox": "subscription_id",
}


class SQLiteSubscriptionStore(SubscriptionRepository, RefundOutbox):
    """SQLite-backed subscription repository and refund outbox.

    Both share one connection so that a cancellation and its outbox entry are
    committed by the same ``apply`` transaction.
    """

    def __init__(self, path: Union[Path, str], clock: Optional[Clock] = None) -> None:
        if str(path) != ":memory:":
            path = Path(path)
            path.parent.mkdir(parents=True, exist_ok=True)
        self._clock = clock or SystemClock()
        self._conn = sqlite3.connect(path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA foreign_keys = ON")
        self._lock = threading.Lock()
        with self._lock:
            apply_migrations(self._conn, clock=self._clock)

    def close(self) -> None:
        self._conn.close()

    @contextmanager
    def _locked(self, operation: str, deadline: Optional[Deadline], **context: Any) -> Iterator[sqlite3.Connection]:
        timeout = deadline.check(operation, **context) if deadline else DEFAULT_LOCK_TIMEOUT
        if not self._lock.acquire(timeout=timeout):
            raise DeadlineExceededError(operation, **context)
        try:
            yield self._conn
        except sqlite3.IntegrityError as exc:
            raise PersistenceError(operation, str(exc), transient=False, **context) from exc
        except sqlite3.OperationalError as exc:
            # "database is locked" and disk I/O errors clear up on their own.
            raise PersistenceError(operation, str(exc), transient=True, **context) from exc
        finally:
            self._lock.release()

    # SubscriptionRepository API ---------------------------------------------
    def find_by_id(self, subscription_id: str, deadline: Optional[Deadline] = None) -> Subscription:
        with self._locked("find_by_id", deadline, subscription_id=subscription_id) as conn:
            cur = conn.execute(
                """
                SELECT id, customer_id, plan_id, price_cents, status, start_date
                FROM subscriptions
                WHERE id = ?
                """,
                (subscription_id,),
            )
            row = cur.fetchone()
        if row is None:
            raise SubscriptionNotFoundError(subscription_id)
        return self._row_to_subscription(row)

    def save(self, subscription: Subscription, deadline: Optional[Deadline] = None) -> PendingWrite:
        """Prepare the write for ``subscription``.

        A new (active) subscription becomes an INSERT. A cancelled one becomes
        an UPDATE that only applies while the stored row is still ACTIVE.
        """
        if subscription.status is SubscriptionStatus.ACTIVE:
            return PendingWrite(
                kind=WriteKind.INSERT,
                table="subscriptions",
                key=subscription.id,
                values={
                    "id": subscription.id,
                    "customer_id": subscription.customer_id,
                    "plan_id": subscription.plan_id,
                    "price_cents": subscription.price_cents,
                    "status": subscription.status.value,
                    "start_date": _format_timestamp(subscription.start_date),
                },
            )
        return PendingWrite(
            kind=WriteKind.UPDATE,
            table="subscriptions",
            key=subscription.id,
            values={"status": subscription.status.value},
            condition={"status": SubscriptionStatus.ACTIVE.value},
        )

    def apply(self, *writes: PendingWrite, deadline: Optional[Deadline] = None) -> None:
        if not writes:
            return
        with self._locked("apply", deadline, subscription_id=writes[0].key) as conn:
            with conn:
                for write in writes:
                    self._execute_write(conn, write)

    def _execute_write(self, conn: sqlite3.Connection, write: PendingWrite) -> None:
        key_column = _TABLES.get(write.table)
        if key_column is None:
            raise ValueError(f"Unknown table {write.table}")

        if write.kind is WriteKind.INSERT:
            columns = list(write.values)
            placeholders = ", ".join("?" for _ in columns)
            conn.execute(
                f"INSERT INTO {write.table} ({', '.join(columns)}) VALUES ({placeholders})",
                [write.values[column] for column in columns],
            )
            return

        assignments = ", ".join(f"{column} = ?" for column in write.values)
        query = f"UPDATE {write.table} SET {assignments} WHERE {key_column} = ?"
        params: List[Any] = [*write.values.values(), write.key]
        for column, expected in write.condition.items():
            query += f" AND {column} = ?"
            params.append(expected)
        cur = conn.execute(query, params)
        if cur.rowcount == 0:
            raise WriteConflictError(write.key)

    # RefundOutbox API --------------------------------------------------------
    def record(self, event: SubscriptionCancelled) -> PendingWrite:
        return PendingWrite(
            kind=WriteKind.INSERT,
            table="refund_outbox",
            key=event.subscription_id,
            values={
                "subscription_id": event.subscription_id,
                "customer_id": event.customer_id,
                "amount_cents": event.refund_cents,
                "cancelled_at": _format_timestamp(event.cancelled_at),
                "status": "PENDING",
                "attempts": 0,
                "created_at": self._now(),
            },
        )

    def pending(self, limit: int) -> List[OutboxEntry]:
        with self._locked("pending", None) as conn:
            cur = conn.execute(
                """
                SELECT subscription_id, customer_id, amount_cents, cancelled_at,
                       attempts, last_error, created_at
                FROM refund_outbox
                WHERE status = 'PENDING'
                ORDER BY created_at
                LIMIT ?
                """,
                (limit,),
            )
            rows = cur.fetchall()
        return [
            OutboxEntry(
                subscription_id=row["subscription_id"],
                customer_id=row["customer_id"],
                amount_cents=row["amount_cents"],
                cancelled_at=_parse_timestamp(row["cancelled_at"]),
                attempts=row["attempts"],
                last_error=row["last_error"],
                created_at=_parse_timestamp(row["created_at"]),
            )
            for row in rows
        ]

    def mark_attempt(self, subscription_id: str, error: str) -> None:
        with self._locked("mark_attempt", None, subscription_id=subscription_id) as conn:
            with conn:
                conn.execute(
                    "UPDATE refund_outbox SET attempts = attempts + 1, last_error = ? WHERE subscription_id = ?",
                    (error, subscription_id),
                )

    def mark_settled(self, subscription_id: str) -> None:
        with self._locked("mark_settled", None, subscription_id=subscription_id) as conn:
            with conn:
                conn.execute(
                    "UPDATE refund_outbox SET status = 'SETTLED', last_error = NULL WHERE subscription_id = ?",
                    (subscription_id,),
                )

    def dead_letter(self, entry: OutboxEntry, error: str, transient: bool) -> None:
        """Move ``entry`` out of the outbox into the dead-letter store."""
        with self._locked("dead_letter", None, subscription_id=entry.subscription_id) as conn:
            with conn:
                conn.execute(
                    """
                    INSERT INTO refund_dead_letters (
                        subscription_id, customer_id, amount_cents, error, transient, failed_at
                    )
                    VALUES (?, ?, ?, ?, ?, ?)
                    ON CONFLICT(subscription_id) DO UPDATE SET
                        error = excluded.error,
                        transient = excluded.transient,
                        failed_at = excluded.failed_at
                    """,
                    (
                        entry.subscription_id,
                        entry.customer_id,
                        entry.amount_cents,
                        error,
                        int(transient),
                        self._now(),
                    ),
                )
                conn.execute(
                    "UPDATE refund_outbox SET status = 'DEAD', last_error = ? WHERE subscription_id = ?",
                    (error, entry.subscription_id),
                )

    def dead_letters(self, limit: int) -> List[DeadLetter]:
        with self._locked("dead_letters", None) as conn:
            cur = conn.execute(
                """
                SELECT subscription_id, customer_id, amount_cents, error, transient, failed_at
                FROM refund_dead_letters
                ORDER BY failed_at DESC
                LIMIT ?
                """,
                (limit,),
            )
            rows = cur.fetchall()
        return [
            DeadLetter(
                subscription_id=row["subscription_id"],
                customer_id=row["customer_id"],
                amount_cents=row["amount_cents"],
                error=row["error"],
                transient=bool(row["transient"]),
                failed_at=_parse_timestamp(row["failed_at"]),
            )
            for row in rows
        ]

    # Helpers ----------------------------------------------------------------
    def _now(self) -> str:
        return _format_timestamp(self._clock.now())

    @staticmethod
    def _row_to_subscription(row: sqlite3.Row) -> Subscription:
        return Subscription.reconstruct(
            id=row["id"],
            customer_id=row["customer_id"],
            plan_id=row["plan_id"],
            price_cents=row["price_cents"],
            status=SubscriptionStatus(row["status"]),
            start_date=_parse_timestamp(row["start_date"]),
        )


def _format_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def _parse_timestamp(value: str) -> datetime:
    return datetime.fromisoformat(value)
