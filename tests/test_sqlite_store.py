import sqlite3
from datetime import timedelta

import pytest

from subscription_manager.domain.clock import FixedClock
from subscription_manager.domain.deadline import Deadline
from subscription_manager.domain.errors import (
    DeadlineExceededError,
    SubscriptionNotFoundError,
    WriteConflictError,
)
from subscription_manager.domain.events import SubscriptionCancelled
from subscription_manager.domain.models import Subscription, SubscriptionStatus
from subscription_manager.domain.ports.persistence import WriteKind
from subscription_manager.infrastructure.persistence.migrations import (
    applied_versions,
    apply_migrations,
    available_migrations,
)
from subscription_manager.infrastructure.persistence.sqlite import SQLiteSubscriptionStore
from tests.conftest import JAN_1, JAN_15


def _stored(store, subscription_id="sub-1", price_cents=3000):
    subscription, _ = Subscription.create(subscription_id, "cust-123", "plan-premium", price_cents, FixedClock(JAN_1))
    store.apply(store.save(subscription))
    return subscription


class TestSubscriptionRepository:
    def test_save_prepares_without_committing(self, store):
        subscription, _ = Subscription.create("sub-1", "cust-123", "plan-premium", 3000, FixedClock(JAN_1))

        write = store.save(subscription)

        assert write.kind is WriteKind.INSERT
        assert write.values["price_cents"] == 3000
        with pytest.raises(SubscriptionNotFoundError):
            store.find_by_id("sub-1")

    def test_round_trip(self, store):
        original = _stored(store)

        loaded = store.find_by_id("sub-1")

        assert loaded.id == original.id
        assert loaded.customer_id == original.customer_id
        assert loaded.plan_id == original.plan_id
        assert loaded.price_cents == original.price_cents
        assert isinstance(loaded.price_cents, int)
        assert loaded.status is SubscriptionStatus.ACTIVE
        assert loaded.start_date == JAN_1

    def test_cancelled_write_is_conditional(self, store):
        _stored(store)
        subscription = store.find_by_id("sub-1")
        subscription.cancel(FixedClock(JAN_15), 30)

        write = store.save(subscription)

        assert write.kind is WriteKind.UPDATE
        assert write.condition == {"status": "ACTIVE"}
        store.apply(write)
        assert store.find_by_id("sub-1").status is SubscriptionStatus.CANCELLED

        with pytest.raises(WriteConflictError):
            store.apply(write)

    def test_batch_rolls_back_on_conflict(self, store):
        _stored(store)
        first = store.find_by_id("sub-1")
        second = store.find_by_id("sub-1")
        first.cancel(FixedClock(JAN_15), 30)
        event = second.cancel(FixedClock(JAN_15), 30)
        store.apply(store.save(first))

        with pytest.raises(WriteConflictError):
            store.apply(store.save(second), store.record(event))

        assert store.pending(10) == []

    def test_large_prices_are_stored_exactly(self, store):
        _stored(store, price_cents=2**62)

        assert store.find_by_id("sub-1").price_cents == 2**62

    def test_expired_deadline(self, store):
        with pytest.raises(DeadlineExceededError):
            store.find_by_id("sub-1", deadline=Deadline(expires_at=0.0))

    def test_data_survives_reopen(self, tmp_path):
        path = tmp_path / "subscriptions.db"
        first = SQLiteSubscriptionStore(path)
        _stored(first)
        first.close()

        second = SQLiteSubscriptionStore(path)
        try:
            assert second.find_by_id("sub-1").customer_id == "cust-123"
        finally:
            second.close()


class TestRefundOutbox:
    def _queue(self, store, amount_cents=1600):
        _stored(store)
        event = SubscriptionCancelled("sub-1", "cust-123", amount_cents, JAN_15)
        subscription = store.find_by_id("sub-1")
        subscription.cancel(FixedClock(JAN_15), 30)
        store.apply(store.save(subscription), store.record(event))

    def test_record_and_settle(self, store):
        self._queue(store)

        [entry] = store.pending(10)
        assert entry.amount_cents == 1600
        assert entry.attempts == 0

        store.mark_settled("sub-1")
        assert store.pending(10) == []

    def test_attempts_are_counted(self, store):
        self._queue(store)

        store.mark_attempt("sub-1", "503 from billing")
        store.mark_attempt("sub-1", "503 from billing")

        [entry] = store.pending(10)
        assert entry.attempts == 2
        assert entry.last_error == "503 from billing"

    def test_dead_letter_leaves_outbox(self, store):
        self._queue(store)
        [entry] = store.pending(10)

        store.dead_letter(entry, "400 malformed amount", transient=False)

        assert store.pending(10) == []
        [letter] = store.dead_letters(10)
        assert letter.subscription_id == "sub-1"
        assert letter.customer_id == "cust-123"
        assert letter.amount_cents == 1600
        assert letter.error == "400 malformed amount"
        assert letter.transient is False

    def test_bookkeeping_timestamps_come_from_the_store_clock(self, tmp_path):
        clock = FixedClock(JAN_15)
        store = SQLiteSubscriptionStore(tmp_path / "clocked.db", clock=clock)
        try:
            self._queue(store)
            [entry] = store.pending(10)
            assert entry.created_at == JAN_15

            clock.instant = JAN_15 + timedelta(hours=3)
            store.dead_letter(entry, "400 malformed amount", transient=False)

            [letter] = store.dead_letters(10)
            assert letter.failed_at == JAN_15 + timedelta(hours=3)
        finally:
            store.close()


class TestMigrations:
    def test_all_migrations_applied_once(self, store, tmp_path):
        conn = sqlite3.connect(tmp_path / "subscriptions.db")
        try:
            versions = [version for version, _ in available_migrations()]
            assert versions == ["001_initial_schema", "002_refund_outbox"]
            assert applied_versions(conn) == versions
            assert apply_migrations(conn) == []
        finally:
            conn.close()

    def test_customer_index_exists(self):
        conn = sqlite3.connect(":memory:")
        try:
            apply_migrations(conn)
            cur = conn.execute("SELECT name FROM sqlite_master WHERE type = 'index'")
            names = {row[0] for row in cur.fetchall()}
        finally:
            conn.close()
        assert "idx_subscriptions_customer_id" in names

    def test_applied_at_comes_from_the_clock(self):
        conn = sqlite3.connect(":memory:")
        try:
            apply_migrations(conn, clock=FixedClock(JAN_1))
            cur = conn.execute("SELECT DISTINCT applied_at FROM schema_migrations")
            stamps = [row[0] for row in cur.fetchall()]
        finally:
            conn.close()
        assert stamps == [JAN_1.isoformat()]
