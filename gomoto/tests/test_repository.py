from __future__ import annotations

import psycopg2.errors
import pytest

from gomoto.app.payments import repository as payments_repository
from gomoto.app.payments.exceptions import ConflictError
from gomoto.app.payments.models import ListingStatus, SubscriptionStatus, TransactionStatus
from gomoto.app.payments.repository import (
    PostgresListingRepository,
    PostgresSubscriptionRepository,
    PostgresTransactionRepository,
    PostgresUserDirectory,
)
from gomoto.tests.fakes import FIXED_NOW


class FakeCursor:
    def __init__(self, *, fetchone_result=None, fetchall_result=None, error=None, rowcount=0):
        self.fetchone_result = fetchone_result
        self.fetchall_result = list(fetchall_result or [])
        self.error = error
        self.rowcount = rowcount
        self.execute_calls = []
        self.closed = False

    def execute(self, query, params=None):
        self.execute_calls.append((" ".join(query.split()), params))
        if self.error is not None:
            raise self.error

    def fetchone(self):
        return self.fetchone_result

    def fetchall(self):
        return list(self.fetchall_result)

    def close(self):
        self.closed = True


class FakeConnection:
    def __init__(self, *cursors):
        self._cursors = list(cursors)
        self.cursor_calls = []
        self.commits = 0
        self.rollbacks = 0
        self.closed = False

    def cursor(self, *args, **kwargs):
        self.cursor_calls.append((args, kwargs))
        if not self._cursors:
            raise AssertionError("No cursors configured")
        return self._cursors.pop(0)

    def commit(self):
        self.commits += 1

    def rollback(self):
        self.rollbacks += 1

    def close(self):
        self.closed = True


def _transaction_row(**overrides):
    row = {
        "id": "txn-1",
        "user_id": "user-1",
        "subscription_id": "sub-1",
        "plan_id": "plan-1",
        "reference": "GM-REF-1",
        "amount": 19900,
        "status": "pending",
        "provider": "ikhokha",
        "provider_transaction_id": None,
        "paid_at": None,
        "created_at": FIXED_NOW,
        "updated_at": FIXED_NOW,
    }
    row.update(overrides)
    return row


def test_transition_is_conditional_on_pending_status():
    cursor = FakeCursor(fetchone_result=_transaction_row(status="paid", paid_at=FIXED_NOW))
    repo = PostgresTransactionRepository(conn=FakeConnection(cursor))

    updated = repo.transition_if_pending(
        "txn-1",
        status=TransactionStatus.PAID,
        provider_transaction_id="ik-1",
        paid_at=FIXED_NOW,
    )

    query, params = cursor.execute_calls[0]
    assert query.startswith("UPDATE payment_transactions")
    assert "WHERE id = %s AND status = %s RETURNING *" in query
    assert params == ("paid", "ik-1", FIXED_NOW, "txn-1", "pending")
    assert updated.status == TransactionStatus.PAID
    assert cursor.closed


def test_transition_lost_returns_none():
    repo = PostgresTransactionRepository(conn=FakeConnection(FakeCursor(fetchone_result=None)))

    assert (
        repo.transition_if_pending(
            "txn-1",
            status=TransactionStatus.FAILED,
            provider_transaction_id=None,
            paid_at=None,
        )
        is None
    )


def test_unique_violation_maps_to_duplicate_reference():
    cursor = FakeCursor(error=psycopg2.errors.UniqueViolation("duplicate key value"))
    repo = PostgresTransactionRepository(conn=FakeConnection(cursor))

    with pytest.raises(ConflictError) as excinfo:
        repo.insert_transaction(
            user_id="user-1",
            subscription_id="sub-1",
            plan_id="plan-1",
            reference="GM-REF-1",
            amount=19900,
            provider="ikhokha",
        )

    assert excinfo.value.code == "duplicate_reference"


def test_managed_connection_commits_and_closes(monkeypatch):
    connection = FakeConnection(FakeCursor(fetchone_result=_transaction_row()))
    monkeypatch.setattr(payments_repository, "get_conn", lambda: connection)

    transaction = PostgresTransactionRepository().get_transaction_by_reference("GM-REF-1")

    assert transaction.reference == "GM-REF-1"
    assert connection.commits >= 1
    assert connection.rollbacks == 0
    assert connection.closed


def test_managed_connection_rolls_back_on_error(monkeypatch):
    connection = FakeConnection(FakeCursor(error=RuntimeError("boom")))
    monkeypatch.setattr(payments_repository, "get_conn", lambda: connection)

    with pytest.raises(RuntimeError):
        PostgresTransactionRepository().get_transaction("txn-1")

    assert connection.commits == 0
    assert connection.rollbacks >= 1
    assert connection.closed


def _subscription_row(**overrides):
    row = {
        "id": "sub-1",
        "user_id": "user-1",
        "plan_id": "plan-1",
        "status": "active",
        "created_at": FIXED_NOW,
        "updated_at": FIXED_NOW,
    }
    row.update(overrides)
    return row


def test_unit_of_work_commits_both_writes_once(monkeypatch):
    transaction_cursor = FakeCursor(fetchone_result=_transaction_row(status="paid", paid_at=FIXED_NOW))
    subscription_cursor = FakeCursor(fetchone_result=_subscription_row())
    connection = FakeConnection(transaction_cursor, subscription_cursor)
    monkeypatch.setattr(payments_repository, "get_conn", lambda: connection)

    with payments_repository.postgres_unit_of_work() as unit:
        unit.transactions.transition_if_pending(
            "txn-1",
            status=TransactionStatus.PAID,
            provider_transaction_id="ik-1",
            paid_at=FIXED_NOW,
        )
        assert connection.commits == 0
        unit.subscriptions.activate_subscription(
            "sub-1",
            period_start=FIXED_NOW,
            period_end=FIXED_NOW,
            next_payment_due=FIXED_NOW,
        )
        assert connection.commits == 0

    assert len(connection.cursor_calls) == 2
    assert connection.commits == 1
    assert connection.rollbacks == 0
    assert connection.closed


def test_unit_of_work_rolls_back_paid_write_when_activation_fails(monkeypatch):
    transaction_cursor = FakeCursor(fetchone_result=_transaction_row(status="paid", paid_at=FIXED_NOW))
    subscription_cursor = FakeCursor(error=psycopg2.OperationalError("server closed the connection"))
    connection = FakeConnection(transaction_cursor, subscription_cursor)
    monkeypatch.setattr(payments_repository, "get_conn", lambda: connection)

    with pytest.raises(psycopg2.OperationalError):
        with payments_repository.postgres_unit_of_work() as unit:
            unit.transactions.transition_if_pending(
                "txn-1",
                status=TransactionStatus.PAID,
                provider_transaction_id="ik-1",
                paid_at=FIXED_NOW,
            )
            unit.subscriptions.activate_subscription(
                "sub-1",
                period_start=FIXED_NOW,
                period_end=FIXED_NOW,
                next_payment_due=FIXED_NOW,
            )

    assert connection.commits == 0
    assert connection.rollbacks == 1
    assert connection.closed


def test_find_subscription_filters_by_status_values():
    row = {
        "id": "sub-1",
        "user_id": "user-1",
        "plan_id": "plan-1",
        "status": "past_due",
        "created_at": FIXED_NOW,
        "updated_at": FIXED_NOW,
    }
    cursor = FakeCursor(fetchone_result=row)
    repo = PostgresSubscriptionRepository(conn=FakeConnection(cursor))

    subscription = repo.find_subscription_for_user(
        "user-1",
        [SubscriptionStatus.PAST_DUE, SubscriptionStatus.PAUSED],
    )

    _, params = cursor.execute_calls[0]
    assert params == ("user-1", ["past_due", "paused"])
    assert subscription.status == SubscriptionStatus.PAST_DUE
    assert subscription.grace_until is None


def test_activate_conflict_on_second_active_subscription():
    cursor = FakeCursor(error=psycopg2.errors.UniqueViolation("subscriptions_one_active_per_user"))
    repo = PostgresSubscriptionRepository(conn=FakeConnection(cursor))

    with pytest.raises(ConflictError) as excinfo:
        repo.activate_subscription("sub-1", period_start=FIXED_NOW, period_end=FIXED_NOW, next_payment_due=FIXED_NOW)

    assert excinfo.value.code == "active_subscription_exists"


def test_publish_only_touches_paused_rows():
    cursor = FakeCursor(fetchall_result=[{"id": "listing-1"}])
    repo = PostgresListingRepository(conn=FakeConnection(cursor))

    published = repo.publish_listings(["listing-1", "listing-2"])

    query, params = cursor.execute_calls[0]
    assert "WHERE id = ANY(%s) AND listing_status = %s" in query
    assert params == ("published", ["listing-1", "listing-2"], "paused")
    assert published == ["listing-1"]


def test_publish_with_no_ids_skips_query():
    connection = FakeConnection()

    assert PostgresListingRepository(conn=connection).publish_listings([]) == []
    assert connection.cursor_calls == []


def test_pause_returns_rowcount():
    cursor = FakeCursor(rowcount=4)
    repo = PostgresListingRepository(conn=FakeConnection(cursor))

    assert repo.pause_published_listings("user-1") == 4
    _, params = cursor.execute_calls[0]
    assert params == (ListingStatus.PAUSED.value, "user-1", ListingStatus.PUBLISHED.value)


def test_user_without_email_has_no_contact():
    cursor = FakeCursor(fetchone_result={"id": "user-1", "email": None, "full_name": "Thandi"})

    assert PostgresUserDirectory(conn=FakeConnection(cursor)).get_contact("user-1") is None
