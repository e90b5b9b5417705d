"""PostgreSQL persistence for plans, subscriptions, transactions and listings."""
from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Iterator, Optional, Sequence

import psycopg2
import psycopg2.errors
import psycopg2.extras
from psycopg2.extensions import connection as PgConnection
from psycopg2.extensions import cursor as PgCursor

from ...app_context import get_conn
from .exceptions import ConflictError, duplicate_reference
from .models import (
    ListingPlan,
    ListingStatus,
    PaymentTransaction,
    Subscription,
    SubscriptionStatus,
    TransactionStatus,
    UserContact,
)


@contextmanager
def managed_connection(conn: Optional[PgConnection] = None):
    """Context manager that manages transaction boundaries for optional connections."""

    if conn is not None:
        yield conn, False
        return

    connection = get_conn()
    try:
        yield connection, True
        connection.commit()
    except Exception:
        connection.rollback()
        raise
    finally:
        connection.close()


def _row_to_plan(row: dict) -> ListingPlan:
    return ListingPlan(
        id=str(row["id"]),
        slug=row["slug"],
        name=row["name"],
        monthly_price=int(row["monthly_price"]),
        max_active_listings=int(row["max_active_listings"]),
    )


def _row_to_subscription(row: dict) -> Subscription:
    return Subscription(
        id=str(row["id"]),
        user_id=str(row["user_id"]),
        plan_id=str(row["plan_id"]),
        status=SubscriptionStatus(row["status"]),
        current_period_start=row.get("current_period_start"),
        current_period_end=row.get("current_period_end"),
        next_payment_due=row.get("next_payment_due"),
        grace_until=row.get("grace_until"),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_transaction(row: dict) -> PaymentTransaction:
    subscription_id = row.get("subscription_id")
    return PaymentTransaction(
        id=str(row["id"]),
        user_id=str(row["user_id"]),
        subscription_id=str(subscription_id) if subscription_id is not None else None,
        plan_id=str(row["plan_id"]),
        reference=row["reference"],
        amount=int(row["amount"]),
        status=TransactionStatus(row["status"]),
        provider=row.get("provider") or "ikhokha",
        provider_transaction_id=row.get("provider_transaction_id"),
        paid_at=row.get("paid_at"),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class _PostgresRepository:
    def __init__(self, *, conn: Optional[PgConnection] = None) -> None:
        self._conn = conn

    @contextmanager
    def _cursor(self) -> Iterable[PgCursor]:
        with managed_connection(self._conn) as (connection, managed):
            cursor = connection.cursor(cursor_factory=psycopg2.extras.RealDictCursor)
            try:
                yield cursor
                if managed:
                    connection.commit()
            except Exception:
                if managed:
                    connection.rollback()
                raise
            finally:
                cursor.close()


class PostgresPlanRepository(_PostgresRepository):
    def get_plan(self, plan_id: str) -> Optional[ListingPlan]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT id, slug, name, monthly_price, max_active_listings
                FROM listing_plans
                WHERE id = %s
                LIMIT 1
                """,
                (plan_id,),
            )
            row = cursor.fetchone()
            return _row_to_plan(row) if row else None


class PostgresTransactionRepository(_PostgresRepository):
    """Payment transactions. ``reference`` carries a UNIQUE constraint."""

    def insert_transaction(
        self,
        *,
        user_id: str,
        subscription_id: Optional[str],
        plan_id: str,
        reference: str,
        amount: int,
        provider: str,
    ) -> PaymentTransaction:
        try:
            with self._cursor() as cursor:
                cursor.execute(
                    """
                    INSERT INTO payment_transactions (
                        user_id,
                        subscription_id,
                        plan_id,
                        reference,
                        amount,
                        status,
                        provider
                    )
                    VALUES (%s, %s, %s, %s, %s, %s, %s)
                    RETURNING *
                    """,
                    (
                        user_id,
                        subscription_id,
                        plan_id,
                        reference,
                        amount,
                        TransactionStatus.PENDING.value,
                        provider,
                    ),
                )
                row = cursor.fetchone()
        except psycopg2.errors.UniqueViolation as exc:
            raise duplicate_reference(reference) from exc
        if not row:
            raise RuntimeError("Failed to persist payment transaction")
        return _row_to_transaction(row)

    def get_transaction(self, transaction_id: str) -> Optional[PaymentTransaction]:
        with self._cursor() as cursor:
            cursor.execute("SELECT * FROM payment_transactions WHERE id = %s LIMIT 1", (transaction_id,))
            row = cursor.fetchone()
            return _row_to_transaction(row) if row else None

    def get_transaction_by_reference(self, reference: str) -> Optional[PaymentTransaction]:
        with self._cursor() as cursor:
            cursor.execute("SELECT * FROM payment_transactions WHERE reference = %s LIMIT 1", (reference,))
            row = cursor.fetchone()
            return _row_to_transaction(row) if row else None

    def transition_if_pending(
        self,
        transaction_id: str,
        *,
        status: TransactionStatus,
        provider_transaction_id: Optional[str],
        paid_at: Optional[datetime],
    ) -> Optional[PaymentTransaction]:
        # The status predicate is the idempotency guard; only one writer can match it.
        with self._cursor() as cursor:
            cursor.execute(
                """
                UPDATE payment_transactions
                SET status = %s,
                    provider_transaction_id = COALESCE(%s, provider_transaction_id),
                    paid_at = %s,
                    updated_at = NOW()
                WHERE id = %s AND status = %s
                RETURNING *
                """,
                (
                    status.value,
                    provider_transaction_id,
                    paid_at,
                    transaction_id,
                    TransactionStatus.PENDING.value,
                ),
            )
            row = cursor.fetchone()
            return _row_to_transaction(row) if row else None

    def list_transactions_for_user(self, user_id: str, *, limit: int = 10) -> Sequence[PaymentTransaction]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT *
                FROM payment_transactions
                WHERE user_id = %s
                ORDER BY created_at DESC
                LIMIT %s
                """,
                (user_id, limit),
            )
            rows = cursor.fetchall() or []
            return [_row_to_transaction(row) for row in rows]


class PostgresSubscriptionRepository(_PostgresRepository):
    """Subscriptions. A partial unique index allows one active row per user."""

    def get_subscription(self, subscription_id: str) -> Optional[Subscription]:
        with self._cursor() as cursor:
            cursor.execute("SELECT * FROM subscriptions WHERE id = %s LIMIT 1", (subscription_id,))
            row = cursor.fetchone()
            return _row_to_subscription(row) if row else None

    def get_subscription_for_user(self, user_id: str) -> Optional[Subscription]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT *
                FROM subscriptions
                WHERE user_id = %s
                ORDER BY (status = 'active') DESC, updated_at DESC
                LIMIT 1
                """,
                (user_id,),
            )
            row = cursor.fetchone()
            return _row_to_subscription(row) if row else None

    def find_subscription_for_user(
        self,
        user_id: str,
        statuses: Sequence[SubscriptionStatus],
    ) -> Optional[Subscription]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT *
                FROM subscriptions
                WHERE user_id = %s AND status = ANY(%s)
                ORDER BY updated_at DESC
                LIMIT 1
                """,
                (user_id, [status.value for status in statuses]),
            )
            row = cursor.fetchone()
            return _row_to_subscription(row) if row else None

    def create_subscription(self, *, user_id: str, plan_id: str) -> Subscription:
        with self._cursor() as cursor:
            cursor.execute(
                """
                INSERT INTO subscriptions (user_id, plan_id, status)
                VALUES (%s, %s, %s)
                RETURNING *
                """,
                (user_id, plan_id, SubscriptionStatus.PENDING.value),
            )
            row = cursor.fetchone()
            if not row:
                raise RuntimeError("Failed to persist subscription")
            return _row_to_subscription(row)

    def reset_subscription_to_pending(self, subscription_id: str, *, plan_id: str) -> Optional[Subscription]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                UPDATE subscriptions
                SET plan_id = %s, status = %s, updated_at = NOW()
                WHERE id = %s
                RETURNING *
                """,
                (plan_id, SubscriptionStatus.PENDING.value, subscription_id),
            )
            row = cursor.fetchone()
            return _row_to_subscription(row) if row else None

    def activate_subscription(
        self,
        subscription_id: str,
        *,
        period_start: datetime,
        period_end: datetime,
        next_payment_due: datetime,
    ) -> Optional[Subscription]:
        try:
            with self._cursor() as cursor:
                cursor.execute(
                    """
                    UPDATE subscriptions
                    SET status = %s,
                        current_period_start = %s,
                        current_period_end = %s,
                        next_payment_due = %s,
                        grace_until = NULL,
                        updated_at = NOW()
                    WHERE id = %s
                    RETURNING *
                    """,
                    (
                        SubscriptionStatus.ACTIVE.value,
                        period_start,
                        period_end,
                        next_payment_due,
                        subscription_id,
                    ),
                )
                row = cursor.fetchone()
        except psycopg2.errors.UniqueViolation as exc:
            raise ConflictError(
                code="active_subscription_exists",
                message="User already has an active subscription",
            ) from exc
        return _row_to_subscription(row) if row else None

    def update_subscription_status(
        self,
        subscription_id: str,
        *,
        status: SubscriptionStatus,
    ) -> Optional[Subscription]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                UPDATE subscriptions
                SET status = %s, updated_at = NOW()
                WHERE id = %s
                RETURNING *
                """,
                (status.value, subscription_id),
            )
            row = cursor.fetchone()
            return _row_to_subscription(row) if row else None

    def start_grace_period(self, subscription_id: str, *, grace_until: datetime) -> Optional[Subscription]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                UPDATE subscriptions
                SET status = %s, grace_until = %s, updated_at = NOW()
                WHERE id = %s
                RETURNING *
                """,
                (SubscriptionStatus.PAST_DUE.value, grace_until, subscription_id),
            )
            row = cursor.fetchone()
            return _row_to_subscription(row) if row else None

    def list_due_for_payment(self, as_of: datetime) -> Sequence[Subscription]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT *
                FROM subscriptions
                WHERE status = %s AND next_payment_due::date <= %s
                """,
                (SubscriptionStatus.ACTIVE.value, as_of.date()),
            )
            return [_row_to_subscription(row) for row in cursor.fetchall() or []]

    def list_grace_expired(self, as_of: datetime) -> Sequence[Subscription]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT *
                FROM subscriptions
                WHERE status = %s AND grace_until < %s
                """,
                (SubscriptionStatus.PAST_DUE.value, as_of),
            )
            return [_row_to_subscription(row) for row in cursor.fetchall() or []]

    def list_in_grace(self, as_of: datetime) -> Sequence[Subscription]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT *
                FROM subscriptions
                WHERE status = %s AND grace_until >= %s
                """,
                (SubscriptionStatus.PAST_DUE.value, as_of),
            )
            return [_row_to_subscription(row) for row in cursor.fetchall() or []]


class PostgresListingRepository(_PostgresRepository):
    def list_paused_listing_ids(self, owner_id: str, *, limit: int) -> Sequence[str]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT id
                FROM listings
                WHERE owner_id = %s AND listing_status = %s
                ORDER BY updated_at DESC
                LIMIT %s
                """,
                (owner_id, ListingStatus.PAUSED.value, limit),
            )
            return [str(row["id"]) for row in cursor.fetchall() or []]

    def publish_listings(self, listing_ids: Sequence[str]) -> Sequence[str]:
        if not listing_ids:
            return []
        with self._cursor() as cursor:
            cursor.execute(
                """
                UPDATE listings
                SET listing_status = %s, updated_at = NOW()
                WHERE id = ANY(%s) AND listing_status = %s
                RETURNING id
                """,
                (ListingStatus.PUBLISHED.value, list(listing_ids), ListingStatus.PAUSED.value),
            )
            return [str(row["id"]) for row in cursor.fetchall() or []]

    def pause_published_listings(self, owner_id: str) -> int:
        with self._cursor() as cursor:
            cursor.execute(
                """
                UPDATE listings
                SET listing_status = %s, updated_at = NOW()
                WHERE owner_id = %s AND listing_status = %s
                """,
                (ListingStatus.PAUSED.value, owner_id, ListingStatus.PUBLISHED.value),
            )
            return cursor.rowcount

    def count_active_listings(self, owner_id: str) -> int:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT COUNT(*) AS total
                FROM listings
                WHERE owner_id = %s AND listing_status = ANY(%s)
                """,
                (owner_id, [ListingStatus.PUBLISHED.value, ListingStatus.PENDING_REVIEW.value]),
            )
            row = cursor.fetchone()
            return int(row["total"]) if row else 0


class PostgresUserDirectory(_PostgresRepository):
    def get_contact(self, user_id: str) -> Optional[UserContact]:
        with self._cursor() as cursor:
            cursor.execute(
                "SELECT id, email, full_name FROM users WHERE id = %s LIMIT 1",
                (user_id,),
            )
            row = cursor.fetchone()
            if not row or not row.get("email"):
                return None
            return UserContact(user_id=str(row["id"]), email=row["email"], name=row.get("full_name"))


@dataclass(frozen=True)
class PostgresUnitOfWork:
    transactions: PostgresTransactionRepository
    subscriptions: PostgresSubscriptionRepository


@contextmanager
def postgres_unit_of_work(conn: Optional[PgConnection] = None) -> Iterator[PostgresUnitOfWork]:
    """Bind the transaction and subscription repositories to one connection.

    Writes made through the yielded repositories commit when the block exits
    and roll back together if it raises. A caller-supplied ``conn`` is left
    for the caller to commit.
    """

    with managed_connection(conn) as (connection, _managed):
        yield PostgresUnitOfWork(
            transactions=PostgresTransactionRepository(conn=connection),
            subscriptions=PostgresSubscriptionRepository(conn=connection),
        )


__all__ = [
    "PostgresListingRepository",
    "PostgresPlanRepository",
    "PostgresSubscriptionRepository",
    "PostgresTransactionRepository",
    "PostgresUnitOfWork",
    "PostgresUserDirectory",
    "managed_connection",
    "postgres_unit_of_work",
]
