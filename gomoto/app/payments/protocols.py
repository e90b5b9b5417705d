"""Contracts between the payments core and its collaborators."""
from __future__ import annotations

from datetime import datetime
from typing import Callable, ContextManager, Dict, Optional, Protocol, Sequence

from .models import (
    ListingPlan,
    PaymentInitiation,
    PaymentStatusResult,
    PaymentTransaction,
    Subscription,
    SubscriptionStatus,
    TransactionStatus,
    UserContact,
)


class PlanRepository(Protocol):
    """Read access to listing plans."""

    def get_plan(self, plan_id: str) -> Optional[ListingPlan]:
        ...


class TransactionRepository(Protocol):
    """Persistence operations for payment transactions."""

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
        """Insert a pending transaction; raise ``ConflictError`` on a duplicate reference."""

    def get_transaction_by_reference(self, reference: str) -> Optional[PaymentTransaction]:
        ...

    def transition_if_pending(
        self,
        transaction_id: str,
        *,
        status: TransactionStatus,
        provider_transaction_id: Optional[str],
        paid_at: Optional[datetime],
    ) -> Optional[PaymentTransaction]:
        """Update the row only while it is still pending; ``None`` when the guard fails."""

    def get_transaction(self, transaction_id: str) -> Optional[PaymentTransaction]:
        ...

    def list_transactions_for_user(self, user_id: str, *, limit: int = 10) -> Sequence[PaymentTransaction]:
        ...


class SubscriptionRepository(Protocol):
    """Persistence operations for subscriptions."""

    def get_subscription(self, subscription_id: str) -> Optional[Subscription]:
        ...

    def get_subscription_for_user(self, user_id: str) -> Optional[Subscription]:
        ...

    def find_subscription_for_user(
        self,
        user_id: str,
        statuses: Sequence[SubscriptionStatus],
    ) -> Optional[Subscription]:
        ...

    def create_subscription(self, *, user_id: str, plan_id: str) -> Subscription:
        ...

    def reset_subscription_to_pending(self, subscription_id: str, *, plan_id: str) -> Optional[Subscription]:
        ...

    def activate_subscription(
        self,
        subscription_id: str,
        *,
        period_start: datetime,
        period_end: datetime,
        next_payment_due: datetime,
    ) -> Optional[Subscription]:
        ...

    def update_subscription_status(
        self,
        subscription_id: str,
        *,
        status: SubscriptionStatus,
    ) -> Optional[Subscription]:
        ...

    def start_grace_period(self, subscription_id: str, *, grace_until: datetime) -> Optional[Subscription]:
        ...

    def list_due_for_payment(self, as_of: datetime) -> Sequence[Subscription]:
        """Active subscriptions whose ``next_payment_due`` falls on or before ``as_of``'s date."""

    def list_grace_expired(self, as_of: datetime) -> Sequence[Subscription]:
        """Past-due subscriptions whose grace period ended before ``as_of``."""

    def list_in_grace(self, as_of: datetime) -> Sequence[Subscription]:
        """Past-due subscriptions still inside their grace period at ``as_of``."""


class PaymentUnitOfWork(Protocol):
    """Transaction and subscription repositories that commit or roll back together."""

    transactions: TransactionRepository
    subscriptions: SubscriptionRepository


UnitOfWorkFactory = Callable[[], ContextManager[PaymentUnitOfWork]]


class ListingRepository(Protocol):
    """Status toggles on listings owned by a seller."""

    def list_paused_listing_ids(self, owner_id: str, *, limit: int) -> Sequence[str]:
        """Paused listing ids, most recently updated first."""

    def publish_listings(self, listing_ids: Sequence[str]) -> Sequence[str]:
        """Publish the given paused listings and return the ids actually changed."""

    def pause_published_listings(self, owner_id: str) -> int:
        ...

    def count_active_listings(self, owner_id: str) -> int:
        """Published plus pending-review listings for ``owner_id``."""


class UserDirectory(Protocol):
    """Looks up contact details for notification delivery."""

    def get_contact(self, user_id: str) -> Optional[UserContact]:
        ...


class PaymentGateway(Protocol):
    """Outbound capabilities of a payment provider."""

    @property
    def is_demo(self) -> bool:
        ...

    def initiate_payment(
        self,
        *,
        user_id: str,
        plan_id: str,
        amount: int,
        reference: str,
        description: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
    ) -> PaymentInitiation:
        ...

    def query_status(self, reference: str) -> PaymentStatusResult:
        ...


class PaymentNotifier(Protocol):
    """Sends billing emails and reports whether one went out. Implementations must not raise."""

    def notify_payment_received(
        self,
        subscription: Subscription,
        transaction: PaymentTransaction,
        plan: Optional[ListingPlan],
    ) -> bool:
        ...

    def notify_payment_due(self, subscription: Subscription) -> bool:
        ...

    def notify_final_reminder(self, subscription: Subscription) -> bool:
        ...

    def notify_subscription_paused(self, subscription: Subscription) -> bool:
        ...


__all__ = [
    "ListingRepository",
    "PaymentGateway",
    "PaymentNotifier",
    "PaymentUnitOfWork",
    "PlanRepository",
    "SubscriptionRepository",
    "TransactionRepository",
    "UnitOfWorkFactory",
    "UserDirectory",
]
