"""Domain models for seller payments and subscriptions."""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SubscriptionStatus(str, Enum):
    """Lifecycle status of a seller subscription."""

    PENDING = "pending"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    PAUSED = "paused"
    CANCELED = "canceled"


REUSABLE_SUBSCRIPTION_STATUSES = (
    SubscriptionStatus.PENDING,
    SubscriptionStatus.PAST_DUE,
    SubscriptionStatus.PAUSED,
)


class TransactionStatus(str, Enum):
    """Stored status of a payment attempt."""

    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"


class GatewayPaymentStatus(str, Enum):
    """Normalized payment status reported by the gateway."""

    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    CANCELLED = "cancelled"
    UNKNOWN = "unknown"

    @property
    def is_actionable(self) -> bool:
        """``True`` when the status settles the transaction one way or the other."""
        return self in (
            GatewayPaymentStatus.PAID,
            GatewayPaymentStatus.FAILED,
            GatewayPaymentStatus.CANCELLED,
        )


class ListingStatus(str, Enum):
    """Subset of listing statuses this package reads or writes."""

    DRAFT = "draft"
    PENDING_REVIEW = "pending_review"
    PUBLISHED = "published"
    PAUSED = "paused"
    REJECTED = "rejected"
    SOLD = "sold"


class ReconciliationOutcome(str, Enum):
    """Result of applying a gateway status to a stored transaction."""

    ALREADY_PROCESSED = "already_processed"
    ACTIVATED = "activated"
    PAYMENT_FAILED = "payment_failed"
    PENDING = "pending"


class ListingPlan(BaseModel):
    """Immutable pricing tier a seller can subscribe to."""

    id: str
    slug: str
    name: str
    monthly_price: int = Field(ge=0, description="Price in minor currency units")
    max_active_listings: int = Field(ge=0)

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class Subscription(BaseModel):
    """A seller's billing relationship with the marketplace."""

    id: str
    user_id: str
    plan_id: str
    status: SubscriptionStatus = SubscriptionStatus.PENDING
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    next_payment_due: Optional[datetime] = None
    grace_until: Optional[datetime] = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @property
    def is_active(self) -> bool:
        return self.status == SubscriptionStatus.ACTIVE


class PaymentTransaction(BaseModel):
    """One payment attempt, identified by its gateway reference."""

    id: str
    user_id: str
    subscription_id: Optional[str] = None
    plan_id: str
    reference: str
    amount: int = Field(ge=0)
    status: TransactionStatus = TransactionStatus.PENDING
    provider: str = "ikhokha"
    provider_transaction_id: Optional[str] = None
    paid_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class UserContact(BaseModel):
    """Addressing details for billing notifications."""

    user_id: str
    email: str
    name: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class PaymentInitiation(BaseModel):
    """Gateway response to a payment initiation request."""

    payment_url: str
    reference: str
    provider_transaction_id: Optional[str] = None
    is_demo: bool = False

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class PaymentStatusResult(BaseModel):
    """Authoritative payment status fetched from the gateway."""

    status: GatewayPaymentStatus
    provider_transaction_id: Optional[str] = None
    paid_at: Optional[datetime] = None
    is_demo: bool = False

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class PaymentNotification(BaseModel):
    """Parsed server-to-server notification. Only ``reference`` is trusted."""

    reference: str
    provider_transaction_id: Optional[str] = None
    status: Optional[str] = None
    amount: Optional[float] = None
    timestamp: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class TransitionResult(BaseModel):
    """Outcome of a conditional ``pending`` to terminal transition."""

    applied: bool
    transaction: PaymentTransaction

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class ReconciliationResult(BaseModel):
    """What the shared reconciliation step did for a reference."""

    outcome: ReconciliationOutcome
    transaction: PaymentTransaction
    gateway_status: Optional[GatewayPaymentStatus] = None

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class WebhookAck(BaseModel):
    """Acknowledgment returned to the gateway once a notification is accepted."""

    received: bool = True
    status: Optional[str] = None
    message: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class CheckoutResult(BaseModel):
    """Return value of a checkout initiation."""

    success: bool = True
    payment_url: str
    reference: str
    is_demo: bool = False
    subscription_id: str
    transaction_id: str

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class PublishStatus(BaseModel):
    """Whether a seller may publish another listing under their plan."""

    can_publish: bool
    reason: Optional[str] = None
    current_count: int = 0
    max_count: int = 0
    remaining: int = 0

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class BillingSummary(BaseModel):
    """Subscription and recent payment history shown to a seller."""

    subscription: Optional[Subscription] = None
    plan: Optional[ListingPlan] = None
    transactions: List[PaymentTransaction] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class BillingCycleResult(BaseModel):
    """Counters collected by a billing cycle run."""

    marked_past_due: int = 0
    paused: int = 0
    reminders_sent: int = 0
    errors: List[str] = Field(default_factory=list)
    ran_at: datetime = Field(default_factory=_utcnow)

    model_config = ConfigDict(populate_by_name=True)
