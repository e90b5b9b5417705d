"""API schemas for payment and seller billing endpoints."""
from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..payments import (
    BillingCycleResult,
    BillingSummary,
    CheckoutResult,
    ListingPlan,
    PaymentTransaction,
    PublishStatus,
    Subscription,
    SubscriptionStatus,
    TransactionStatus,
    WebhookAck,
)


class CheckoutRequest(BaseModel):
    # Both optional so that absent fields are reported as a 400, not a 422.
    plan_id: Optional[str] = Field(alias="planId", default=None)
    plan_slug: Optional[str] = Field(alias="planSlug", default=None)

    model_config = ConfigDict(populate_by_name=True)


class CheckoutResponse(BaseModel):
    success: bool = True
    payment_url: str = Field(alias="paymentUrl")
    reference: str
    is_demo: bool = Field(alias="isDemo", default=False)

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_result(cls, result: CheckoutResult) -> "CheckoutResponse":
        return cls(
            success=result.success,
            payment_url=result.payment_url,
            reference=result.reference,
            is_demo=result.is_demo,
        )


class NotificationResponse(BaseModel):
    received: bool = True
    status: Optional[str] = None
    message: Optional[str] = None

    @classmethod
    def from_ack(cls, ack: WebhookAck) -> "NotificationResponse":
        return cls(received=ack.received, status=ack.status, message=ack.message)


class PlanOut(BaseModel):
    id: str
    slug: str
    name: str
    monthly_price: int = Field(alias="monthlyPrice")
    max_active_listings: int = Field(alias="maxActiveListings")

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_plan(cls, plan: ListingPlan) -> "PlanOut":
        return cls(
            id=plan.id,
            slug=plan.slug,
            name=plan.name,
            monthly_price=plan.monthly_price,
            max_active_listings=plan.max_active_listings,
        )


class SubscriptionOut(BaseModel):
    id: str
    plan_id: str = Field(alias="planId")
    status: SubscriptionStatus
    current_period_start: Optional[datetime] = Field(alias="currentPeriodStart", default=None)
    current_period_end: Optional[datetime] = Field(alias="currentPeriodEnd", default=None)
    next_payment_due: Optional[datetime] = Field(alias="nextPaymentDue", default=None)
    grace_until: Optional[datetime] = Field(alias="graceUntil", default=None)

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_subscription(cls, subscription: Subscription) -> "SubscriptionOut":
        return cls(
            id=subscription.id,
            plan_id=subscription.plan_id,
            status=subscription.status,
            current_period_start=subscription.current_period_start,
            current_period_end=subscription.current_period_end,
            next_payment_due=subscription.next_payment_due,
            grace_until=subscription.grace_until,
        )


class TransactionOut(BaseModel):
    id: str
    reference: str
    amount: int
    status: TransactionStatus
    provider: str
    paid_at: Optional[datetime] = Field(alias="paidAt", default=None)
    created_at: datetime = Field(alias="createdAt")

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_transaction(cls, transaction: PaymentTransaction) -> "TransactionOut":
        return cls(
            id=transaction.id,
            reference=transaction.reference,
            amount=transaction.amount,
            status=transaction.status,
            provider=transaction.provider,
            paid_at=transaction.paid_at,
            created_at=transaction.created_at,
        )


class BillingSummaryResponse(BaseModel):
    subscription: Optional[SubscriptionOut] = None
    plan: Optional[PlanOut] = None
    transactions: List[TransactionOut] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_summary(cls, summary: BillingSummary) -> "BillingSummaryResponse":
        return cls(
            subscription=SubscriptionOut.from_subscription(summary.subscription) if summary.subscription else None,
            plan=PlanOut.from_plan(summary.plan) if summary.plan else None,
            transactions=[TransactionOut.from_transaction(item) for item in summary.transactions],
        )


class PublishStatusResponse(BaseModel):
    can_publish: bool = Field(alias="canPublish")
    reason: Optional[str] = None
    current_count: int = Field(alias="currentCount", default=0)
    max_count: int = Field(alias="maxCount", default=0)
    remaining: int = 0

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_status(cls, publish_status: PublishStatus) -> "PublishStatusResponse":
        return cls(
            can_publish=publish_status.can_publish,
            reason=publish_status.reason,
            current_count=publish_status.current_count,
            max_count=publish_status.max_count,
            remaining=publish_status.remaining,
        )


class BillingCycleResponse(BaseModel):
    success: bool = True
    ran_at: datetime = Field(alias="ranAt")
    marked_past_due: int = Field(alias="markedPastDue")
    paused: int
    reminders_sent: int = Field(alias="remindersSent")
    errors: List[str] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_result(cls, result: BillingCycleResult) -> "BillingCycleResponse":
        return cls(
            ran_at=result.ran_at,
            marked_past_due=result.marked_past_due,
            paused=result.paused,
            reminders_sent=result.reminders_sent,
            errors=list(result.errors),
        )


__all__ = [
    "BillingCycleResponse",
    "BillingSummaryResponse",
    "CheckoutRequest",
    "CheckoutResponse",
    "NotificationResponse",
    "PlanOut",
    "PublishStatusResponse",
    "SubscriptionOut",
    "TransactionOut",
]
