"""Checkout initiation."""
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from .exceptions import ConflictError, NotFoundError
from .ledger import TransactionLedger
from .models import CheckoutResult, PaymentTransaction
from .protocols import PaymentGateway, PlanRepository
from .reference import generate_payment_reference
from .subscriptions import SubscriptionStateMachine

logger = logging.getLogger(__name__)

_MAX_REFERENCE_ATTEMPTS = 3


class CheckoutInitiator:
    """Creates the pending subscription and transaction, then asks the gateway for a payment URL."""

    def __init__(
        self,
        *,
        plans: PlanRepository,
        subscriptions: SubscriptionStateMachine,
        ledger: TransactionLedger,
        gateway: PaymentGateway,
        reference_prefix: str = "GM",
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._plans = plans
        self._subscriptions = subscriptions
        self._ledger = ledger
        self._gateway = gateway
        self._reference_prefix = reference_prefix
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def start_checkout(self, *, user_id: str, plan_id: str, plan_slug: str) -> CheckoutResult:
        plan = self._plans.get_plan(plan_id)
        if plan is None:
            raise NotFoundError(code="plan_not_found", message="Plan not found")

        subscription = self._subscriptions.prepare_for_checkout(user_id, plan.id)
        transaction = self._create_transaction(
            user_id=user_id,
            subscription_id=subscription.id,
            plan_id=plan.id,
            amount=plan.monthly_price,
        )

        # A gateway failure leaves the transaction pending; it is never confirmed.
        initiation = self._gateway.initiate_payment(
            user_id=user_id,
            plan_id=plan.id,
            amount=plan.monthly_price,
            reference=transaction.reference,
            description=f"Go-Moto {plan.name} Plan - Monthly Subscription",
            metadata={"planSlug": plan_slug, "subscriptionId": subscription.id},
        )

        logger.info(
            "Checkout started user=%s plan=%s reference=%s demo=%s",
            user_id,
            plan.slug,
            transaction.reference,
            initiation.is_demo,
        )
        return CheckoutResult(
            success=True,
            payment_url=initiation.payment_url,
            reference=transaction.reference,
            is_demo=initiation.is_demo,
            subscription_id=subscription.id,
            transaction_id=transaction.id,
        )

    def _create_transaction(self, *, user_id: str, subscription_id: str, plan_id: str, amount: int) -> PaymentTransaction:
        moment = self._clock()
        attempt = 0
        while True:
            reference = generate_payment_reference(
                user_id,
                plan_id,
                prefix=self._reference_prefix,
                now=moment + timedelta(milliseconds=attempt),
            )
            try:
                return self._ledger.create(
                    user_id=user_id,
                    subscription_id=subscription_id,
                    plan_id=plan_id,
                    reference=reference,
                    amount=amount,
                )
            except ConflictError:
                attempt += 1
                if attempt >= _MAX_REFERENCE_ATTEMPTS:
                    raise
                logger.warning("Payment reference %s collided, retrying", reference)


__all__ = ["CheckoutInitiator"]
