"""Facade coordinating checkout, reconciliation and renewal flows."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Mapping, Optional

from .billing_cycle import BillingCycleRunner
from .checkout import CheckoutInitiator
from .config import GatewayConfig
from .ledger import TransactionLedger
from .listings import ListingQuotaManager
from .models import BillingCycleResult, BillingSummary, CheckoutResult, PublishStatus, WebhookAck
from .protocols import (
    ListingRepository,
    PaymentGateway,
    PaymentNotifier,
    PlanRepository,
    SubscriptionRepository,
    TransactionRepository,
    UnitOfWorkFactory,
)
from .reconciliation import CancelHandler, PaymentReconciler, ReturnHandler, WebhookHandler
from .signature import RawBody, SignatureCodec
from .subscriptions import SubscriptionStateMachine

logger = logging.getLogger(__name__)

_RECENT_TRANSACTION_LIMIT = 10


class PaymentsService:
    """Owns the payment components for one process and exposes the entry points used by routes."""

    def __init__(
        self,
        *,
        config: GatewayConfig,
        plans: PlanRepository,
        transactions: TransactionRepository,
        subscriptions: SubscriptionRepository,
        listings: ListingRepository,
        gateway: PaymentGateway,
        notifier: PaymentNotifier,
        unit_of_work: UnitOfWorkFactory,
        codec: Optional[SignatureCodec] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.config = config
        self.gateway = gateway
        self._plans = plans
        self._clock = clock or (lambda: datetime.now(timezone.utc))

        self.ledger = TransactionLedger(transactions)
        self.subscriptions = SubscriptionStateMachine(subscriptions)
        self.listings = ListingQuotaManager(listings)
        self.codec = codec or SignatureCodec(config.application_key_secret)

        self.checkout = CheckoutInitiator(
            plans=plans,
            subscriptions=self.subscriptions,
            ledger=self.ledger,
            gateway=gateway,
            reference_prefix=config.reference_prefix,
            clock=self._clock,
        )
        self.reconciler = PaymentReconciler(
            ledger=self.ledger,
            unit_of_work=unit_of_work,
            listings=self.listings,
            plans=plans,
            gateway=gateway,
            notifier=notifier,
            clock=self._clock,
        )
        self.webhooks = WebhookHandler(codec=self.codec, ledger=self.ledger, reconciler=self.reconciler)
        self.returns = ReturnHandler(
            ledger=self.ledger,
            reconciler=self.reconciler,
            gateway=gateway,
            app_base_url=config.app_base_url,
            clock=self._clock,
        )
        self.cancellations = CancelHandler(ledger=self.ledger, app_base_url=config.app_base_url)
        self.billing_cycle = BillingCycleRunner(
            repository=subscriptions,
            subscriptions=self.subscriptions,
            listings=self.listings,
            notifier=notifier,
            grace_period_days=config.grace_period_days,
            clock=self._clock,
        )

    @property
    def is_demo(self) -> bool:
        return self.gateway.is_demo

    def create_checkout(self, *, user_id: str, plan_id: str, plan_slug: str) -> CheckoutResult:
        return self.checkout.start_checkout(user_id=user_id, plan_id=plan_id, plan_slug=plan_slug)

    def handle_notification(self, headers: Mapping[str, str], raw_body: RawBody) -> WebhookAck:
        return self.webhooks.handle(headers, raw_body)

    def handle_return(
        self,
        reference: Optional[str],
        *,
        demo: Optional[str] = None,
        status: Optional[str] = None,
    ) -> str:
        return self.returns.handle(reference, demo=demo, status=status)

    def handle_cancel(self, reference: Optional[str]) -> str:
        return self.cancellations.handle(reference)

    def billing_summary(self, user_id: str) -> BillingSummary:
        subscription = self.subscriptions.current_for_user(user_id)
        plan = self._plans.get_plan(subscription.plan_id) if subscription else None
        transactions = self.ledger.recent_for_user(user_id, limit=_RECENT_TRANSACTION_LIMIT)
        return BillingSummary(subscription=subscription, plan=plan, transactions=list(transactions))

    def publish_status(self, user_id: str) -> PublishStatus:
        subscription = self.subscriptions.current_for_user(user_id)
        plan = self._plans.get_plan(subscription.plan_id) if subscription else None
        return self.listings.check_publish_status(subscription, plan, now=self._clock())

    def run_billing_cycle(self, now: Optional[datetime] = None) -> BillingCycleResult:
        logger.info("Running billing cycle")
        return self.billing_cycle.run(now)


__all__ = ["PaymentsService"]
