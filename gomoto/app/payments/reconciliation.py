"""Reconciliation of gateway payment outcomes into local state.

Three entry points reach this module: the gateway's signed notification
(authoritative), the browser return redirect (advisory) and the cancel
redirect. Notification and return both funnel into
:meth:`PaymentReconciler.reconcile`, where subscription activation, listing
resumption and the confirmation email only run for the caller that wins the
ledger's conditional ``pending`` transition.
"""
from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Callable, Dict, Mapping, Optional
from urllib.parse import urlencode

from .exceptions import GatewayError, NotFoundError, ParseError, SignatureError
from .ledger import TransactionLedger
from .listings import ListingQuotaManager
from .models import (
    GatewayPaymentStatus,
    ListingPlan,
    PaymentNotification,
    PaymentStatusResult,
    PaymentTransaction,
    ReconciliationOutcome,
    ReconciliationResult,
    Subscription,
    TransactionStatus,
    WebhookAck,
)
from .protocols import PaymentGateway, PaymentNotifier, PlanRepository, UnitOfWorkFactory
from .signature import RawBody, SignatureCodec
from .subscriptions import SubscriptionStateMachine

logger = logging.getLogger(__name__)


def parse_notification(raw_body: RawBody) -> PaymentNotification:
    """Parse a gateway notification body, accepting the provider's field aliases."""

    try:
        text = raw_body.decode("utf-8") if isinstance(raw_body, bytes) else raw_body
        data = json.loads(text)
    except (UnicodeDecodeError, ValueError) as exc:
        raise ParseError(message="Notification body is not valid JSON") from exc

    if not isinstance(data, dict):
        raise ParseError(message="Notification body must be a JSON object")

    reference = data.get("reference") or data.get("externalReference")
    if not reference or not isinstance(reference, str):
        raise ParseError(message="Notification is missing a payment reference")

    transaction_id = data.get("transactionId") or data.get("id")
    amount = data.get("amount")
    timestamp = data.get("timestamp") or data.get("createdAt")
    status = data.get("status") or data.get("paymentStatus")
    return PaymentNotification(
        reference=reference,
        provider_transaction_id=str(transaction_id) if transaction_id is not None else None,
        status=str(status) if status is not None else None,
        amount=amount if isinstance(amount, (int, float)) and not isinstance(amount, bool) else None,
        timestamp=str(timestamp) if timestamp is not None else None,
    )


class PaymentReconciler:
    """Applies the gateway's verdict for one reference exactly once.

    The conditional ``pending`` transition and the subscription change it
    implies share one unit of work. If the subscription write fails, both
    roll back and the transaction stays ``pending``, so a redelivered
    notification or a later return visit can settle it. Listing resumption
    and the confirmation email run after the commit and never undo it.
    """

    def __init__(
        self,
        *,
        ledger: TransactionLedger,
        unit_of_work: UnitOfWorkFactory,
        listings: ListingQuotaManager,
        plans: PlanRepository,
        gateway: PaymentGateway,
        notifier: PaymentNotifier,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._ledger = ledger
        self._unit_of_work = unit_of_work
        self._listings = listings
        self._plans = plans
        self._gateway = gateway
        self._notifier = notifier
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def reconcile(
        self,
        reference: str,
        *,
        provider_transaction_id: Optional[str] = None,
        assumed_status: Optional[PaymentStatusResult] = None,
    ) -> ReconciliationResult:
        transaction = self._ledger.find_by_reference(reference)
        if transaction.status == TransactionStatus.PAID:
            return ReconciliationResult(outcome=ReconciliationOutcome.ALREADY_PROCESSED, transaction=transaction)

        verdict = assumed_status or self._gateway.query_status(reference)
        if not verdict.status.is_actionable:
            logger.info("Payment %s not yet actionable (gateway status %s)", reference, verdict.status.value)
            return ReconciliationResult(
                outcome=ReconciliationOutcome.PENDING,
                transaction=transaction,
                gateway_status=verdict.status,
            )

        paid = verdict.status == GatewayPaymentStatus.PAID
        plan = self._plans.get_plan(transaction.plan_id) if paid else None
        now = self._clock()

        with self._unit_of_work() as unit:
            transition = TransactionLedger(unit.transactions).transition_to_terminal(
                transaction,
                verdict.status,
                provider_transaction_id=verdict.provider_transaction_id or provider_transaction_id,
                paid_at=verdict.paid_at or now,
            )
            if not transition.applied:
                return ReconciliationResult(
                    outcome=ReconciliationOutcome.ALREADY_PROCESSED,
                    transaction=transition.transaction,
                    gateway_status=verdict.status,
                )
            subscription = self._settle_subscription(
                SubscriptionStateMachine(unit.subscriptions),
                transition.transaction,
                paid=paid,
                now=now,
            )

        settled = transition.transaction
        if not paid:
            return ReconciliationResult(
                outcome=ReconciliationOutcome.PAYMENT_FAILED,
                transaction=settled,
                gateway_status=verdict.status,
            )

        logger.info("Payment %s applied for user %s", settled.reference, settled.user_id)
        if subscription is not None:
            self._resume_listings(settled, plan)
            self._notifier.notify_payment_received(subscription, settled, plan)
        return ReconciliationResult(
            outcome=ReconciliationOutcome.ACTIVATED,
            transaction=settled,
            gateway_status=verdict.status,
        )

    def _settle_subscription(
        self,
        subscriptions: SubscriptionStateMachine,
        transaction: PaymentTransaction,
        *,
        paid: bool,
        now: datetime,
    ) -> Optional[Subscription]:
        if transaction.subscription_id is None:
            if paid:
                logger.warning("Paid transaction %s has no linked subscription", transaction.reference)
            return None
        if paid:
            return subscriptions.activate(transaction.subscription_id, now=now)
        return subscriptions.mark_past_due(transaction.subscription_id)

    def _resume_listings(self, transaction: PaymentTransaction, plan: Optional[ListingPlan]) -> None:
        if plan is None or not plan.max_active_listings:
            return
        try:
            self._listings.resume_listings(transaction.user_id, plan.max_active_listings)
        except Exception:
            logger.exception(
                "Payment %s applied but resuming listings for user %s failed",
                transaction.reference,
                transaction.user_id,
            )


class WebhookHandler:
    """Authoritative server-to-server notification entry point."""

    def __init__(self, *, codec: SignatureCodec, ledger: TransactionLedger, reconciler: PaymentReconciler) -> None:
        self._codec = codec
        self._ledger = ledger
        self._reconciler = reconciler

    def handle(self, headers: Mapping[str, str], raw_body: RawBody) -> WebhookAck:
        if not self._codec.verify_notification(headers, raw_body):
            raise SignatureError()

        notification = parse_notification(raw_body)
        logger.info(
            "Payment notification received reference=%s transaction=%s status=%s",
            notification.reference,
            notification.provider_transaction_id,
            notification.status,
        )

        try:
            result = self._reconciler.reconcile(
                notification.reference,
                provider_transaction_id=notification.provider_transaction_id,
            )
        except NotFoundError:
            logger.error("Notification for unknown reference %s", notification.reference)
            raise
        except GatewayError as exc:
            if exc.retryable:
                logger.error("Verification failed for %s: %s", notification.reference, exc.message)
                raise
            # Redelivery cannot change a rejection, so acknowledge and leave the row as it is.
            logger.error("Gateway rejected verification of %s: %s", notification.reference, exc.message)
            current = self._ledger.find_by_reference(notification.reference)
            return WebhookAck(status=current.status.value, message="Verification rejected by gateway")

        if result.outcome == ReconciliationOutcome.ALREADY_PROCESSED:
            return WebhookAck(status=result.transaction.status.value, message="Already processed")
        status = result.gateway_status.value if result.gateway_status else result.transaction.status.value
        return WebhookAck(status=status)


class ReturnHandler:
    """Browser return redirect: best-effort mirror of the notification path."""

    def __init__(
        self,
        *,
        ledger: TransactionLedger,
        reconciler: PaymentReconciler,
        gateway: PaymentGateway,
        app_base_url: str,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._ledger = ledger
        self._reconciler = reconciler
        self._gateway = gateway
        self._app_base_url = app_base_url.rstrip("/")
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def _redirect(self, **params: str) -> str:
        return f"{self._app_base_url}/seller?{urlencode(params)}"

    def handle(
        self,
        reference: Optional[str],
        *,
        demo: Optional[str] = None,
        status: Optional[str] = None,
    ) -> str:
        if not reference:
            logger.error("Return redirect without reference")
            return self._redirect(error="missing_reference")

        try:
            return self._handle(reference, demo=demo, status=status)
        except NotFoundError:
            logger.error("Return redirect for unknown reference %s", reference)
            return self._redirect(error="transaction_not_found")
        except GatewayError as exc:
            logger.error("Return verification failed for %s: %s", reference, exc.message)
            return self._redirect(error="verification_failed")
        except Exception:
            logger.exception("Unexpected error handling return for %s", reference)
            return self._redirect(error="verification_failed")

    def _handle(self, reference: str, *, demo: Optional[str], status: Optional[str]) -> str:
        transaction = self._ledger.find_by_reference(reference)
        if transaction.status == TransactionStatus.PAID:
            return self._redirect(success="payment_completed", plan=transaction.plan_id)

        assumed: Optional[PaymentStatusResult] = None
        if demo == "true" and status == "paid":
            if self._gateway.is_demo:
                assumed = PaymentStatusResult(status=GatewayPaymentStatus.PAID, paid_at=self._clock(), is_demo=True)
            else:
                logger.warning("Ignoring client-supplied demo parameters for %s in live mode", reference)

        result = self._reconciler.reconcile(reference, assumed_status=assumed)

        if result.outcome == ReconciliationOutcome.PENDING:
            return self._redirect(pending="payment_processing")
        if result.transaction.status != TransactionStatus.PAID:
            logger.info("Payment %s not confirmed (%s)", reference, result.transaction.status.value)
            return self._redirect(error="payment_not_confirmed")

        params: Dict[str, str] = {"success": "payment_completed"}
        if assumed is not None:
            params["demo"] = "true"
        return self._redirect(**params)


class CancelHandler:
    """The user abandoned checkout on the gateway's page."""

    def __init__(self, *, ledger: TransactionLedger, app_base_url: str) -> None:
        self._ledger = ledger
        self._app_base_url = app_base_url.rstrip("/")

    def handle(self, reference: Optional[str]) -> str:
        if reference:
            try:
                transaction = self._ledger.find_by_reference(reference)
            except NotFoundError:
                logger.warning("Cancel redirect for unknown reference %s", reference)
            else:
                result = self._ledger.transition_to_terminal(transaction, GatewayPaymentStatus.CANCELLED)
                if result.applied:
                    logger.info("Payment cancelled: %s", reference)
        return f"{self._app_base_url}/pricing?cancelled=true"


__all__ = [
    "CancelHandler",
    "PaymentReconciler",
    "ReturnHandler",
    "WebhookHandler",
    "parse_notification",
]
