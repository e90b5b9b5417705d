"""Billing notification delivery."""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from ...mail.providers import EmailProvider
from ...mail.renderer import render_billing_email
from .models import ListingPlan, PaymentTransaction, Subscription
from .protocols import PaymentNotifier, UserDirectory

logger = logging.getLogger(__name__)


def _format_date(value: Optional[datetime]) -> str:
    return value.strftime("%d %B %Y") if value else ""


def _format_amount(minor_units: int) -> str:
    return f"R{minor_units / 100:,.2f}"


class EmailPaymentNotifier(PaymentNotifier):
    """Renders billing templates and sends them through an email provider.

    Delivery is fire-and-forget: provider errors are logged and reported as
    ``False`` so payment processing never fails because of email.
    """

    def __init__(self, *, provider: EmailProvider, users: UserDirectory, app_base_url: str) -> None:
        self._provider = provider
        self._users = users
        self._app_base_url = app_base_url.rstrip("/")

    def _send(self, user_id: str, template: str, context: Dict[str, Any]) -> bool:
        try:
            contact = self._users.get_contact(user_id)
            if contact is None or not contact.email:
                logger.info("No email address for user %s, skipping %s", user_id, template)
                return False
            subject, text_body, html_body = render_billing_email(
                template,
                {
                    "name": contact.name or "Seller",
                    "billing_url": f"{self._app_base_url}/seller/billing",
                    **context,
                },
            )
            self._provider.send_email(contact.email, subject, html_body, text_body)
        except Exception:
            logger.exception("Failed to send %s email to user %s", template, user_id)
            return False
        return True

    def notify_payment_received(
        self,
        subscription: Subscription,
        transaction: PaymentTransaction,
        plan: Optional[ListingPlan],
    ) -> bool:
        return self._send(
            subscription.user_id,
            "payment_received",
            {
                "plan_name": plan.name if plan else "",
                "amount": _format_amount(transaction.amount),
                "reference": transaction.reference,
                "period_end": _format_date(subscription.current_period_end),
            },
        )

    def notify_payment_due(self, subscription: Subscription) -> bool:
        return self._send(
            subscription.user_id,
            "payment_due",
            {"grace_until": _format_date(subscription.grace_until)},
        )

    def notify_final_reminder(self, subscription: Subscription) -> bool:
        return self._send(
            subscription.user_id,
            "final_reminder",
            {"grace_until": _format_date(subscription.grace_until)},
        )

    def notify_subscription_paused(self, subscription: Subscription) -> bool:
        return self._send(subscription.user_id, "subscription_paused", {})


class LoggingPaymentNotifier(PaymentNotifier):
    """Notifier that records billing notifications to the application logger."""

    def notify_payment_received(
        self,
        subscription: Subscription,
        transaction: PaymentTransaction,
        plan: Optional[ListingPlan],
    ) -> bool:
        logger.info(
            "Payment received subscription=%s reference=%s amount=%s",
            subscription.id,
            transaction.reference,
            transaction.amount,
        )
        return True

    def notify_payment_due(self, subscription: Subscription) -> bool:
        logger.warning("Payment due subscription=%s grace_until=%s", subscription.id, subscription.grace_until)
        return True

    def notify_final_reminder(self, subscription: Subscription) -> bool:
        logger.warning("Final payment reminder subscription=%s", subscription.id)
        return True

    def notify_subscription_paused(self, subscription: Subscription) -> bool:
        logger.warning("Subscription paused subscription=%s user=%s", subscription.id, subscription.user_id)
        return True


__all__ = ["EmailPaymentNotifier", "LoggingPaymentNotifier"]
