"""Daily renewal sweep: missed payments, grace expiry and reminders."""
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from .listings import ListingQuotaManager
from .models import BillingCycleResult
from .protocols import PaymentNotifier, SubscriptionRepository
from .subscriptions import SubscriptionStateMachine

logger = logging.getLogger(__name__)

_FINAL_REMINDER_AFTER_DAYS = 2


class BillingCycleRunner:
    """Runs once a day from an external scheduler.

    1. Active subscriptions whose payment is due become ``past_due`` with a
       grace period.
    2. Past-due subscriptions whose grace period ended are paused and their
       listings hidden.
    3. Sellers two days past their due date get a final reminder.

    Failures on one subscription are recorded and the sweep carries on.
    """

    def __init__(
        self,
        *,
        repository: SubscriptionRepository,
        subscriptions: SubscriptionStateMachine,
        listings: ListingQuotaManager,
        notifier: PaymentNotifier,
        grace_period_days: int = 3,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._repository = repository
        self._subscriptions = subscriptions
        self._listings = listings
        self._notifier = notifier
        self._grace_period_days = grace_period_days
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def run(self, now: Optional[datetime] = None) -> BillingCycleResult:
        moment = now or self._clock()
        result = BillingCycleResult(ran_at=moment)
        self._mark_due_past_due(moment, result)
        self._pause_grace_expired(moment, result)
        self._send_final_reminders(moment, result)
        logger.info(
            "Billing cycle complete past_due=%s paused=%s reminders=%s errors=%s",
            result.marked_past_due,
            result.paused,
            result.reminders_sent,
            len(result.errors),
        )
        return result

    def _mark_due_past_due(self, moment: datetime, result: BillingCycleResult) -> None:
        for subscription in self._repository.list_due_for_payment(moment):
            try:
                updated = self._subscriptions.start_grace_period(subscription, grace_days=self._grace_period_days)
            except Exception as exc:
                logger.exception("Failed to mark subscription %s as past_due", subscription.id)
                result.errors.append(f"Failed to mark subscription {subscription.id} as past_due: {exc}")
                continue
            result.marked_past_due += 1
            if self._notifier.notify_payment_due(updated):
                result.reminders_sent += 1

    def _pause_grace_expired(self, moment: datetime, result: BillingCycleResult) -> None:
        for subscription in self._repository.list_grace_expired(moment):
            try:
                paused = self._subscriptions.pause(subscription.id)
            except Exception as exc:
                logger.exception("Failed to pause subscription %s", subscription.id)
                result.errors.append(f"Failed to pause subscription {subscription.id}: {exc}")
                continue

            try:
                self._listings.pause_all(subscription.user_id)
            except Exception as exc:
                logger.exception("Failed to pause listings for user %s", subscription.user_id)
                result.errors.append(f"Failed to pause listings for user {subscription.user_id}: {exc}")

            result.paused += 1
            self._notifier.notify_subscription_paused(paused)

    def _send_final_reminders(self, moment: datetime, result: BillingCycleResult) -> None:
        reminder_date = (moment - timedelta(days=_FINAL_REMINDER_AFTER_DAYS)).date()
        for subscription in self._repository.list_in_grace(moment):
            due = subscription.next_payment_due
            if due is None or due.date() != reminder_date:
                continue
            if self._notifier.notify_final_reminder(subscription):
                result.reminders_sent += 1


__all__ = ["BillingCycleRunner"]
