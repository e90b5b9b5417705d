"""Subscription status transitions driven by payment outcomes."""
from __future__ import annotations

import calendar
import logging
from datetime import datetime, timedelta
from typing import Optional

from .exceptions import NotFoundError, active_subscription_exists
from .models import REUSABLE_SUBSCRIPTION_STATUSES, Subscription, SubscriptionStatus
from .protocols import SubscriptionRepository

logger = logging.getLogger(__name__)


def add_months(moment: datetime, months: int = 1) -> datetime:
    """Shift ``moment`` by whole calendar months, clamping the day to the month length."""

    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


class SubscriptionStateMachine:
    """Sole writer of subscription state.

    ``pending -> active`` on a confirmed payment, ``active -> past_due`` on a
    failed payment or missed renewal, ``past_due -> paused`` once the grace
    period runs out, and any of pending/past_due/paused back to ``active`` on
    a later successful payment. Each transition is a single repository write.
    """

    def __init__(self, repository: SubscriptionRepository) -> None:
        self._repository = repository

    def get(self, subscription_id: str) -> Optional[Subscription]:
        return self._repository.get_subscription(subscription_id)

    def current_for_user(self, user_id: str) -> Optional[Subscription]:
        return self._repository.get_subscription_for_user(user_id)

    def prepare_for_checkout(self, user_id: str, plan_id: str) -> Subscription:
        if self._repository.find_subscription_for_user(user_id, [SubscriptionStatus.ACTIVE]):
            raise active_subscription_exists()

        existing = self._repository.find_subscription_for_user(user_id, list(REUSABLE_SUBSCRIPTION_STATUSES))
        if existing is not None:
            reused = self._repository.reset_subscription_to_pending(existing.id, plan_id=plan_id)
            if reused is None:
                raise NotFoundError(code="subscription_not_found", message="Subscription disappeared during checkout")
            logger.info("Reusing subscription %s (was %s) for user %s", existing.id, existing.status.value, user_id)
            return reused

        created = self._repository.create_subscription(user_id=user_id, plan_id=plan_id)
        logger.info("Created pending subscription %s for user %s", created.id, user_id)
        return created

    def activate(self, subscription_id: str, *, now: datetime) -> Subscription:
        period_end = add_months(now, 1)
        updated = self._repository.activate_subscription(
            subscription_id,
            period_start=now,
            period_end=period_end,
            next_payment_due=period_end,
        )
        if updated is None:
            raise NotFoundError(code="subscription_not_found", message=f"Subscription not found: {subscription_id}")
        logger.info("Subscription %s active until %s", subscription_id, period_end.isoformat())
        return updated

    def mark_past_due(self, subscription_id: str) -> Subscription:
        updated = self._repository.update_subscription_status(subscription_id, status=SubscriptionStatus.PAST_DUE)
        if updated is None:
            raise NotFoundError(code="subscription_not_found", message=f"Subscription not found: {subscription_id}")
        logger.info("Subscription %s marked past_due", subscription_id)
        return updated

    def start_grace_period(self, subscription: Subscription, *, grace_days: int) -> Subscription:
        anchor = subscription.next_payment_due or subscription.current_period_end
        if anchor is None:
            raise ValueError(f"Subscription {subscription.id} has no payment due date")
        updated = self._repository.start_grace_period(subscription.id, grace_until=anchor + timedelta(days=grace_days))
        if updated is None:
            raise NotFoundError(code="subscription_not_found", message=f"Subscription not found: {subscription.id}")
        return updated

    def pause(self, subscription_id: str) -> Subscription:
        updated = self._repository.update_subscription_status(subscription_id, status=SubscriptionStatus.PAUSED)
        if updated is None:
            raise NotFoundError(code="subscription_not_found", message=f"Subscription not found: {subscription_id}")
        return updated


__all__ = ["SubscriptionStateMachine", "add_months"]
