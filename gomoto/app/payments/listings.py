"""Plan-bounded listing publication."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import List, Optional

from .models import ListingPlan, PublishStatus, Subscription, SubscriptionStatus
from .protocols import ListingRepository

logger = logging.getLogger(__name__)


class ListingQuotaManager:
    """Re-surfaces paused listings up to a plan's allowance and hides them again."""

    def __init__(self, repository: ListingRepository) -> None:
        self._repository = repository

    def resume_listings(self, owner_id: str, max_active_listings: int) -> List[str]:
        if max_active_listings <= 0:
            return []
        candidate_ids = list(self._repository.list_paused_listing_ids(owner_id, limit=max_active_listings))
        if not candidate_ids:
            return []
        published = list(self._repository.publish_listings(candidate_ids[:max_active_listings]))
        if len(published) < len(candidate_ids):
            logger.warning(
                "Published %s of %s paused listings for owner %s",
                len(published),
                len(candidate_ids),
                owner_id,
            )
        else:
            logger.info("Published %s paused listings for owner %s", len(published), owner_id)
        return published

    def pause_all(self, owner_id: str) -> int:
        paused = self._repository.pause_published_listings(owner_id)
        logger.info("Paused %s published listings for owner %s", paused, owner_id)
        return paused

    def check_publish_status(
        self,
        subscription: Optional[Subscription],
        plan: Optional[ListingPlan],
        *,
        now: Optional[datetime] = None,
    ) -> PublishStatus:
        if subscription is None:
            return PublishStatus(
                can_publish=False,
                reason="No active subscription. Please subscribe to a plan first.",
            )

        if subscription.status in (SubscriptionStatus.CANCELED, SubscriptionStatus.PAUSED, SubscriptionStatus.PENDING):
            return PublishStatus(
                can_publish=False,
                reason="Your subscription is not active. Please reactivate to publish listings.",
            )

        if subscription.status == SubscriptionStatus.PAST_DUE:
            moment = now or datetime.now(timezone.utc)
            if subscription.grace_until is None or subscription.grace_until < moment:
                return PublishStatus(
                    can_publish=False,
                    reason="Your subscription payment is overdue. Please pay to continue.",
                )

        current_count = self._repository.count_active_listings(subscription.user_id)
        max_count = plan.max_active_listings if plan else 0
        if current_count >= max_count:
            return PublishStatus(
                can_publish=False,
                reason=(
                    f"Listing limit reached ({current_count}/{max_count}). "
                    "Upgrade your plan for more listings."
                ),
                current_count=current_count,
                max_count=max_count,
            )

        return PublishStatus(
            can_publish=True,
            current_count=current_count,
            max_count=max_count,
            remaining=max_count - current_count,
        )


__all__ = ["ListingQuotaManager"]
