from __future__ import annotations

from gomoto.app.payments.billing_cycle import BillingCycleRunner
from gomoto.app.payments.listings import ListingQuotaManager
from gomoto.app.payments.models import ListingStatus, SubscriptionStatus
from gomoto.app.payments.subscriptions import SubscriptionStateMachine
from gomoto.tests.fakes import FIXED_NOW, days


def _runner(repository, notifier, *, grace_period_days: int = 3) -> BillingCycleRunner:
    return BillingCycleRunner(
        repository=repository,
        subscriptions=SubscriptionStateMachine(repository),
        listings=ListingQuotaManager(repository),
        notifier=notifier,
        grace_period_days=grace_period_days,
        clock=lambda: FIXED_NOW,
    )


def test_due_subscription_enters_grace_period(repository, notifier, plan):
    due = FIXED_NOW
    subscription = repository.add_subscription(
        user_id="seller-1",
        plan_id=plan.id,
        status=SubscriptionStatus.ACTIVE,
        next_payment_due=due,
    )
    not_due = repository.add_subscription(
        user_id="seller-2",
        plan_id=plan.id,
        status=SubscriptionStatus.ACTIVE,
        next_payment_due=FIXED_NOW + days(5),
    )

    result = _runner(repository, notifier).run()

    updated = repository.get_subscription(subscription.id)
    assert result.marked_past_due == 1
    assert result.reminders_sent == 1
    assert result.errors == []
    assert result.ran_at == FIXED_NOW
    assert updated.status == SubscriptionStatus.PAST_DUE
    assert updated.grace_until == due + days(3)
    assert notifier.due == [subscription.id]
    assert repository.get_subscription(not_due.id).status == SubscriptionStatus.ACTIVE


def test_expired_grace_pauses_subscription_and_listings(repository, notifier, plan):
    subscription = repository.add_subscription(
        user_id="seller-1",
        plan_id=plan.id,
        status=SubscriptionStatus.PAST_DUE,
        next_payment_due=FIXED_NOW - days(4),
        grace_until=FIXED_NOW - days(1),
    )
    listing = repository.add_listing("seller-1", ListingStatus.PUBLISHED, updated_at=FIXED_NOW)

    result = _runner(repository, notifier).run()

    assert result.paused == 1
    assert repository.get_subscription(subscription.id).status == SubscriptionStatus.PAUSED
    assert repository.listing_status(listing) == ListingStatus.PAUSED
    assert notifier.paused == [subscription.id]


def test_final_reminder_two_days_after_due_date(repository, notifier, plan):
    reminded = repository.add_subscription(
        user_id="seller-1",
        plan_id=plan.id,
        status=SubscriptionStatus.PAST_DUE,
        next_payment_due=FIXED_NOW - days(2),
        grace_until=FIXED_NOW + days(1),
    )
    repository.add_subscription(
        user_id="seller-2",
        plan_id=plan.id,
        status=SubscriptionStatus.PAST_DUE,
        next_payment_due=FIXED_NOW - days(1),
        grace_until=FIXED_NOW + days(2),
    )

    result = _runner(repository, notifier).run()

    assert notifier.final_reminders == [reminded.id]
    assert result.reminders_sent == 1
    assert result.paused == 0


def test_undelivered_reminders_are_not_counted(repository, notifier, plan):
    notifier.result = False
    repository.add_subscription(
        user_id="seller-1",
        plan_id=plan.id,
        status=SubscriptionStatus.ACTIVE,
        next_payment_due=FIXED_NOW,
    )

    result = _runner(repository, notifier).run()

    assert result.marked_past_due == 1
    assert result.reminders_sent == 0


def test_failures_are_collected_and_sweep_continues(repository, notifier, plan, monkeypatch):
    broken = repository.add_subscription(
        user_id="seller-1",
        plan_id=plan.id,
        status=SubscriptionStatus.ACTIVE,
        next_payment_due=FIXED_NOW,
    )
    healthy = repository.add_subscription(
        user_id="seller-2",
        plan_id=plan.id,
        status=SubscriptionStatus.ACTIVE,
        next_payment_due=FIXED_NOW,
    )
    original = repository.start_grace_period

    def flaky_start_grace_period(subscription_id, *, grace_until):
        if subscription_id == broken.id:
            raise RuntimeError("database unavailable")
        return original(subscription_id, grace_until=grace_until)

    monkeypatch.setattr(repository, "start_grace_period", flaky_start_grace_period)

    result = _runner(repository, notifier).run()

    assert result.marked_past_due == 1
    assert len(result.errors) == 1
    assert broken.id in result.errors[0]
    assert repository.get_subscription(healthy.id).status == SubscriptionStatus.PAST_DUE
    assert repository.get_subscription(broken.id).status == SubscriptionStatus.ACTIVE


def test_service_runs_cycle_with_configured_grace(service, repository, notifier, plan):
    subscription = repository.add_subscription(
        user_id="seller-1",
        plan_id=plan.id,
        status=SubscriptionStatus.ACTIVE,
        next_payment_due=FIXED_NOW - days(1),
    )

    result = service.run_billing_cycle()

    assert result.marked_past_due == 1
    assert repository.get_subscription(subscription.id).grace_until == FIXED_NOW + days(2)
