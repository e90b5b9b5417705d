from __future__ import annotations

import pytest

from gomoto.app.payments.checkout import CheckoutInitiator
from gomoto.app.payments.exceptions import ConflictError, GatewayError, NotFoundError
from gomoto.app.payments.ledger import TransactionLedger
from gomoto.app.payments.models import SubscriptionStatus, TransactionStatus
from gomoto.app.payments.reference import generate_payment_reference
from gomoto.app.payments.subscriptions import SubscriptionStateMachine
from gomoto.tests.fakes import FIXED_NOW

USER_ID = "4f1c2d3e-aaaa-bbbb-cccc-000000000001"


def _initiator(repository, gateway) -> CheckoutInitiator:
    return CheckoutInitiator(
        plans=repository,
        subscriptions=SubscriptionStateMachine(repository),
        ledger=TransactionLedger(repository),
        gateway=gateway,
        clock=lambda: FIXED_NOW,
    )


def test_checkout_creates_pending_records_and_returns_payment_url(repository, gateway, plan):
    result = _initiator(repository, gateway).start_checkout(user_id=USER_ID, plan_id=plan.id, plan_slug="pro")

    transaction = repository.get_transaction_by_reference(result.reference)
    subscription = repository.get_subscription(result.subscription_id)
    assert result.success
    assert result.payment_url == f"https://pay.example/{result.reference}"
    assert not result.is_demo
    assert result.reference == generate_payment_reference(USER_ID, plan.id, now=FIXED_NOW)
    assert transaction.status == TransactionStatus.PENDING
    assert transaction.amount == 19900
    assert transaction.subscription_id == subscription.id
    assert subscription.status == SubscriptionStatus.PENDING

    (call,) = gateway.initiated
    assert call["amount"] == 19900
    assert call["reference"] == result.reference
    assert call["description"] == "Go-Moto Pro Plan - Monthly Subscription"
    assert call["metadata"] == {"planSlug": "pro", "subscriptionId": subscription.id}


def test_checkout_unknown_plan_is_not_found(repository, gateway):
    with pytest.raises(NotFoundError) as excinfo:
        _initiator(repository, gateway).start_checkout(user_id=USER_ID, plan_id="missing", plan_slug="x")

    assert excinfo.value.code == "plan_not_found"
    assert repository.writes == []
    assert gateway.initiated == []


def test_checkout_with_active_subscription_writes_nothing(repository, gateway, plan):
    repository.add_subscription(user_id=USER_ID, plan_id=plan.id, status=SubscriptionStatus.ACTIVE)

    with pytest.raises(ConflictError) as excinfo:
        _initiator(repository, gateway).start_checkout(user_id=USER_ID, plan_id=plan.id, plan_slug="pro")

    assert excinfo.value.code == "active_subscription_exists"
    assert excinfo.value.payload == {
        "error": "active_subscription_exists",
        "message": "You already have an active subscription",
    }
    assert repository.writes == []
    assert repository.transactions == {}
    assert gateway.initiated == []


def test_checkout_retries_reference_collision(repository, gateway, plan):
    taken = generate_payment_reference(USER_ID, plan.id, now=FIXED_NOW)
    repository.insert_transaction(
        user_id=USER_ID,
        subscription_id=None,
        plan_id=plan.id,
        reference=taken,
        amount=1,
        provider="ikhokha",
    )

    result = _initiator(repository, gateway).start_checkout(user_id=USER_ID, plan_id=plan.id, plan_slug="pro")

    assert result.reference != taken
    assert len(repository.transactions) == 2


def test_checkout_gives_up_after_repeated_collisions(repository, gateway, plan, monkeypatch):
    monkeypatch.setattr(
        "gomoto.app.payments.checkout.generate_payment_reference",
        lambda *args, **kwargs: "GM-FIXED",
    )
    repository.insert_transaction(
        user_id=USER_ID,
        subscription_id=None,
        plan_id=plan.id,
        reference="GM-FIXED",
        amount=1,
        provider="ikhokha",
    )

    with pytest.raises(ConflictError) as excinfo:
        _initiator(repository, gateway).start_checkout(user_id=USER_ID, plan_id=plan.id, plan_slug="pro")

    assert excinfo.value.code == "duplicate_reference"
    assert gateway.initiated == []


def test_gateway_failure_leaves_transaction_pending(repository, gateway, plan):
    gateway.error = GatewayError(code="gateway_timeout", message="Payment gateway timed out")

    with pytest.raises(GatewayError):
        _initiator(repository, gateway).start_checkout(user_id=USER_ID, plan_id=plan.id, plan_slug="pro")

    (transaction,) = repository.transactions.values()
    assert transaction.status == TransactionStatus.PENDING
