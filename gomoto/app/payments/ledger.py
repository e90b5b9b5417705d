"""Ledger of payment attempts and their one-way status transitions."""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional, Sequence

from .exceptions import NotFoundError
from .models import GatewayPaymentStatus, PaymentTransaction, TransactionStatus, TransitionResult
from .protocols import TransactionRepository

logger = logging.getLogger(__name__)

_TERMINAL_OUTCOMES = {
    GatewayPaymentStatus.PAID: TransactionStatus.PAID,
    GatewayPaymentStatus.FAILED: TransactionStatus.FAILED,
    GatewayPaymentStatus.CANCELLED: TransactionStatus.FAILED,
}


class TransactionLedger:
    """Owns transaction rows and the at-most-once guarantee.

    Every status change goes through :meth:`transition_to_terminal`, which
    relies on the repository's conditional write. Callers must gate side
    effects on ``TransitionResult.applied`` rather than on a status they read
    earlier.
    """

    def __init__(self, repository: TransactionRepository, *, provider: str = "ikhokha") -> None:
        self._repository = repository
        self._provider = provider

    def create(
        self,
        *,
        user_id: str,
        subscription_id: Optional[str],
        plan_id: str,
        reference: str,
        amount: int,
    ) -> PaymentTransaction:
        transaction = self._repository.insert_transaction(
            user_id=user_id,
            subscription_id=subscription_id,
            plan_id=plan_id,
            reference=reference,
            amount=amount,
            provider=self._provider,
        )
        logger.info("Created pending transaction %s for user %s", reference, user_id)
        return transaction

    def find_by_reference(self, reference: str) -> PaymentTransaction:
        transaction = self._repository.get_transaction_by_reference(reference)
        if transaction is None:
            raise NotFoundError(code="transaction_not_found", message=f"Transaction not found: {reference}")
        return transaction

    def transition_to_terminal(
        self,
        transaction: PaymentTransaction,
        outcome: GatewayPaymentStatus,
        *,
        provider_transaction_id: Optional[str] = None,
        paid_at: Optional[datetime] = None,
    ) -> TransitionResult:
        target = _TERMINAL_OUTCOMES.get(outcome)
        if target is None:
            raise ValueError(f"{outcome.value} is not a terminal payment outcome")

        updated = self._repository.transition_if_pending(
            transaction.id,
            status=target,
            provider_transaction_id=provider_transaction_id or transaction.provider_transaction_id,
            paid_at=paid_at if target == TransactionStatus.PAID else None,
        )
        if updated is not None:
            logger.info("Transaction %s moved to %s", transaction.reference, target.value)
            return TransitionResult(applied=True, transaction=updated)

        current = self._repository.get_transaction(transaction.id) or transaction
        logger.info(
            "Transaction %s already processed (status=%s), skipping",
            transaction.reference,
            current.status.value,
        )
        return TransitionResult(applied=False, transaction=current)

    def recent_for_user(self, user_id: str, *, limit: int = 10) -> Sequence[PaymentTransaction]:
        return self._repository.list_transactions_for_user(user_id, limit=limit)


__all__ = ["TransactionLedger"]
