"""Application wiring for the payments service."""
from __future__ import annotations

import logging
from functools import lru_cache

from ...mail import create_email_provider, load_email_config
from ..payments import PaymentsService, create_payment_gateway, load_gateway_config
from ..payments.notifications import EmailPaymentNotifier
from ..payments.repository import (
    PostgresListingRepository,
    PostgresPlanRepository,
    PostgresSubscriptionRepository,
    PostgresTransactionRepository,
    PostgresUserDirectory,
    postgres_unit_of_work,
)


logger = logging.getLogger("payments")


@lru_cache(maxsize=1)
def get_payments_service() -> PaymentsService:
    config = load_gateway_config()
    email_config = load_email_config()
    gateway = create_payment_gateway(config)
    notifier = EmailPaymentNotifier(
        provider=create_email_provider(email_config),
        users=PostgresUserDirectory(),
        app_base_url=config.app_base_url,
    )
    service = PaymentsService(
        config=config,
        plans=PostgresPlanRepository(),
        transactions=PostgresTransactionRepository(),
        subscriptions=PostgresSubscriptionRepository(),
        listings=PostgresListingRepository(),
        gateway=gateway,
        notifier=notifier,
        unit_of_work=postgres_unit_of_work,
    )
    logger.info("Payments service ready (demo=%s, email=%s)", gateway.is_demo, email_config.provider_name)
    return service


__all__ = ["get_payments_service"]
