"""Seller payment reconciliation and subscription lifecycle."""

from .config import GatewayConfig, load_gateway_config
from .exceptions import (
    ConfigurationError,
    ConflictError,
    GatewayError,
    NotFoundError,
    ParseError,
    PaymentError,
    SignatureError,
)
from .gateway import DemoGateway, IkhokhaGateway, create_payment_gateway
from .models import (
    BillingCycleResult,
    BillingSummary,
    CheckoutResult,
    GatewayPaymentStatus,
    ListingPlan,
    ListingStatus,
    PaymentTransaction,
    PublishStatus,
    ReconciliationOutcome,
    Subscription,
    SubscriptionStatus,
    TransactionStatus,
    WebhookAck,
)
from .reference import generate_payment_reference
from .service import PaymentsService
from .signature import SignatureCodec

__all__ = [
    "BillingCycleResult",
    "BillingSummary",
    "CheckoutResult",
    "ConfigurationError",
    "ConflictError",
    "DemoGateway",
    "GatewayConfig",
    "GatewayError",
    "GatewayPaymentStatus",
    "IkhokhaGateway",
    "ListingPlan",
    "ListingStatus",
    "NotFoundError",
    "ParseError",
    "PaymentError",
    "PaymentTransaction",
    "PaymentsService",
    "PublishStatus",
    "ReconciliationOutcome",
    "SignatureCodec",
    "SignatureError",
    "Subscription",
    "SubscriptionStatus",
    "TransactionStatus",
    "WebhookAck",
    "create_payment_gateway",
    "generate_payment_reference",
    "load_gateway_config",
]
