"""Billing email: configuration, delivery providers and template rendering."""

from .config import EmailConfig, load_email_config
from .providers import (
    DevPrintProvider,
    EmailDeliveryError,
    EmailProvider,
    ResendProvider,
    SMTPProvider,
    create_email_provider,
)
from .renderer import render_billing_email

__all__ = [
    "DevPrintProvider",
    "EmailConfig",
    "EmailDeliveryError",
    "EmailProvider",
    "ResendProvider",
    "SMTPProvider",
    "create_email_provider",
    "load_email_config",
    "render_billing_email",
]
