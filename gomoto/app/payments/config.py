"""Payment gateway configuration helpers."""
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

DEFAULT_BASE_URL = "https://api.ikhokha.com/ikhokha-api/v1"


@dataclass(frozen=True)
class GatewayConfig:
    """Configuration for the payment gateway and billing behaviour."""

    application_key_id: Optional[str]
    application_key_secret: Optional[str]
    base_url: str
    return_url: str
    notify_url: str
    cancel_url: str
    currency: str
    timeout_seconds: float
    app_base_url: str
    reference_prefix: str
    grace_period_days: int
    cron_secret: Optional[str]

    @property
    def is_configured(self) -> bool:
        """Live mode requires both halves of the application key."""
        return bool(self.application_key_id and self.application_key_secret)


def _to_int(value: Optional[str], *, default: int) -> int:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Expected integer value, got {value!r}") from exc


def _to_float(value: Optional[str], *, default: float) -> float:
    if value is None or value == "":
        return default
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Expected float value, got {value!r}") from exc


def load_gateway_config(env: Optional[Mapping[str, str]] = None) -> GatewayConfig:
    """Load :class:`GatewayConfig` from environment variables."""

    env_mapping = os.environ if env is None else env

    app_base_url = (
        env_mapping.get("NEXT_PUBLIC_APP_URL")
        or env_mapping.get("APP_BASE_URL")
        or "http://localhost:3000"
    ).rstrip("/")

    return_url = env_mapping.get("IKHOKHA_RETURN_URL") or f"{app_base_url}/api/payments/ikhokha/return"
    notify_url = env_mapping.get("IKHOKHA_NOTIFY_URL") or f"{app_base_url}/api/payments/ikhokha/notify"
    cancel_url = env_mapping.get("IKHOKHA_CANCEL_URL") or f"{app_base_url}/api/payments/ikhokha/cancel"

    return GatewayConfig(
        application_key_id=env_mapping.get("IKHOKHA_APPLICATION_KEY_ID") or None,
        application_key_secret=env_mapping.get("IKHOKHA_APPLICATION_KEY_SECRET") or None,
        base_url=(env_mapping.get("IKHOKHA_BASE_URL") or DEFAULT_BASE_URL).rstrip("/"),
        return_url=return_url,
        notify_url=notify_url,
        cancel_url=cancel_url,
        currency=(env_mapping.get("IKHOKHA_CURRENCY") or "ZAR").upper(),
        timeout_seconds=max(1.0, _to_float(env_mapping.get("IKHOKHA_TIMEOUT_SECONDS"), default=10.0)),
        app_base_url=app_base_url,
        reference_prefix=(env_mapping.get("PAYMENT_REFERENCE_PREFIX") or "GM").strip(),
        grace_period_days=max(0, _to_int(env_mapping.get("BILLING_GRACE_PERIOD_DAYS"), default=3)),
        cron_secret=env_mapping.get("CRON_SECRET") or None,
    )


__all__ = ["GatewayConfig", "load_gateway_config"]
