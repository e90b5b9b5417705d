"""Email configuration helpers."""
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

DEFAULT_FROM_EMAIL = "Go-Moto <noreply@go-moto.co.za>"
DEFAULT_RESEND_URL = "https://api.resend.com"

_TRUTHY = frozenset({"1", "true", "yes", "on"})
_FALSY = frozenset({"0", "false", "no", "off"})


@dataclass(frozen=True)
class EmailConfig:
    """Outbound billing email settings.

    ``provider_name`` is ``resend``, ``smtp`` or ``dev``. When ``EMAIL_PROVIDER``
    is unset the Resend API is used if a key is present, otherwise messages are
    only logged.
    """

    provider_name: str
    from_email: str
    app_base_url: str
    resend_api_key: Optional[str] = None
    resend_base_url: str = DEFAULT_RESEND_URL
    smtp_host: str = "localhost"
    smtp_port: int = 587
    smtp_username: Optional[str] = None
    smtp_password: Optional[str] = None
    smtp_use_tls: bool = True
    timeout_seconds: float = 10.0


def _flag(value: Optional[str], *, default: bool) -> bool:
    if value is None:
        return default
    lowered = value.strip().lower()
    if lowered in _TRUTHY:
        return True
    if lowered in _FALSY:
        return False
    return default


def _number(value: Optional[str], *, default, cast=int):
    if value is None or value.strip() == "":
        return default
    try:
        return cast(value)
    except ValueError as exc:
        raise ValueError(f"Expected {cast.__name__} value, got {value!r}") from exc


def load_email_config(env: Optional[Mapping[str, str]] = None) -> EmailConfig:
    """Load :class:`EmailConfig` from environment variables."""

    env_mapping = os.environ if env is None else env

    resend_api_key = env_mapping.get("RESEND_API_KEY") or None
    provider_name = (env_mapping.get("EMAIL_PROVIDER") or "").strip().lower()
    if not provider_name:
        provider_name = "resend" if resend_api_key else "dev"

    app_base_url = env_mapping.get("NEXT_PUBLIC_APP_URL") or env_mapping.get("APP_BASE_URL") or "http://localhost:3000"

    return EmailConfig(
        provider_name=provider_name,
        from_email=env_mapping.get("FROM_EMAIL") or DEFAULT_FROM_EMAIL,
        app_base_url=app_base_url.rstrip("/"),
        resend_api_key=resend_api_key,
        resend_base_url=(env_mapping.get("RESEND_BASE_URL") or DEFAULT_RESEND_URL).rstrip("/"),
        smtp_host=env_mapping.get("SMTP_HOST") or "localhost",
        smtp_port=_number(env_mapping.get("SMTP_PORT"), default=587),
        smtp_username=env_mapping.get("SMTP_USER") or None,
        smtp_password=env_mapping.get("SMTP_PASS") or None,
        smtp_use_tls=_flag(env_mapping.get("SMTP_USE_TLS"), default=True),
        timeout_seconds=_number(env_mapping.get("EMAIL_TIMEOUT_SECONDS"), default=10.0, cast=float),
    )


__all__ = ["DEFAULT_FROM_EMAIL", "EmailConfig", "load_email_config"]
