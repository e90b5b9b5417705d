from __future__ import annotations

import pytest

from gomoto.app.payments.config import DEFAULT_BASE_URL, load_gateway_config
from gomoto.mail import load_email_config


def test_gateway_defaults_to_demo_configuration():
    config = load_gateway_config(env={})

    assert not config.is_configured
    assert config.base_url == DEFAULT_BASE_URL
    assert config.app_base_url == "http://localhost:3000"
    assert config.return_url == "http://localhost:3000/api/payments/ikhokha/return"
    assert config.notify_url == "http://localhost:3000/api/payments/ikhokha/notify"
    assert config.cancel_url == "http://localhost:3000/api/payments/ikhokha/cancel"
    assert config.currency == "ZAR"
    assert config.timeout_seconds == 10.0
    assert config.reference_prefix == "GM"
    assert config.grace_period_days == 3
    assert config.cron_secret is None


def test_gateway_reads_overrides():
    config = load_gateway_config(
        env={
            "IKHOKHA_APPLICATION_KEY_ID": "id",
            "IKHOKHA_APPLICATION_KEY_SECRET": "secret",
            "IKHOKHA_BASE_URL": "https://sandbox.ikhokha.test/v1/",
            "IKHOKHA_NOTIFY_URL": "https://hooks.gomoto.test/notify",
            "NEXT_PUBLIC_APP_URL": "https://gomoto.co.za/",
            "APP_BASE_URL": "https://ignored.test",
            "IKHOKHA_CURRENCY": "zar",
            "IKHOKHA_TIMEOUT_SECONDS": "0.2",
            "BILLING_GRACE_PERIOD_DAYS": "5",
            "CRON_SECRET": "cron",
        }
    )

    assert config.is_configured
    assert config.base_url == "https://sandbox.ikhokha.test/v1"
    assert config.app_base_url == "https://gomoto.co.za"
    assert config.notify_url == "https://hooks.gomoto.test/notify"
    assert config.return_url == "https://gomoto.co.za/api/payments/ikhokha/return"
    assert config.currency == "ZAR"
    assert config.timeout_seconds == 1.0
    assert config.grace_period_days == 5
    assert config.cron_secret == "cron"


def test_gateway_needs_both_key_halves():
    assert not load_gateway_config(env={"IKHOKHA_APPLICATION_KEY_SECRET": "secret"}).is_configured


def test_gateway_rejects_malformed_numbers():
    with pytest.raises(ValueError):
        load_gateway_config(env={"BILLING_GRACE_PERIOD_DAYS": "three"})


def test_email_defaults():
    config = load_email_config(env={})

    assert config.provider_name == "dev"
    assert config.smtp_port == 587
    assert config.smtp_use_tls
    assert config.app_base_url == "http://localhost:3000"


def test_email_prefers_resend_when_key_present():
    config = load_email_config(env={"RESEND_API_KEY": "re_test", "EMAIL_TIMEOUT_SECONDS": "2.5"})

    assert config.provider_name == "resend"
    assert config.resend_api_key == "re_test"
    assert config.resend_base_url == "https://api.resend.com"
    assert config.timeout_seconds == 2.5
