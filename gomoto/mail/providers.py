"""Delivery backends for billing email."""
from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage
from typing import Optional

import httpx

from .config import DEFAULT_RESEND_URL, EmailConfig

logger = logging.getLogger(__name__)


class EmailDeliveryError(RuntimeError):
    """Raised when a provider could not hand a message over for delivery."""


class EmailProvider:
    """Sends one rendered message to one recipient."""

    name = "base"

    def __init__(self, *, from_email: str) -> None:
        self.from_email = from_email

    def send_email(self, to: str, subject: str, html_body: str, text_body: str) -> None:
        raise NotImplementedError


class DevPrintProvider(EmailProvider):
    """Logs messages instead of sending them; used when nothing is configured."""

    name = "dev"

    def send_email(self, to: str, subject: str, html_body: str, text_body: str) -> None:
        logger.info("Dev email to=%s subject=%r\n%s", to, subject, text_body)


class ResendProvider(EmailProvider):
    """Resend HTTP API."""

    name = "resend"

    def __init__(
        self,
        *,
        from_email: str,
        api_key: str,
        base_url: str = DEFAULT_RESEND_URL,
        timeout: float = 10.0,
        client: Optional[httpx.Client] = None,
    ) -> None:
        super().__init__(from_email=from_email)
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._client = client

    def send_email(self, to: str, subject: str, html_body: str, text_body: str) -> None:
        payload = {
            "from": self.from_email,
            "to": [to],
            "subject": subject,
            "html": html_body,
            "text": text_body,
        }
        headers = {"Authorization": f"Bearer {self._api_key}"}
        client = self._client or httpx.Client(timeout=self._timeout)
        try:
            response = client.post(f"{self._base_url}/emails", json=payload, headers=headers)
        except httpx.HTTPError as exc:
            raise EmailDeliveryError(f"Resend request failed: {exc}") from exc
        finally:
            if self._client is None:
                client.close()

        if response.status_code >= 400:
            raise EmailDeliveryError(f"Resend rejected message ({response.status_code}): {response.text[:200]}")
        logger.debug("Resend accepted message for %s: %s", to, response.text[:200])


class SMTPProvider(EmailProvider):
    name = "smtp"

    def __init__(
        self,
        *,
        from_email: str,
        host: str,
        port: int,
        username: Optional[str],
        password: Optional[str],
        use_tls: bool,
        timeout: float = 10.0,
    ) -> None:
        super().__init__(from_email=from_email)
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.timeout = timeout

    def _build_message(self, to: str, subject: str, html_body: str, text_body: str) -> str:
        message = EmailMessage()
        message["From"] = self.from_email
        message["To"] = to
        message["Subject"] = subject
        message.set_content(text_body)
        message.add_alternative(html_body, subtype="html")
        return message.as_string()

    def send_email(self, to: str, subject: str, html_body: str, text_body: str) -> None:
        message = self._build_message(to, subject, html_body, text_body)
        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as client:
                if self.use_tls:
                    client.starttls()
                if self.username and self.password:
                    client.login(self.username, self.password)
                client.sendmail(self.from_email, [to], message)
        except (OSError, smtplib.SMTPException) as exc:
            raise EmailDeliveryError(f"SMTP delivery to {self.host}:{self.port} failed: {exc}") from exc


def create_email_provider(config: EmailConfig) -> EmailProvider:
    if config.provider_name == "resend":
        if config.resend_api_key:
            return ResendProvider(
                from_email=config.from_email,
                api_key=config.resend_api_key,
                base_url=config.resend_base_url,
                timeout=config.timeout_seconds,
            )
        logger.warning("EMAIL_PROVIDER=resend without RESEND_API_KEY; billing email will only be logged")
    elif config.provider_name == "smtp":
        return SMTPProvider(
            from_email=config.from_email,
            host=config.smtp_host,
            port=config.smtp_port,
            username=config.smtp_username,
            password=config.smtp_password,
            use_tls=config.smtp_use_tls,
            timeout=config.timeout_seconds,
        )
    elif config.provider_name != "dev":
        logger.warning("Unknown EMAIL_PROVIDER %r; billing email will only be logged", config.provider_name)
    return DevPrintProvider(from_email=config.from_email)


__all__ = [
    "DevPrintProvider",
    "EmailDeliveryError",
    "EmailProvider",
    "ResendProvider",
    "SMTPProvider",
    "create_email_provider",
]
