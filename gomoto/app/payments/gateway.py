"""Payment gateway clients: the live iKhokha API and the offline Demo Mode."""
from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional
from urllib.parse import quote, urlencode

import httpx

from .config import GatewayConfig
from .exceptions import GatewayError
from .models import GatewayPaymentStatus, PaymentInitiation, PaymentStatusResult
from .protocols import PaymentGateway
from .signature import APPLICATION_KEY_HEADER, SIGNATURE_HEADER, TIMESTAMP_HEADER, SignatureCodec

logger = logging.getLogger(__name__)

DEFAULT_DESCRIPTION = "Go-Moto Listing Subscription"

_STATUS_MAP = {
    "SUCCESSFUL": GatewayPaymentStatus.PAID,
    "PENDING": GatewayPaymentStatus.PENDING,
    "FAILED": GatewayPaymentStatus.FAILED,
    "CANCELLED": GatewayPaymentStatus.CANCELLED,
}


def map_provider_status(value: object) -> GatewayPaymentStatus:
    """Translate the provider's vocabulary; anything unrecognised is ``unknown``."""

    if not isinstance(value, str):
        return GatewayPaymentStatus.UNKNOWN
    return _STATUS_MAP.get(value.strip().upper(), GatewayPaymentStatus.UNKNOWN)


def _parse_optional_datetime(value: object) -> Optional[datetime]:
    if not value or not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def _append_query(url: str, params: Dict[str, str]) -> str:
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}{urlencode(params)}"


class DemoGateway(PaymentGateway):
    """Deterministic stand-in used whenever gateway credentials are absent."""

    def __init__(
        self,
        config: GatewayConfig,
        *,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._config = config
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @property
    def is_demo(self) -> bool:
        return True

    def initiate_payment(
        self,
        *,
        user_id: str,
        plan_id: str,
        amount: int,
        reference: str,
        description: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
    ) -> PaymentInitiation:
        logger.warning("Demo Mode: creating demo payment request for %s", reference)
        payment_url = _append_query(
            self._config.return_url,
            {"reference": reference, "status": "paid", "demo": "true"},
        )
        return PaymentInitiation(payment_url=payment_url, reference=reference, is_demo=True)

    def query_status(self, reference: str) -> PaymentStatusResult:
        logger.warning("Demo Mode: reporting payment %s as paid", reference)
        return PaymentStatusResult(status=GatewayPaymentStatus.PAID, paid_at=self._clock(), is_demo=True)


class IkhokhaGateway(PaymentGateway):
    """Signed client for the iKhokha iK Pay API."""

    def __init__(
        self,
        config: GatewayConfig,
        codec: SignatureCodec,
        *,
        http_client: Optional[httpx.Client] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        if not config.is_configured:
            raise ValueError("IkhokhaGateway requires application key id and secret")
        self._config = config
        self._codec = codec
        self._http = http_client or httpx.Client(timeout=config.timeout_seconds)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @property
    def is_demo(self) -> bool:
        return False

    def _request(self, endpoint: str, method: str = "POST", body: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        timestamp = self._clock().isoformat().replace("+00:00", "Z")
        body_string = json.dumps(body, separators=(",", ":")) if body is not None else ""
        headers = {
            "Content-Type": "application/json",
            APPLICATION_KEY_HEADER: self._config.application_key_id or "",
            TIMESTAMP_HEADER: timestamp,
            SIGNATURE_HEADER: self._codec.sign(method, endpoint, timestamp, body_string),
        }

        try:
            response = self._http.request(
                method,
                f"{self._config.base_url}{endpoint}",
                headers=headers,
                content=body_string if body is not None else None,
                timeout=self._config.timeout_seconds,
            )
        except httpx.TimeoutException as exc:
            logger.error("iKhokha request %s %s timed out", method, endpoint)
            raise GatewayError(code="gateway_timeout", message="Payment gateway timed out") from exc
        except httpx.HTTPError as exc:
            logger.error("iKhokha request %s %s failed: %s", method, endpoint, exc)
            raise GatewayError(message=f"Payment gateway request failed: {exc}") from exc

        if response.status_code < 200 or response.status_code >= 300:
            logger.error("iKhokha API error %s: %s", response.status_code, response.text)
            raise GatewayError(
                message=f"iKhokha API error: {response.status_code}",
                detail={"upstream_status": response.status_code},
                retryable=response.status_code >= 500 or response.status_code == 429,
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise GatewayError(message="Payment gateway returned an unreadable response") from exc
        if not isinstance(payload, dict):
            raise GatewayError(message="Payment gateway returned an unexpected response")
        return payload

    def initiate_payment(
        self,
        *,
        user_id: str,
        plan_id: str,
        amount: int,
        reference: str,
        description: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
    ) -> PaymentInitiation:
        request_body = {
            "amount": round(amount / 100, 2),
            "currency": self._config.currency,
            "reference": reference,
            "description": description or DEFAULT_DESCRIPTION,
            "returnUrl": self._config.return_url,
            "cancelUrl": _append_query(self._config.cancel_url, {"reference": reference}),
            "notifyUrl": self._config.notify_url,
            "metadata": {"userId": user_id, "planId": plan_id, **(metadata or {})},
        }
        payload = self._request("/payments/initiate", "POST", request_body)

        payment_url = payload.get("paymentUrl")
        if not payment_url:
            raise GatewayError(message="Payment gateway did not return a payment URL")
        return PaymentInitiation(
            payment_url=str(payment_url),
            reference=str(payload.get("reference") or reference),
            provider_transaction_id=payload.get("transactionId") and str(payload["transactionId"]),
        )

    def query_status(self, reference: str) -> PaymentStatusResult:
        payload = self._request(f"/payments/status/{quote(reference, safe='')}", "GET")
        status = map_provider_status(payload.get("status"))
        if status == GatewayPaymentStatus.UNKNOWN:
            logger.warning("Unrecognised gateway status %r for %s", payload.get("status"), reference)
        return PaymentStatusResult(
            status=status,
            provider_transaction_id=payload.get("transactionId") and str(payload["transactionId"]),
            paid_at=_parse_optional_datetime(payload.get("paidAt")),
        )


def create_payment_gateway(
    config: GatewayConfig,
    *,
    http_client: Optional[httpx.Client] = None,
) -> PaymentGateway:
    """Return the live client when credentials exist, otherwise Demo Mode."""

    if config.is_configured:
        return IkhokhaGateway(config, SignatureCodec(config.application_key_secret), http_client=http_client)
    logger.warning("iKhokha credentials not configured, payments run in Demo Mode")
    return DemoGateway(config)


__all__ = [
    "DEFAULT_DESCRIPTION",
    "DemoGateway",
    "IkhokhaGateway",
    "create_payment_gateway",
    "map_provider_status",
]
