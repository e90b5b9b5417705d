"""Error taxonomy for the payments domain."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from fastapi import HTTPException, status


@dataclass
class PaymentError(Exception):
    """Base class for payment failures surfaced to API callers."""

    code: str
    message: str
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    detail: Optional[Mapping[str, Any]] = None

    def __post_init__(self) -> None:
        base_detail: Dict[str, Any] = {"error": self.code, "message": self.message}
        if self.detail:
            base_detail.update(self.detail)
        object.__setattr__(self, "_payload", base_detail)
        super().__init__(self.message)

    @property
    def payload(self) -> Mapping[str, Any]:
        """Serialized representation suitable for JSON responses."""

        return self._payload

    def to_http_exception(self) -> HTTPException:
        """Convert the domain error into a FastAPI HTTPException."""

        return HTTPException(status_code=self.status_code, detail=dict(self.payload))


@dataclass
class ConfigurationError(PaymentError):
    """Gateway credentials are required for an operation but absent."""

    code: str = "configuration_error"
    message: str = "Payment gateway is not configured"


@dataclass
class SignatureError(PaymentError):
    """A notification failed signature verification."""

    code: str = "invalid_signature"
    message: str = "Invalid signature"
    status_code: int = status.HTTP_401_UNAUTHORIZED


@dataclass
class ParseError(PaymentError):
    """A notification or request body could not be understood."""

    code: str = "invalid_payload"
    message: str = "Invalid payload"
    status_code: int = status.HTTP_400_BAD_REQUEST


@dataclass
class NotFoundError(PaymentError):
    """An unknown reference, plan or subscription was requested."""

    code: str = "not_found"
    message: str = "Not found"
    status_code: int = status.HTTP_404_NOT_FOUND


@dataclass
class ConflictError(PaymentError):
    """A uniqueness rule would be violated."""

    code: str = "conflict"
    message: str = "Conflict"
    status_code: int = status.HTTP_409_CONFLICT


@dataclass
class GatewayError(PaymentError):
    """The payment gateway call failed or timed out.

    ``retryable`` is False when the gateway answered with a client error, which
    repeating the same request will not change.
    """

    code: str = "gateway_error"
    message: str = "Payment gateway request failed"
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    retryable: bool = True


def duplicate_reference(reference: str) -> ConflictError:
    return ConflictError(
        code="duplicate_reference",
        message=f"A transaction with reference {reference} already exists",
    )


def active_subscription_exists() -> ConflictError:
    return ConflictError(
        code="active_subscription_exists",
        message="You already have an active subscription",
        status_code=status.HTTP_400_BAD_REQUEST,
    )


__all__ = [
    "ConfigurationError",
    "ConflictError",
    "GatewayError",
    "NotFoundError",
    "ParseError",
    "PaymentError",
    "SignatureError",
    "active_subscription_exists",
    "duplicate_reference",
]
