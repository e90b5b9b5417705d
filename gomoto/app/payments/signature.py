"""HMAC signing and verification for gateway traffic."""
from __future__ import annotations

import hashlib
import hmac
import logging
from typing import Mapping, Optional, Union

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-IK-Signature"
TIMESTAMP_HEADER = "X-IK-Timestamp"
APPLICATION_KEY_HEADER = "X-IK-Application-Key"
NOTIFY_PATH = "/payments/notify"

RawBody = Union[bytes, str]


def _header(headers: Mapping[str, str], name: str) -> Optional[str]:
    wanted = name.lower()
    for key, value in headers.items():
        if isinstance(key, str) and key.lower() == wanted:
            return value
    return None


def _as_bytes(value: RawBody) -> bytes:
    return value if isinstance(value, bytes) else value.encode("utf-8")


class SignatureCodec:
    """Computes ``HMAC-SHA256(secret, method + path + timestamp + body)``.

    Without a secret the codec runs in Demo Mode: notification verification
    passes and signing is refused.
    """

    def __init__(self, secret: Optional[str], *, notify_path: str = NOTIFY_PATH) -> None:
        self._secret = secret.encode("utf-8") if secret else None
        self.notify_path = notify_path

    @property
    def is_demo(self) -> bool:
        return self._secret is None

    def sign(self, method: str, path: str, timestamp: str, body: RawBody = b"") -> str:
        if self._secret is None:
            raise ConfigurationError(message="Gateway signing secret is not configured")
        payload = method.upper().encode("utf-8") + path.encode("utf-8") + timestamp.encode("utf-8") + _as_bytes(body)
        return hmac.new(self._secret, payload, hashlib.sha256).hexdigest()

    def verify_notification(self, headers: Mapping[str, str], raw_body: RawBody) -> bool:
        if self._secret is None:
            logger.warning("No gateway secret configured, skipping notification signature check")
            return True

        received = _header(headers, SIGNATURE_HEADER)
        timestamp = _header(headers, TIMESTAMP_HEADER)
        if not received or not timestamp:
            logger.error("Notification is missing signature or timestamp headers")
            return False

        try:
            expected = self.sign("POST", self.notify_path, timestamp, raw_body)
            valid = hmac.compare_digest(received.strip().encode("ascii"), expected.encode("ascii"))
        except (UnicodeError, TypeError, ValueError):
            valid = False

        if not valid:
            logger.error("Notification signature validation failed")
        return valid


__all__ = [
    "APPLICATION_KEY_HEADER",
    "NOTIFY_PATH",
    "SIGNATURE_HEADER",
    "SignatureCodec",
    "TIMESTAMP_HEADER",
]
