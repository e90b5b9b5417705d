"""Payment reference generation."""
from __future__ import annotations

import string
from datetime import datetime, timezone
from typing import Optional

_BASE36_ALPHABET = string.digits + string.ascii_lowercase


def to_base36(value: int) -> str:
    if value < 0:
        raise ValueError("value must be >= 0")
    if value == 0:
        return "0"
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36_ALPHABET[remainder])
    return "".join(reversed(digits))


def generate_payment_reference(
    user_id: str,
    plan_id: str,
    *,
    prefix: str = "GM",
    now: Optional[datetime] = None,
) -> str:
    """Build ``PREFIX-{user[:8]}-{plan[:8]}-{base36 millis}``, upper-cased.

    The reference is traceable rather than unique: two calls in the same
    millisecond for the same user and plan collide, and the ledger's unique
    constraint rejects the second insert.
    """

    moment = now or datetime.now(timezone.utc)
    millis = int(moment.timestamp() * 1000)
    return f"{prefix}-{user_id[:8]}-{plan_id[:8]}-{to_base36(millis)}".upper()


__all__ = ["generate_payment_reference", "to_base36"]
