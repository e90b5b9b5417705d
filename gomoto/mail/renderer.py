"""Rendering helpers for billing emails."""
from __future__ import annotations

import html
import re
from pathlib import Path
from typing import Any, Dict, Tuple

_TEMPLATE_PATH = Path(__file__).resolve().parent / "templates"
_PLACEHOLDER_PATTERN = re.compile(r"{{\s*(\w+)\s*}}")

BILLING_TEMPLATES = frozenset(
    {"payment_received", "payment_due", "final_reminder", "subscription_paused"}
)


def _load_template(template: str) -> str:
    path = _TEMPLATE_PATH / template
    return path.read_text(encoding="utf-8")


def _render_template(template: str, context: Dict[str, Any], *, escape: bool = False) -> str:
    source = _load_template(template)

    def _replace(match: re.Match[str]) -> str:
        key = match.group(1)
        value = context.get(key, "")
        text = "" if value is None else str(value)
        return html.escape(text) if escape else text

    return _PLACEHOLDER_PATTERN.sub(_replace, source)


def _render_subject_body(base_template: str, context: Dict[str, Any]) -> Tuple[str, str, str]:
    subject = _render_template(f"{base_template}_subject.txt.j2", context)
    text_body = _render_template(f"{base_template}_body.txt.j2", context)
    html_body = _render_template(f"{base_template}_body.html.j2", context, escape=True)
    return subject.strip(), text_body.strip(), html_body.strip()


def render_billing_email(template: str, context: Dict[str, Any]) -> Tuple[str, str, str]:
    """Return ``(subject, text_body, html_body)`` for a billing template."""

    if template not in BILLING_TEMPLATES:
        raise ValueError(f"Unknown billing email template: {template}")
    return _render_subject_body(template, context)


__all__ = ["BILLING_TEMPLATES", "render_billing_email"]
