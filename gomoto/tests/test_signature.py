from __future__ import annotations

import hashlib
import hmac

import pytest

from gomoto.app.payments.exceptions import ConfigurationError
from gomoto.app.payments.signature import NOTIFY_PATH, SignatureCodec

TIMESTAMP = "2024-05-15T10:00:00Z"
BODY = b'{"reference":"GM-ABC","status":"SUCCESSFUL"}'


def _signed_headers(codec: SignatureCodec, body: bytes = BODY) -> dict:
    return {
        "X-IK-Signature": codec.sign("POST", NOTIFY_PATH, TIMESTAMP, body),
        "X-IK-Timestamp": TIMESTAMP,
    }


def test_sign_is_hmac_sha256_over_method_path_timestamp_and_body():
    codec = SignatureCodec("secret")

    expected = hmac.new(
        b"secret",
        b"POST/payments/initiate" + TIMESTAMP.encode() + BODY,
        hashlib.sha256,
    ).hexdigest()

    assert codec.sign("post", "/payments/initiate", TIMESTAMP, BODY) == expected


def test_sign_accepts_text_bodies():
    codec = SignatureCodec("secret")

    assert codec.sign("POST", "/x", TIMESTAMP, BODY.decode()) == codec.sign("POST", "/x", TIMESTAMP, BODY)


def test_sign_without_secret_is_refused():
    codec = SignatureCodec(None)

    assert codec.is_demo
    with pytest.raises(ConfigurationError):
        codec.sign("POST", "/x", TIMESTAMP, BODY)


def test_verify_accepts_valid_signature():
    codec = SignatureCodec("secret")

    assert codec.verify_notification(_signed_headers(codec), BODY)


def test_verify_header_lookup_is_case_insensitive():
    codec = SignatureCodec("secret")
    headers = {key.lower(): value for key, value in _signed_headers(codec).items()}

    assert codec.verify_notification(headers, BODY)


def test_verify_rejects_tampered_body():
    codec = SignatureCodec("secret")
    headers = _signed_headers(codec)

    assert not codec.verify_notification(headers, BODY.replace(b"SUCCESSFUL", b"FAILED"))


def test_verify_rejects_signature_from_other_secret():
    codec = SignatureCodec("secret")
    forged = _signed_headers(SignatureCodec("other"))

    assert not codec.verify_notification(forged, BODY)


@pytest.mark.parametrize("missing", ["X-IK-Signature", "X-IK-Timestamp"])
def test_verify_rejects_missing_headers(missing):
    codec = SignatureCodec("secret")
    headers = _signed_headers(codec)
    headers.pop(missing)

    assert not codec.verify_notification(headers, BODY)


def test_verify_rejects_non_ascii_signature():
    codec = SignatureCodec("secret")
    headers = _signed_headers(codec)
    headers["X-IK-Signature"] = "ü" * 64

    assert not codec.verify_notification(headers, BODY)


def test_verify_passes_in_demo_mode():
    codec = SignatureCodec("")

    assert codec.is_demo
    assert codec.verify_notification({}, BODY)
