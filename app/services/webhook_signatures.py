from __future__ import annotations

import hashlib
import hmac

SIGNATURE_HEADERS = ("x-paystack-signature", "x-signature")


def compute_signature(*, secret: str, raw_body: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha512).hexdigest()


def is_valid_signature(*, secret: str, raw_body: bytes, received_signature: str | None) -> bool:
    if not secret or not received_signature:
        return False
    expected = compute_signature(secret=secret, raw_body=raw_body)
    return hmac.compare_digest(expected, received_signature.strip().lower())


def extract_signature(headers: object) -> str | None:
    getter = getattr(headers, "get", None)
    if getter is None:
        return None
    for header_name in SIGNATURE_HEADERS:
        value = getter(header_name)
        if isinstance(value, str) and value:
            return value
    return None
