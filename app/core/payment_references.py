from __future__ import annotations

import secrets
from datetime import datetime

ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"
REFERENCE_PREFIX = "RAS"


def generate_payment_reference(now_utc: datetime, *, suffix_length: int = 6) -> str:
    """Builds a gateway reference like ``RAS_1718000000000_X7K2QP``."""
    if suffix_length <= 0:
        raise ValueError("suffix_length must be positive")
    timestamp_ms = int(now_utc.timestamp() * 1000)
    suffix = "".join(secrets.choice(ALPHABET) for _ in range(suffix_length))
    return f"{REFERENCE_PREFIX}_{timestamp_ms}_{suffix}"
