"""
Random code generators — pure, side-effect-free functions.

All generators use cryptographically secure sources (``secrets`` module).
"""

from __future__ import annotations

import secrets
import string
import time
from typing import Optional

_KEY_ALPHABET = string.ascii_uppercase + string.digits


def generate_activation_key(now_ms: Optional[int] = None, suffix_length: int = 9) -> str:
    """Generate an activation key of the form ``KEY_<epoch-ms>_<SUFFIX>``.

    Args:
        now_ms: Millisecond timestamp to embed (defaults to the current time).
        suffix_length: Number of random uppercase alphanumerics (default 9).

    Returns:
        The activation key string.
    """
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    suffix = "".join(secrets.choice(_KEY_ALPHABET) for _ in range(suffix_length))
    return f"KEY_{now_ms}_{suffix}"
