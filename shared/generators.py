"""
Random code and token generators - pure, side-effect-free functions.

All generators use the cryptographically secure ``secrets`` module.
"""

from __future__ import annotations

import secrets
import string


def generate_otp_code(length: int = 6) -> str:
    """Generate a cryptographically secure numeric OTP.

    Args:
        length: Number of digits (default 6).

    Returns:
        String of random decimal digits (leading zeros allowed).
    """
    return "".join(secrets.choice(string.digits) for _ in range(length))


def generate_token_id() -> str:
    """Return a random hex identifier used as the ``jti`` claim of refresh JWTs."""
    return secrets.token_hex(16)
