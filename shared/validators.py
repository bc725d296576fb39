"""
Input validators - framework-agnostic, pure functions.

Each validator returns the full list of problems found, so a form can
highlight every violation at once. An empty list means the input is valid.
"""

from __future__ import annotations

import re

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
NAME_RE = re.compile(r"^[A-Za-z\s]+$")
SPECIAL_CHARS_RE = re.compile(r'[!@#$%^&*()_+\-=\[\]{};\':"\\|,.<>\/?~`]')

PASSWORD_MIN_LENGTH = 8
PASSWORD_MAX_LENGTH = 128
BIO_MAX_LENGTH = 100


def is_valid_email(email: str) -> bool:
    """Return True if *email* looks like ``local@domain.tld``."""
    return bool(email) and bool(EMAIL_RE.match(email))


def validate_password(password: str) -> list[str]:
    """Check *password* against the account password policy.

    Rules:
    - 8 to 128 characters
    - at least one uppercase and one lowercase letter
    - at least one digit
    - at least one special character from the fixed punctuation set
    """
    if not password:
        return ["Password is required"]

    errors = []
    if len(password) < PASSWORD_MIN_LENGTH:
        errors.append(f"Password must be at least {PASSWORD_MIN_LENGTH} characters")
    if len(password) > PASSWORD_MAX_LENGTH:
        errors.append(f"Password must be at most {PASSWORD_MAX_LENGTH} characters")
    if not re.search(r"[A-Z]", password):
        errors.append("Password must contain at least one uppercase letter")
    if not re.search(r"[a-z]", password):
        errors.append("Password must contain at least one lowercase letter")
    if not re.search(r"[0-9]", password):
        errors.append("Password must contain at least one number")
    if not SPECIAL_CHARS_RE.search(password):
        errors.append("Password must contain at least one special character")
    return errors


def validate_name(name: str) -> list[str]:
    """Check a display name.

    Only letters and spaces are allowed, and the capitalization must be
    consistent: either ``john doe`` or ``John Doe``.
    """
    name = (name or "").strip()
    if not name:
        return ["Name is required"]
    if not NAME_RE.match(name):
        return ["Name can only contain letters and spaces"]

    words = name.split()
    all_lower = all(word == word.lower() for word in words)
    capitalized = all(word == word[0].upper() + word[1:].lower() for word in words)
    if not all_lower and not capitalized:
        return [
            "Name must be either all lowercase (e.g., john doe) "
            "or properly capitalized (e.g., John Doe)"
        ]
    return []


def validate_bio(bio: str) -> list[str]:
    if len(bio) > BIO_MAX_LENGTH:
        return [f"Bio must be {BIO_MAX_LENGTH} characters or less"]
    return []
