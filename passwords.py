from __future__ import annotations

import re

from werkzeug.security import check_password_hash, generate_password_hash

from utils import ApiError


MIN_PASSWORD_LENGTH = 8
MAX_PASSWORD_LENGTH = 256

# (pattern, label) in the order they are reported.
_CHARACTER_CLASSES = (
    (re.compile(r"[A-Z]"), "uppercase letter"),
    (re.compile(r"[a-z]"), "lowercase letter"),
    (re.compile(r"\d"), "number"),
    (re.compile(r"[^A-Za-z0-9]"), "special character"),
)


def missing_character_classes(password: str) -> list[str]:
    pwd = str(password or "")
    return [label for pattern, label in _CHARACTER_CLASSES if not pattern.search(pwd)]


def validate_password_policy(password: str) -> str:
    """Return the password unchanged, or raise BAD_REQUEST naming the first unmet rule."""
    pwd = str(password or "")
    if not pwd:
        raise ApiError("BAD_REQUEST", "New password is required", http_status=400)
    if len(pwd) < MIN_PASSWORD_LENGTH:
        raise ApiError(
            "BAD_REQUEST", f"New password must be at least {MIN_PASSWORD_LENGTH} characters long", http_status=400
        )
    if len(pwd) > MAX_PASSWORD_LENGTH:
        raise ApiError(
            "BAD_REQUEST", f"New password must be at most {MAX_PASSWORD_LENGTH} characters long", http_status=400
        )

    missing = missing_character_classes(pwd)
    if missing:
        raise ApiError("BAD_REQUEST", "New password must contain at least one " + ", ".join(missing), http_status=400)
    return pwd


def hash_password(password: str) -> str:
    return generate_password_hash(validate_password_policy(password), method="scrypt", salt_length=16)


def verify_password(password: str, password_hash: str) -> bool:
    # Malformed or unknown-method hashes never match.
    try:
        return check_password_hash(str(password_hash or ""), str(password or ""))
    except ValueError:
        return False
