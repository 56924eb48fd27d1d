"""
Password hashing for stored accounts.

Hashes are ``$HASH$<iterations>$<salt hex>$<digest hex>`` using PBKDF2-SHA256.
Anything without the prefix is a legacy plaintext entry; those still verify
and are re-hashed on the next successful login.
"""
import hashlib
import hmac
import logging
import secrets

from .config import (
    MIN_PASSWORD_LENGTH,
    PASSWORD_HASH_PREFIX,
    PASSWORD_HASH_ITERATIONS,
)

logger = logging.getLogger(__name__)


def _digest(password: str, salt: bytes, iterations: int) -> str:
    return hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, iterations).hex()


def hash_password(password: str, iterations: int = PASSWORD_HASH_ITERATIONS) -> str:
    if not password:
        return ""
    salt = secrets.token_bytes(16)
    return f"{PASSWORD_HASH_PREFIX}{iterations}${salt.hex()}${_digest(password, salt, iterations)}"


def is_hashed_password(stored: str | None) -> bool:
    return bool(stored) and stored.startswith(PASSWORD_HASH_PREFIX)


def needs_upgrade(stored: str | None) -> bool:
    return stored is not None and not is_hashed_password(stored)


def verify_password(password: str | None, stored: str | None) -> bool:
    if password is None or stored is None:
        return False

    if not is_hashed_password(stored):
        return hmac.compare_digest(password.encode("utf-8"), stored.encode("utf-8"))

    try:
        iterations, salt_hex, expected = stored[len(PASSWORD_HASH_PREFIX):].split("$")
        actual = _digest(password, bytes.fromhex(salt_hex), int(iterations))
    except ValueError:
        logger.warning("Malformed password hash, rejecting login")
        return False
    return hmac.compare_digest(actual, expected)


def is_valid_password(password: str | None) -> bool:
    """At least MIN_PASSWORD_LENGTH characters and not starting with the hash prefix."""
    if password is None or len(password) < MIN_PASSWORD_LENGTH:
        return False
    return not password.startswith(PASSWORD_HASH_PREFIX)


def password_strength(password: str) -> str:
    score = 0
    if len(password) >= 8:
        score += 1
    if len(password) >= 12:
        score += 1
    score += any(c.isdigit() for c in password)
    score += any(c.islower() for c in password)
    score += any(c.isupper() for c in password)
    score += any(not c.isalnum() for c in password)

    if score <= 2:
        return "Weak"
    if score <= 4:
        return "Medium"
    return "Strong"
