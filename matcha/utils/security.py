"""
Password hashing and one-time tokens.

The default hasher uses scrypt from ``cryptography``.  Stored hashes are
self-describing (``scrypt$n$r$p$salt$digest``) so the cost parameters can be
raised later without invalidating existing passwords.
"""

from __future__ import annotations

import base64
import hashlib
import os
import secrets
from typing import Protocol

from cryptography.exceptions import InvalidKey
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

TOKEN_BYTES = 32

# Short list of passwords rejected outright, compared case-insensitively.
COMMON_PASSWORDS = frozenset({
    "password", "password1", "password123", "passw0rd", "123456", "12345678",
    "123456789", "1234567890", "qwerty", "qwerty123", "azerty", "azerty123",
    "abc123", "letmein", "welcome", "welcome1", "admin", "admin123", "iloveyou",
    "monkey", "dragon", "football", "baseball", "sunshine", "princess",
    "trustno1", "master", "superman", "111111", "000000", "matcha", "matcha123",
})


class PasswordHasher(Protocol):
    def hash(self, password: str) -> str: ...

    def verify(self, password: str, digest: str) -> bool: ...


class ScryptPasswordHasher:
    """scrypt-based :class:`PasswordHasher`."""

    def __init__(self, n: int = 2**14, r: int = 8, p: int = 1, salt_bytes: int = 16) -> None:
        self.n = n
        self.r = r
        self.p = p
        self.salt_bytes = salt_bytes

    def hash(self, password: str) -> str:
        salt = os.urandom(self.salt_bytes)
        key = self._kdf(salt, self.n, self.r, self.p).derive(password.encode("utf-8"))
        return "$".join([
            "scrypt",
            str(self.n),
            str(self.r),
            str(self.p),
            _b64encode(salt),
            _b64encode(key),
        ])

    def verify(self, password: str, digest: str) -> bool:
        try:
            scheme, n, r, p, salt, key = digest.split("$")
        except ValueError:
            return False
        if scheme != "scrypt":
            return False
        try:
            self._kdf(_b64decode(salt), int(n), int(r), int(p)).verify(
                password.encode("utf-8"), _b64decode(key)
            )
        except InvalidKey:
            return False
        return True

    @staticmethod
    def _kdf(salt: bytes, n: int, r: int, p: int) -> Scrypt:
        return Scrypt(salt=salt, length=32, n=n, r=r, p=p)


def generate_token() -> str:
    """Return a URL-safe token carrying 32 bytes of randomness."""
    return secrets.token_urlsafe(TOKEN_BYTES)


def hash_token(token: str) -> str:
    """Digest stored in place of a one-time token."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def is_common_password(password: str) -> bool:
    return password.strip().lower() in COMMON_PASSWORDS


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def _b64decode(value: str) -> bytes:
    return base64.urlsafe_b64decode(value + "=" * (-len(value) % 4))
