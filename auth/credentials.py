"""
auth/credentials.py -- Credential Verifier for the single admin identity.

There is exactly one principal, configured by ADMIN_USER and
ADMIN_PASSWORD_HASH. Verification is a pure check: no store lookups, no
counters. Throttling is the caller's job (auth/ratelimit.py) and must happen
BEFORE authenticate() so locked-out clients never reach bcrypt.

Fail-closed rules:
  - No hash configured             -> every password is rejected.
  - Hash without the "$2" prefix   -> rejected (never compared as plaintext).
  - bcrypt raises (malformed salt, over-long input on bcrypt>=5) -> rejected.
"""

from __future__ import annotations

import logging

import bcrypt

from auth.models import AdminIdentity

logger = logging.getLogger("copperkoi.auth")

BCRYPT_PREFIX = "$2"


def hash_password(plain: str, rounds: int = 12) -> str:
    """Return a bcrypt hash suitable for ADMIN_PASSWORD_HASH."""
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def is_bcrypt_hash(value: str) -> bool:
    return bool(value) and value.startswith(BCRYPT_PREFIX)


class CredentialVerifier:
    """Checks a submitted username/password pair against the admin identity."""

    def __init__(self, identity: AdminIdentity) -> None:
        self._identity = identity

    def verify_password(self, password: str) -> bool:
        hashed = self._identity.password_hash
        if not is_bcrypt_hash(hashed):
            return False
        try:
            return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))
        except Exception:
            logger.warning("bcrypt comparison failed; treating as a bad password")
            return False

    def verify_username(self, username: str) -> bool:
        return username.strip().lower() == self._identity.username

    def authenticate(self, username: str, password: str) -> bool:
        """Return True only if both the password and the username match.

        The password is checked first and unconditionally, so a wrong
        username costs the same bcrypt work as a wrong password.
        """
        password_ok = self.verify_password(password)
        username_ok = self.verify_username(username)
        return password_ok and username_ok
