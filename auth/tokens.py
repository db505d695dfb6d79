"""
auth/tokens.py -- Token Service: signed, time-limited admin session tokens.

Security design decisions:
  JWT: python-jose with HS256. Tokens carry only the admin username (sub),
       a fixed issuer and audience, and a 12-hour expiry. Binding iss/aud
       keeps a token minted by another deployment that happens to share the
       secret from being accepted here.

  Single principal: verify() additionally requires sub == the configured
       admin username. There is no user table to look up, so the subject
       check is a constant comparison.

  Never raises to callers: any JWTError, malformed claim, or expiry turns
       into None. The route layer turns None into 401.

  Clock: expiry is checked against the injected clock rather than jose's
       wall-clock check, so time-based behaviour is testable and issue() and
       verify() always agree on "now".

  Fail-closed construction: __init__ runs the production security gate. A
  TokenService cannot exist in a misconfigured production process, so no
  token can be issued or verified there.

Layer rule: no imports from api/ or content/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from jose import JWTError, jwt

from auth.models import AdminIdentity
from core.config import Settings
from core.security import assert_production_security

logger = logging.getLogger("copperkoi.auth")

_ALGORITHM = "HS256"

SESSION_TTL_SECONDS = 12 * 60 * 60


class TokenService:
    """Issues and verifies admin session tokens.

    Usage:
        tokens = TokenService(settings)
        token = tokens.issue(settings.admin_user)
        tokens.verify(token)   # -> "copperkoi" or None
    """

    def __init__(
        self,
        settings: Settings,
        clock: Callable[[], float] = time.time,
        ttl_seconds: int = SESSION_TTL_SECONDS,
    ) -> None:
        assert_production_security(settings)
        self._identity = AdminIdentity.from_settings(settings)
        self._clock = clock
        self.ttl_seconds = ttl_seconds

    def issue(self, subject: str | None = None) -> str:
        """Encode a signed token for the admin. Defaults to the configured username."""
        now = int(self._clock())
        payload = {
            "sub": subject or self._identity.username,
            "iss": self._identity.issuer,
            "aud": self._identity.audience,
            "iat": now,
            "exp": now + self.ttl_seconds,
        }
        return jwt.encode(payload, self._identity.secret, algorithm=_ALGORITHM)

    def verify(self, token: str | None) -> str | None:
        """Return the admin username if the token is valid, else None."""
        if not token:
            return None
        try:
            payload = jwt.decode(
                token,
                self._identity.secret,
                algorithms=[_ALGORITHM],
                audience=self._identity.audience,
                issuer=self._identity.issuer,
                options={"verify_exp": False},
            )
        except JWTError:
            return None

        exp = payload.get("exp")
        if not isinstance(exp, (int, float)) or isinstance(exp, bool):
            return None
        if self._clock() >= exp:
            return None

        subject = payload.get("sub")
        if subject != self._identity.username:
            logger.warning("Rejected token with unexpected subject")
            return None
        return subject
