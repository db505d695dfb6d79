"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (data containers with only trivial predicates). Services in
auth/credentials.py, auth/tokens.py and auth/ratelimit.py do the work.

Layer rule: no imports from api/ or content/.
"""

from __future__ import annotations

from dataclasses import dataclass

from core.config import Settings

TOKEN_ISSUER = "copperkoi-blog"
TOKEN_AUDIENCE = "copperkoi-admin"


@dataclass(frozen=True)
class AdminIdentity:
    """The single administrative principal.

    Built once from Settings at startup and never mutated. username is
    already normalized (trimmed, lowercase) by core.config.
    """

    username: str
    password_hash: str
    secret: str
    issuer: str = TOKEN_ISSUER
    audience: str = TOKEN_AUDIENCE

    @classmethod
    def from_settings(cls, settings: Settings) -> "AdminIdentity":
        return cls(
            username=settings.admin_user,
            password_hash=settings.admin_password_hash,
            secret=settings.jwt_secret,
        )


@dataclass
class RateLimitEntry:
    """Failed-login bookkeeping for one "ip:username" key.

    Timestamps are epoch seconds from the limiter's clock. blocked_until is
    0.0 while no lockout has been imposed.
    """

    count: int
    reset_at: float
    blocked_until: float = 0.0

    def is_locked(self, now: float) -> bool:
        return self.blocked_until > now

    def is_stale(self, now: float) -> bool:
        """Both the counting window and any lockout have elapsed."""
        return self.reset_at <= now and self.blocked_until <= now
