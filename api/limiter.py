"""
api/limiter.py -- Shared slowapi rate limiter instance.

Import this in api/main.py (mounted via SlowAPIMiddleware) and in
api/routes/auth.py (to apply the per-IP login ceiling with @limiter.limit()).

Using a single shared instance ensures all routes share the same in-memory
counter store. The per-account lockout lives in auth/ratelimit.py; this is
only the coarse outer ceiling, set well above the lockout threshold so the
lockout is what a single targeted account runs into first.

The ceiling comes from Settings.login_rate_limit. create_app() installs it
with configure_login_limit(); slowapi evaluates login_limit() on every
request, so each app built in the same process applies its own value.
"""

from slowapi import Limiter
from starlette.requests import Request

from core.security import client_ip

_login_rate_limit = "30/minute"


def request_client_ip(request: Request) -> str:
    """slowapi key function: proxy-reported client IP, else the socket peer."""
    fallback = request.client.host if request.client else "unknown"
    return client_ip(request.headers, fallback=fallback)


def configure_login_limit(value: str) -> None:
    global _login_rate_limit
    _login_rate_limit = value


def login_limit() -> str:
    return _login_rate_limit


limiter = Limiter(key_func=request_client_ip, storage_uri="memory://")
