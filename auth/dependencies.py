"""
auth/dependencies.py -- FastAPI Depends() helpers for admin authentication.

The auth components live on app.state (built once in the api lifespan):
  app.state.tokens         TokenService
  app.state.session        SessionTransport
  app.state.credentials    CredentialVerifier
  app.state.login_limiter  LoginRateLimiter

try_get_current_admin() is the soft variant (returns None on failure); public
GET routes use it to decide whether drafts are visible.
get_current_admin() wraps it and raises AuthError (401) if unauthenticated.

The same-origin write guard is NOT a dependency: it runs as middleware in
api/main.py so a cross-site write is refused before body parsing or session
lookup.

Layer rule: no imports from api/ or content/. This module may import from
fastapi/starlette because it is part of the dependency injection system.
"""

from __future__ import annotations

from fastapi import Request

from auth.credentials import CredentialVerifier
from auth.ratelimit import LoginRateLimiter
from auth.session import SessionTransport
from auth.tokens import TokenService
from core.errors import AuthError


def get_tokens(request: Request) -> TokenService:
    return request.app.state.tokens


def get_session(request: Request) -> SessionTransport:
    return request.app.state.session


def get_credentials(request: Request) -> CredentialVerifier:
    return request.app.state.credentials


def get_login_limiter(request: Request) -> LoginRateLimiter:
    return request.app.state.login_limiter


def try_get_current_admin(request: Request) -> str | None:
    """Return the admin username if the request carries a valid session.

    Never raises -- callers that need a hard 401 should use get_current_admin().
    """
    token = get_session(request).read_credential(request)
    return get_tokens(request).verify(token)


def get_current_admin(request: Request) -> str:
    """Require an admin session. Raises AuthError (HTTP 401) otherwise.

    Use as a FastAPI dependency:
        @router.post("/friends")
        async def route(admin: str = Depends(get_current_admin)): ...
    """
    admin = try_get_current_admin(request)
    if admin is None:
        raise AuthError("Authentication required.")
    return admin
