"""
auth/session.py -- Session transport: where the session token travels.

SessionTransport is the seam between the token service and the HTTP layer:
  read_credential(request)          -> token string or None
  write_credential(response, token) -> set the session, or clear it with None

CookieSessionTransport is the only implementation. Cookie contract:
  name      __Host-blog_session in production, blog_session otherwise
            (overridable by COOKIE_NAME; the production gate insists on the
            __Host- prefix, which browsers only accept with Secure, Path=/
            and no Domain -- i.e. the cookie is locked to this exact host)
  flags     HttpOnly, SameSite=Strict, Secure (forced in production), Path=/
  lifetime  Max-Age 12h, matching the token expiry
  clear     same name and flags, empty value, Max-Age=0 / expired date, so
            browsers and intermediaries drop it

Layer rule: no imports from api/ or content/.
"""

from __future__ import annotations

from typing import Protocol

from starlette.requests import Request
from starlette.responses import Response

from auth.tokens import SESSION_TTL_SECONDS
from core.config import Settings
from core.security import assert_production_security


class SessionTransport(Protocol):
    def read_credential(self, request: Request) -> str | None: ...

    def write_credential(self, response: Response, token: str | None) -> None: ...


class CookieSessionTransport:
    """Stores the session token in an HttpOnly, SameSite=Strict cookie."""

    def __init__(self, settings: Settings) -> None:
        assert_production_security(settings)
        self.cookie_name = settings.cookie_name
        self.secure = settings.session_cookie_secure

    def read_credential(self, request: Request) -> str | None:
        value = request.cookies.get(self.cookie_name)
        return value or None

    def write_credential(self, response: Response, token: str | None) -> None:
        if token:
            response.set_cookie(
                self.cookie_name,
                value=token,
                max_age=SESSION_TTL_SECONDS,
                path="/",
                secure=self.secure,
                httponly=True,
                samesite="strict",
            )
            return
        response.delete_cookie(
            self.cookie_name,
            path="/",
            secure=self.secure,
            httponly=True,
            samesite="strict",
        )
