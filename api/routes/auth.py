"""
api/routes/auth.py -- Admin login, logout and session introspection.

Routes:
  POST /api/auth/login   -- password login; sets the session cookie
  POST /api/auth/logout  -- clears the session cookie
  GET  /api/auth/me      -- current admin (requires session)

Login pipeline (order matters):
  0. Same-origin guard      -- middleware, before this handler runs (403)
  1. Field presence         -- 400 "Missing credentials"
  2. Lockout check          -- 429 before ANY bcrypt work
  3. Credential check       -- 401 and a recorded failure on mismatch
  4. Reset + issue + cookie -- failures for this ip:username are forgotten

The coarse slowapi ceiling (Settings.login_rate_limit, api/limiter.py) is applied on top, per IP.
Responses carry Cache-Control: no-store so proxies never cache a session.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter, login_limit
from api.models import LoginRequest, LoginResponse, MeResponse, OkResponse
from auth.dependencies import (
    get_credentials,
    get_current_admin,
    get_login_limiter,
    get_session,
    get_tokens,
)
from core.errors import AuthError, ClientError
from core.security import client_ip

logger = logging.getLogger("copperkoi.auth")

# Auth policy:
# - POST /api/auth/login:   public -- must be reachable without a session
# - POST /api/auth/logout:  public -- clearing a cookie needs no prior auth
# - GET  /api/auth/me:      requires admin session (get_current_admin)
router = APIRouter()


@limiter.limit(login_limit)  # must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/login", response_model=LoginResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate the admin and set the session cookie.

    Wrong username and wrong password produce the same 401 so the response
    does not reveal which half was wrong.
    """
    if not body.username or not body.password:
        raise ClientError("Missing credentials")
    username = str(body.username)
    password = str(body.password)

    login_limiter = get_login_limiter(request)
    rate_key = login_limiter.key_for(client_ip(request.headers), username)
    login_limiter.check(rate_key)

    if not get_credentials(request).authenticate(username, password):
        login_limiter.record_failure(rate_key)
        logger.warning("Failed admin login from %s", client_ip(request.headers))
        raise AuthError("Invalid credentials")

    login_limiter.reset(rate_key)
    admin = request.app.state.settings.admin_user
    token = get_tokens(request).issue(admin)
    resp = JSONResponse(status_code=200, content=LoginResponse(user=admin).model_dump())
    get_session(request).write_credential(resp, token)
    resp.headers["Cache-Control"] = "no-store"
    logger.info("Admin login succeeded")
    return resp


@router.post("/auth/logout", response_model=OkResponse)
async def logout(request: Request) -> JSONResponse:
    """Clear the session cookie."""
    resp = JSONResponse(content=OkResponse().model_dump())
    get_session(request).write_credential(resp, None)
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.get("/auth/me", response_model=MeResponse)
async def me(admin: str = Depends(get_current_admin)) -> MeResponse:
    """Return the admin username for a valid session."""
    return MeResponse(user=admin)
