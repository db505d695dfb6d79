"""
api/main.py -- FastAPI application factory for the blog backend.

Run with:      uvicorn asgi:app --reload

create_app(settings) builds a fully wired app from an explicit Settings
instance. asgi.py passes get_settings(); tests pass their own.

Middleware stack (outermost to innermost):
  1. log_requests          -- method, path, status, latency, client IP
  2. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  3. https_and_headers     -- production HTTPS enforcement + security headers
  4. same_origin_guard     -- 403 for cross-origin writes, before anything else
  5. CORSMiddleware        -- only when CORS_ORIGINS is configured
  6. SlowAPIMiddleware     -- per-route limits from api.limiter

Lifespan runs the production security gate once, then builds the store and
the auth components onto app.state. A misconfigured production process fails
at startup instead of serving with weak security.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse, RedirectResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.limiter import configure_login_limit, limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.about import router as about_router
from api.routes.admin import router as admin_router
from api.routes.auth import router as auth_router
from api.routes.friends import router as friends_router
from api.routes.posts import router as posts_router
from api.routes.travel import router as travel_router
from auth.credentials import CredentialVerifier
from auth.models import AdminIdentity
from auth.ratelimit import LoginRateLimiter, RateLimitStore
from auth.session import CookieSessionTransport
from auth.tokens import TokenService
from content.store import ContentStore
from core.config import Settings
from core.errors import BlogError, RateLimitedError
from core.security import assert_production_security, client_ip, security_headers, verify_same_origin

__version__ = "1.0.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("copperkoi.api")


def _error_response(status_code: int, code: str, message: str, detail: str | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail)).model_dump(),
    )


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build application-level resources; dispose of them on shutdown.

    Startup order matters:
      1. Security gate first -- nothing else is built for an unsafe deployment.
      2. Store second -- creates tables and seeds the about row.
      3. Auth components last -- each re-checks the gate on construction.
    """
    settings: Settings = app.state.settings
    logger.info("Blog API starting up (env=%s)", settings.app_env)
    assert_production_security(settings)

    app.state.store = ContentStore(settings.database_url)
    app.state.tokens = TokenService(settings)
    app.state.session = CookieSessionTransport(settings)
    app.state.credentials = CredentialVerifier(AdminIdentity.from_settings(settings))
    app.state.login_limiter = LoginRateLimiter(store=app.state.rate_limit_store)
    if not settings.admin_password_hash:
        logger.warning("ADMIN_PASSWORD_HASH is not set -- admin login is disabled")
    logger.info("Auth initialized (cookie=%s, secure=%s)", settings.cookie_name, settings.session_cookie_secure)

    yield

    app.state.store.close()
    logger.info("Blog API shutdown complete")


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------


def create_app(settings: Settings, rate_limit_store: RateLimitStore | None = None) -> FastAPI:
    """Build the app for one Settings instance.

    rate_limit_store backs the login lockout; None means a process-local
    MemoryRateLimitStore. Pass a shared store when running several workers.
    """
    app = FastAPI(
        title="Copperkoi Blog API",
        description="Posts, about page, friend links and travel marks with a single-admin studio.",
        version=__version__,
        lifespan=lifespan,
        docs_url=None if settings.is_production else "/docs",
        redoc_url=None,
    )
    app.state.settings = settings
    app.state.rate_limit_store = rate_limit_store
    # SlowAPI looks for app.state.limiter by convention.
    app.state.limiter = limiter
    configure_login_limit(settings.login_rate_limit)

    # ------------------------------------------------------------------
    # Middleware -- registered innermost first; each add wraps the previous.
    # ------------------------------------------------------------------

    app.add_middleware(SlowAPIMiddleware)

    if settings.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_origins,
            allow_credentials=True,
            allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
            allow_headers=["Content-Type"],
            max_age=3600,
        )

    @app.middleware("http")
    async def same_origin_guard(request: Request, call_next):
        """Reject cross-origin writes before body parsing or session lookup.

        Returns the response directly: exceptions raised in http middleware
        bypass the exception handlers registered below.
        """
        reason = verify_same_origin(request.method, str(request.url), request.headers, settings)
        if reason:
            logger.warning(
                "Blocked %s %s from %s: %s",
                request.method,
                request.url.path,
                client_ip(request.headers),
                reason,
            )
            return _error_response(403, "forbidden", "Forbidden")
        return await call_next(request)

    @app.middleware("http")
    async def https_and_headers(request: Request, call_next):
        """Enforce HTTPS in production and add security headers to every response."""
        headers = security_headers(settings)
        if settings.is_production and not settings.force_https:
            response = PlainTextResponse("Server misconfigured", status_code=500)
        else:
            proto = request.headers.get("x-forwarded-proto") or request.url.scheme
            if settings.force_https and proto != "https":
                response = RedirectResponse(str(request.url.replace(scheme="https")), status_code=307)
            else:
                response = await call_next(request)
        for name, value in headers.items():
            response.headers[name] = value
        return response

    app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.allowed_hosts)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        ms = (time.perf_counter() - start) * 1000
        logger.info(
            "%s %s %d %.1fms %s",
            request.method,
            request.url.path,
            response.status_code,
            ms,
            client_ip(request.headers, fallback=request.client.host if request.client else "unknown"),
        )
        return response

    # ------------------------------------------------------------------
    # Routers
    # ------------------------------------------------------------------

    app.include_router(auth_router, prefix="/api", tags=["Auth"])
    app.include_router(posts_router, prefix="/api", tags=["Posts"])
    app.include_router(about_router, prefix="/api", tags=["About"])
    app.include_router(friends_router, prefix="/api", tags=["Friends"])
    app.include_router(travel_router, prefix="/api", tags=["Travel"])
    app.include_router(admin_router, prefix="/api", tags=["Admin"])

    # ------------------------------------------------------------------
    # Exception handlers
    #
    # All handlers return the same ErrorResponse envelope so clients can
    # parse errors uniformly.
    # ------------------------------------------------------------------

    @app.exception_handler(BlogError)
    async def blog_error_handler(request: Request, exc: BlogError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("%s on %s %s: %s", exc.code, request.method, request.url.path, exc.message)
        response = _error_response(exc.status_code, exc.code, exc.message, exc.detail)
        response.headers["Cache-Control"] = "no-store"
        if isinstance(exc, RateLimitedError):
            response.headers["Retry-After"] = str(exc.retry_after)
        return response

    @app.exception_handler(RateLimitExceeded)
    async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
        """Return 429 when the coarse per-IP slowapi ceiling is exceeded."""
        retry_after = int(getattr(exc, "retry_after", 60))
        response = _error_response(429, "rate_limited", "Too many requests.", str(exc))
        response.headers["Retry-After"] = str(retry_after)
        return response

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        """Malformed request bodies and params are client errors (400)."""
        return _error_response(400, "validation_error", "Request validation failed.", str(exc.errors()))

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return _error_response(exc.status_code, f"http_{exc.status_code}", str(exc.detail))

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Catch-all for unexpected server errors. Details go to the log only."""
        logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
        return _error_response(500, "internal_error", "An unexpected error occurred.")

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    @app.get("/api/health", tags=["Health"])
    async def health(request: Request) -> HealthResponse:
        """Liveness plus a database round trip. No auth, no rate limit."""
        store: ContentStore = request.app.state.store
        return HealthResponse(
            version=__version__,
            components={"app": "ok", "database": "ok" if store.ping() else "error"},
        )

    return app
