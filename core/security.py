"""
core/security.py -- Request-level security guards shared by every route.

Pure functions over plain values (method, URL string, header mapping,
Settings) so they can be unit tested without an ASGI app. api/main.py wires
them into middleware; auth/ calls assert_production_security() when its
components are constructed.

Same-origin write guard:
  CSRF mitigation in place of anti-CSRF tokens. Browsers attach Origin (or at
  least Referer) to cross-site form posts and XHR, so a mutating request whose
  origin signal does not match the site -- or that carries none at all -- is
  rejected before any body parsing, session lookup, or storage access.
  Disabled outside production so local tools (curl, HTTPie) keep working.

Production security gate:
  Fail-closed. A production process with a default JWT secret, a missing or
  non-bcrypt admin hash, a cookie without the __Host- prefix, or Secure
  cookies not explicitly enabled refuses to issue or verify sessions at all.

Layer rule: core/ is the kernel. No imports from api/, auth/, or content/.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from urllib.parse import urlsplit, urlunsplit

from core.config import DEV_JWT_SECRET, Settings
from core.errors import ConfigurationError

logger = logging.getLogger("copperkoi.security")

MUTATING_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})

_DEFAULT_PORTS = {"http": 80, "https": 443}

# ---------------------------------------------------------------------------
# Client identity
# ---------------------------------------------------------------------------


def client_ip(headers: Mapping[str, str], fallback: str = "unknown") -> str:
    """Return the client IP as reported by the reverse proxy / CDN.

    First match wins: X-Forwarded-For (first hop), X-Real-IP,
    CF-Connecting-IP. Falls back to "unknown" so every anonymous client
    without proxy headers shares one limiter bucket per username.
    """
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    return headers.get("x-real-ip") or headers.get("cf-connecting-ip") or fallback


# ---------------------------------------------------------------------------
# Origins and URLs
# ---------------------------------------------------------------------------


def to_origin(value: str | None) -> str | None:
    """Return "scheme://host[:port]" for an absolute URL, or None.

    Matches browser Origin serialization: lowercase scheme and host, default
    ports dropped, path/query/userinfo discarded.
    """
    if not value:
        return None
    try:
        parts = urlsplit(value.strip())
        port = parts.port
    except ValueError:
        return None
    scheme = parts.scheme.lower()
    host = (parts.hostname or "").lower()
    if not scheme or not host:
        return None
    if ":" in host:
        host = f"[{host}]"
    if port is not None and port != _DEFAULT_PORTS.get(scheme):
        return f"{scheme}://{host}:{port}"
    return f"{scheme}://{host}"


def verify_same_origin(
    method: str,
    url: str,
    headers: Mapping[str, str],
    settings: Settings,
) -> str | None:
    """Check a request's Origin/Referer against the expected origin.

    Returns None when the request may proceed, otherwise a short reason
    string for logging. The caller turns a reason into HTTP 403.

    Expected origin: settings.app_origin when configured (the public origin
    behind a reverse proxy), else the origin of the inbound request URL.
    """
    if not settings.is_production:
        return None
    if method.upper() not in MUTATING_METHODS:
        return None

    expected = to_origin(settings.app_origin) or to_origin(url)
    if not expected:
        return "Missing expected origin"

    origin = to_origin(headers.get("origin"))
    if origin:
        return None if origin == expected else "Origin mismatch"

    referer_origin = to_origin(headers.get("referer"))
    if referer_origin:
        return None if referer_origin == expected else "Referer mismatch"

    return "Missing origin"


def normalize_safe_http_url(value: object) -> str | None:
    """Return a normalized http(s) URL, or None for anything else.

    Friend links are rendered as anchors; javascript:, data: and relative
    URLs are refused here rather than escaped at render time.
    """
    if not isinstance(value, str):
        return None
    trimmed = value.strip()
    if not trimmed:
        return None
    try:
        parts = urlsplit(trimmed)
    except ValueError:
        return None
    if parts.scheme.lower() not in ("http", "https") or not parts.netloc:
        return None
    path = parts.path or "/"
    return urlunsplit((parts.scheme.lower(), parts.netloc, path, parts.query, parts.fragment))


# ---------------------------------------------------------------------------
# Production security gate
# ---------------------------------------------------------------------------


def assert_production_security(settings: Settings) -> None:
    """Raise ConfigurationError if a production deployment is unsafe to serve.

    No-op outside production. Called once from the app lifespan and again by
    every auth component constructor, so a misconfigured process can neither
    start nor hand out a TokenService or session transport.
    """
    if not settings.is_production:
        return
    if settings.cookie_secure is not True:
        raise ConfigurationError("Security misconfiguration: COOKIE_SECURE must be true in production")
    if not settings.jwt_secret or settings.jwt_secret == DEV_JWT_SECRET:
        raise ConfigurationError("Security misconfiguration: JWT_SECRET must be set in production")
    if not settings.admin_password_hash:
        raise ConfigurationError("Security misconfiguration: ADMIN_PASSWORD_HASH must be set in production")
    if not settings.admin_password_hash.startswith("$2"):
        raise ConfigurationError(
            "Security misconfiguration: ADMIN_PASSWORD_HASH must be a bcrypt hash in production"
        )
    if not settings.cookie_name.startswith("__Host-"):
        raise ConfigurationError("Security misconfiguration: production session cookie must use __Host- prefix")


# ---------------------------------------------------------------------------
# Response hardening
# ---------------------------------------------------------------------------

_CSP = "; ".join(
    [
        "default-src 'self'",
        "script-src 'self' 'unsafe-inline'",
        "style-src 'self' 'unsafe-inline' https://fonts.googleapis.com",
        "font-src 'self' https://fonts.gstatic.com data:",
        "img-src 'self' data: https://www.google.com",
        "connect-src 'self' https:",
        "object-src 'none'",
        "base-uri 'self'",
        "form-action 'self'",
        "frame-ancestors 'none'",
    ]
)


def security_headers(settings: Settings) -> dict[str, str]:
    """Headers added to every response. HSTS and CSP only in production."""
    headers = {
        "X-Frame-Options": "DENY",
        "X-Content-Type-Options": "nosniff",
        "Referrer-Policy": "strict-origin-when-cross-origin",
        "Permissions-Policy": "camera=(), microphone=(), geolocation=(), interest-cohort=()",
        "Cross-Origin-Opener-Policy": "same-origin",
        "Cross-Origin-Resource-Policy": "same-origin",
    }
    if settings.is_production:
        headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains; preload"
        headers["Content-Security-Policy"] = _CSP
    return headers
