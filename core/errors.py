"""
core/errors.py -- Typed error taxonomy for the blog backend.

Every failure that reaches the HTTP layer is one of these. api/main.py maps
them onto the shared ErrorResponse envelope with a single exception handler,
so route and store code raise domain errors and never build responses.

  ClientError         400  malformed input, missing fields, bad id lists
  AuthError           401  bad credentials, missing/invalid/expired session
  ForbiddenError      403  same-origin check failure
  NotFoundError       404  unknown resource id
  RateLimitedError    429  login lockout in effect
  ConfigurationError  500  production security gate failure (never downgraded)
  TransactionError    500  storage failure mid-operation; changes rolled back

Layer rule: core/ is the kernel. No imports from api/, auth/, or content/.
"""

from __future__ import annotations


class BlogError(Exception):
    """Base class. Carries the HTTP status and a stable machine-readable code."""

    status_code: int = 500
    code: str = "internal_error"

    def __init__(self, message: str, detail: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail


class ClientError(BlogError):
    status_code = 400
    code = "bad_request"


class AuthError(BlogError):
    status_code = 401
    code = "unauthorized"


class ForbiddenError(BlogError):
    status_code = 403
    code = "forbidden"


class NotFoundError(BlogError):
    status_code = 404
    code = "not_found"


class RateLimitedError(BlogError):
    """Login attempts for an (IP, username) pair are locked out.

    retry_after is the number of whole seconds until the lockout lifts; the
    exception handler echoes it as the Retry-After header.
    """

    status_code = 429
    code = "rate_limited"

    def __init__(self, message: str, retry_after: int = 0) -> None:
        super().__init__(message)
        self.retry_after = max(int(retry_after), 0)


class ConfigurationError(BlogError):
    status_code = 500
    code = "misconfigured"


class TransactionError(BlogError):
    status_code = 500
    code = "transaction_failed"
