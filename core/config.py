"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for the blog happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() or
accept a Settings instance instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call. asgi.py
      passes that instance to create_app(); tests build their own Settings and
      pass them explicitly.

  @model_validator(mode="after"): normalizes the admin identity values once,
      at construction. Env files and process managers mangle bcrypt hashes in
      predictable ways (quotes kept, "$" escaped, "$2b$12$" swallowed by
      variable expansion), so the repair lives here rather than at each use.

The production security assertions are NOT a validator here: Settings must be
constructible in any state so the gate in core/security.py can report exactly
what is wrong with a production deployment.

Layer rule: core/ is the kernel. This module may not import from api/,
auth/, or content/.
"""

import logging
import re
from functools import lru_cache
from typing import Optional

from limits import parse_many
from pydantic import AliasChoices, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("copperkoi.config")

DEV_JWT_SECRET = "unsafe-secret"
DEFAULT_ADMIN_USER = "copperkoi"
PROD_COOKIE_NAME = "__Host-blog_session"
DEV_COOKIE_NAME = "blog_session"

_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")
_BCRYPT_BODY = re.compile(r"^[./A-Za-z0-9]{53}$")


def _unwrap(value: str) -> str:
    trimmed = value.strip()
    if len(trimmed) >= 2 and trimmed[0] == trimmed[-1] and trimmed[0] in ("'", '"'):
        return trimmed[1:-1]
    return trimmed


def normalize_admin_user(raw: str) -> str:
    return _CONTROL_CHARS.sub("", _unwrap(raw)).strip().lower()


def normalize_password_hash(raw: str) -> str:
    """Repair a bcrypt hash that went through a .env file or systemd unit."""
    value = _CONTROL_CHARS.sub("", _unwrap(raw))
    if not value:
        return ""
    value = value.replace("\\$", "$")
    if value.startswith("$2"):
        return value
    # dotenv-expand treats "$2b" and "$12" as variables and drops them.
    if _BCRYPT_BODY.match(value):
        return f"$2b$12${value}"
    return value


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in development
    and in tests without a real .env file. Production safety is enforced by
    core.security.assert_production_security(), run at startup.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    app_env: str = "development"
    database_url: str = "sqlite:///copperkoi_blog.db"
    app_origin: str = ""
    force_https: bool = False
    allowed_hosts: list[str] = ["*"]
    cors_origins: list[str] = []
    # slowapi limit string for POST /api/auth/login, per client IP.
    login_rate_limit: str = "30/minute"

    # ------------------------------------------------------------------
    # Admin identity and session
    # ------------------------------------------------------------------

    jwt_secret: str = DEV_JWT_SECRET
    admin_user: str = Field(
        default=DEFAULT_ADMIN_USER,
        validation_alias=AliasChoices("admin_user", "admin_username"),
    )
    admin_password_hash: str = ""
    cookie_name: str = ""
    # None = not set. Production requires an explicit True.
    cookie_secure: Optional[bool] = None

    # ------------------------------------------------------------------
    # TLS certificate upload
    # ------------------------------------------------------------------

    ssl_cert_path: str = ""
    ssl_key_path: str = ""

    @property
    def is_production(self) -> bool:
        return self.app_env.strip().lower() == "production"

    @property
    def session_cookie_secure(self) -> bool:
        """Effective Secure flag: forced on in production, default on elsewhere."""
        if self.is_production:
            return True
        return self.cookie_secure is not False

    @field_validator("login_rate_limit")
    @classmethod
    def check_rate_limit(cls, value: str) -> str:
        """Reject limit strings slowapi cannot parse."""
        parse_many(value)
        return value.strip()

    @model_validator(mode="after")
    def normalize_identity(self) -> "Settings":
        self.admin_user = normalize_admin_user(self.admin_user) or DEFAULT_ADMIN_USER
        self.admin_password_hash = normalize_password_hash(self.admin_password_hash)
        self.jwt_secret = self.jwt_secret.strip()
        if not self.cookie_name:
            self.cookie_name = PROD_COOKIE_NAME if self.is_production else DEV_COOKIE_NAME
        if not self.is_production and self.jwt_secret == DEV_JWT_SECRET:
            logger.warning("Using the development JWT secret. Set JWT_SECRET before deploying.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: construct Settings(...) directly and pass it to create_app()
    rather than relying on this cache.
    """
    return Settings()
