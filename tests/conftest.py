"""
tests/conftest.py -- Shared test fixtures for the blog backend.

This module provides:
  - make_settings() / make_prod_settings(): explicit Settings, no .env file
  - FakeClock: injectable time source for limiter and token expiry tests
  - client: TestClient for a development-mode app (origin guard disabled)
  - prod_client: TestClient for a correctly configured production app
  - admin_client: client already logged in as the admin

Design: every app gets its own named shared-memory SQLite database (not plain
:memory:). TestClient runs sync route handlers in a thread pool, and a plain
:memory: DB is per-connection, so worker threads would see a blank schema.
The named URI shares one in-memory instance across all connections.

The admin hash uses bcrypt cost 4 so the suite does not spend seconds in
key stretching.
"""

from __future__ import annotations

import uuid
from collections.abc import Generator

import bcrypt
import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import create_app
from core.config import Settings

ADMIN_USER = "copperkoi"
ADMIN_PASSWORD = "correct horse battery staple"
ADMIN_HASH = bcrypt.hashpw(ADMIN_PASSWORD.encode("utf-8"), bcrypt.gensalt(rounds=4)).decode("utf-8")
DEV_SECRET = "dev-test-secret-0123456789abcdef0123456789"
PROD_SECRET = "prod-test-secret-fedcba9876543210fedcba9876543210"
PROD_ORIGIN = "https://testserver"


class FakeClock:
    """Callable clock returning a controllable epoch-seconds value."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def memory_db_url() -> str:
    return f"sqlite:///file:test_blog_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"


def make_settings(**overrides) -> Settings:
    values = {
        "app_env": "development",
        "database_url": memory_db_url(),
        "admin_user": ADMIN_USER,
        "admin_password_hash": ADMIN_HASH,
        "jwt_secret": DEV_SECRET,
        "cookie_secure": False,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def make_prod_settings(**overrides) -> Settings:
    values = {
        "app_env": "production",
        "cookie_secure": True,
        "jwt_secret": PROD_SECRET,
        "force_https": True,
    }
    values.update(overrides)
    return make_settings(**values)


def login(client: TestClient, username: str = ADMIN_USER, password: str = ADMIN_PASSWORD, **kwargs):
    return client.post("/api/auth/login", json={"username": username, "password": password}, **kwargs)


@pytest.fixture(autouse=True)
def _reset_slowapi() -> Generator[None, None, None]:
    """The slowapi limiter is a module singleton; isolate its counters per test."""
    limiter.reset()
    yield
    limiter.reset()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def client(settings: Settings) -> Generator[TestClient, None, None]:
    app = create_app(settings)
    with TestClient(app) as c:
        yield c


@pytest.fixture
def admin_client(client: TestClient) -> TestClient:
    resp = login(client)
    assert resp.status_code == 200, resp.text
    return client


@pytest.fixture
def prod_settings() -> Settings:
    return make_prod_settings()


@pytest.fixture
def prod_client(prod_settings: Settings) -> Generator[TestClient, None, None]:
    app = create_app(prod_settings)
    with TestClient(app, base_url=PROD_ORIGIN) as c:
        yield c
