"""
tests/test_production.py -- Production-mode behaviour of the assembled app.

Covers:
  - Cross-origin or origin-less writes are 403 before auth or body parsing
  - Same-origin writes via Origin or Referer proceed
  - A misconfigured production app refuses to start
  - Session cookie uses the __Host- prefix and the Secure flag
  - HSTS/CSP headers, plain-HTTP redirect, FORCE_HTTPS misconfiguration
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from api.main import create_app
from core.errors import ConfigurationError
from tests.conftest import PROD_ORIGIN, login, make_prod_settings

SAME_ORIGIN = {"origin": PROD_ORIGIN}


def _prod_login(client: TestClient):
    resp = login(client, headers=SAME_ORIGIN)
    assert resp.status_code == 200, resp.text
    return resp


# ---------------------------------------------------------------------------
# Same-origin write guard
# ---------------------------------------------------------------------------


def test_write_without_origin_is_forbidden_before_auth(prod_client):
    resp = prod_client.post("/api/friends", json={"title": "x", "url": "https://x.example"})
    assert resp.status_code == 403
    assert resp.json()["error"]["code"] == "forbidden"


def test_cross_origin_write_is_forbidden_even_with_session(prod_client):
    _prod_login(prod_client)
    resp = prod_client.put("/api/about", json={"content": "pwned"}, headers={"origin": "https://evil.example"})
    assert resp.status_code == 403
    assert prod_client.get("/api/about").json()["content"] != "pwned"


def test_cross_origin_login_is_forbidden(prod_client):
    resp = login(prod_client, headers={"origin": "https://evil.example"})
    assert resp.status_code == 403
    assert "set-cookie" not in resp.headers


def test_invalid_body_from_foreign_origin_is_403_not_400(prod_client):
    resp = prod_client.patch("/api/friends", content=b"{not json", headers={"origin": "https://evil.example"})
    assert resp.status_code == 403


def test_same_origin_write_via_origin(prod_client):
    _prod_login(prod_client)
    resp = prod_client.put("/api/about", json={"content": "# Hello"}, headers=SAME_ORIGIN)
    assert resp.status_code == 200
    assert prod_client.get("/api/about").json()["content"] == "# Hello"


def test_same_origin_write_via_referer(prod_client):
    _prod_login(prod_client)
    resp = prod_client.put("/api/about", json={"content": "ref"}, headers={"referer": f"{PROD_ORIGIN}/studio"})
    assert resp.status_code == 200


def test_reads_are_not_origin_checked(prod_client):
    assert prod_client.get("/api/friends", headers={"origin": "https://evil.example"}).status_code == 200


# ---------------------------------------------------------------------------
# Startup gate and cookie
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "overrides",
    [
        {"cookie_secure": None},
        {"jwt_secret": "unsafe-secret"},
        {"admin_password_hash": ""},
        {"admin_password_hash": "plaintext"},
        {"cookie_name": "blog_session"},
    ],
)
def test_misconfigured_production_refuses_to_start(overrides):
    app = create_app(make_prod_settings(**overrides))
    with pytest.raises(ConfigurationError):
        with TestClient(app, base_url=PROD_ORIGIN):
            pass


def test_production_cookie_is_host_prefixed_and_secure(prod_client):
    cookie = _prod_login(prod_client).headers["set-cookie"]
    assert cookie.startswith("__Host-blog_session=")
    lowered = cookie.lower()
    assert "; secure" in lowered
    assert "path=/" in lowered
    assert "domain=" not in lowered
    assert prod_client.get("/api/auth/me").status_code == 200


# ---------------------------------------------------------------------------
# Transport hardening
# ---------------------------------------------------------------------------


def test_production_headers(prod_client):
    resp = prod_client.get("/api/health")
    assert resp.headers["strict-transport-security"].startswith("max-age=31536000")
    assert "default-src 'self'" in resp.headers["content-security-policy"]


def test_plain_http_is_redirected(prod_client):
    resp = prod_client.get("http://testserver/api/health", follow_redirects=False)
    assert resp.status_code == 307
    assert resp.headers["location"].startswith("https://testserver/api/health")


def test_forwarded_proto_counts_as_https(prod_client):
    resp = prod_client.get(
        "http://testserver/api/health",
        headers={"x-forwarded-proto": "https"},
        follow_redirects=False,
    )
    assert resp.status_code == 200


def test_production_without_force_https_is_misconfigured():
    app = create_app(make_prod_settings(force_https=False))
    with TestClient(app, base_url=PROD_ORIGIN) as c:
        resp = c.get("/api/health")
    assert resp.status_code == 500
    assert resp.text == "Server misconfigured"
