"""
tests/test_content_routes.py -- Integration tests for the content endpoints.

Covers:
  - Friends: create, validation, move up/down, bulk reorder, delete
  - Travel: replace and list, invalid payload leaves data untouched
  - Posts: drafts hidden from anonymous callers, admin view, partial update
  - About: read default, update
  - Admin SSL upload writes both files
  - Malformed JSON bodies are 400
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from api.main import create_app
from tests.conftest import login, make_settings


def _create_friend(client, title, url="https://koi.example"):
    resp = client.post("/api/friends", json={"title": title, "url": url})
    assert resp.status_code == 201, resp.text
    return resp.json()["friend"]


def _friend_titles(client):
    return [f["title"] for f in client.get("/api/friends").json()["items"]]


# ---------------------------------------------------------------------------
# Friends
# ---------------------------------------------------------------------------


def test_friends_list_is_public_and_empty(client):
    resp = client.get("/api/friends")
    assert resp.status_code == 200
    assert resp.json() == {"items": []}


def test_create_friend_normalizes_url(admin_client):
    friend = _create_friend(admin_client, "  Koi  ", url=" https://Koi.example ")
    assert friend["title"] == "Koi"
    assert friend["url"] == "https://Koi.example/"
    assert friend["id"].startswith("f_")


@pytest.mark.parametrize(
    "body,message",
    [
        ({"title": "", "url": "https://x.example"}, "Missing title or url"),
        ({"title": "x"}, "Missing title or url"),
        ({"title": "x", "url": "javascript:alert(1)"}, "Invalid url"),
    ],
)
def test_create_friend_validation(admin_client, body, message):
    resp = admin_client.post("/api/friends", json=body)
    assert resp.status_code == 400
    assert resp.json()["error"]["message"] == message


def test_move_friend_up_and_down(admin_client):
    a = _create_friend(admin_client, "A")
    _create_friend(admin_client, "B")
    _create_friend(admin_client, "C")
    assert _friend_titles(admin_client) == ["C", "B", "A"]

    resp = admin_client.patch(f"/api/friends/{a['id']}", json={"direction": "up"})
    assert resp.status_code == 200
    assert _friend_titles(admin_client) == ["C", "A", "B"]

    # back to the bottom, then a second "down" is a no-op
    admin_client.patch(f"/api/friends/{a['id']}", json={"direction": "down"})
    resp = admin_client.patch(f"/api/friends/{a['id']}", json={"direction": "down"})
    assert resp.status_code == 200
    assert _friend_titles(admin_client) == ["C", "B", "A"]


def test_patch_friend_fields(admin_client):
    a = _create_friend(admin_client, "A")
    resp = admin_client.patch(f"/api/friends/{a['id']}", json={"title": "Alpha", "note": "hi"})
    assert resp.status_code == 200
    assert resp.json()["friend"]["title"] == "Alpha"
    assert resp.json()["friend"]["note"] == "hi"


def test_patch_friend_fields_and_direction(admin_client):
    a = _create_friend(admin_client, "A")
    _create_friend(admin_client, "B")
    resp = admin_client.patch(f"/api/friends/{a['id']}", json={"title": "Alpha", "direction": "up"})
    assert resp.status_code == 200
    assert resp.json()["friend"]["title"] == "Alpha"
    assert _friend_titles(admin_client) == ["Alpha", "B"]


def test_patch_friend_invalid_direction_is_400(admin_client):
    a = _create_friend(admin_client, "A")
    resp = admin_client.patch(f"/api/friends/{a['id']}", json={"title": "Alpha", "direction": "left"})
    assert resp.status_code == 400
    assert _friend_titles(admin_client) == ["A"]


def test_patch_unknown_friend_is_404(admin_client):
    assert admin_client.patch("/api/friends/f_missing", json={"direction": "up"}).status_code == 404


def test_bulk_reorder(admin_client):
    a = _create_friend(admin_client, "A")
    b = _create_friend(admin_client, "B")
    c = _create_friend(admin_client, "C")
    resp = admin_client.patch("/api/friends", json={"orderIds": [b["id"], a["id"], c["id"]]})
    assert resp.status_code == 200
    assert resp.json() == {"ok": True}
    assert _friend_titles(admin_client) == ["B", "A", "C"]


def test_bulk_reorder_rejects_partial_list(admin_client):
    a = _create_friend(admin_client, "A")
    _create_friend(admin_client, "B")
    resp = admin_client.patch("/api/friends", json={"orderIds": [a["id"]]})
    assert resp.status_code == 400
    assert resp.json()["error"]["message"] == "orderIds count mismatch"
    assert _friend_titles(admin_client) == ["B", "A"]


def test_delete_friend(admin_client):
    a = _create_friend(admin_client, "A")
    assert admin_client.delete(f"/api/friends/{a['id']}").status_code == 200
    assert _friend_titles(admin_client) == []


# ---------------------------------------------------------------------------
# Travel
# ---------------------------------------------------------------------------


def test_replace_and_list_travel(admin_client):
    resp = admin_client.patch(
        "/api/travel",
        json={"items": [{"adcode": 510100, "name": "Chengdu"}, {"adcode": 310000, "name": "Shanghai"}]},
    )
    assert resp.status_code == 200
    assert [m["adcode"] for m in resp.json()["items"]] == [510100, 310000]
    listed = admin_client.get("/api/travel").json()["items"]
    assert [(m["adcode"], m["name"]) for m in listed] == [(510100, "Chengdu"), (310000, "Shanghai")]


def test_invalid_travel_payload_is_400_and_keeps_data(admin_client):
    admin_client.patch("/api/travel", json={"items": [{"adcode": 1, "name": "keep"}]})
    resp = admin_client.patch("/api/travel", json={"items": [{"adcode": -3, "name": "bad"}]})
    assert resp.status_code == 400
    assert resp.json()["error"]["message"] == "Invalid items"
    assert [m["name"] for m in admin_client.get("/api/travel").json()["items"]] == ["keep"]


# ---------------------------------------------------------------------------
# Posts
# ---------------------------------------------------------------------------


def test_draft_hidden_from_anonymous(client):
    login(client)
    resp = client.post("/api/posts", json={"id": "d1", "title": "Draft"})
    assert resp.status_code == 201
    resp = client.post("/api/posts", json={"id": "p1", "title": "Live", "status": "published"})
    assert resp.status_code == 201

    assert client.get("/api/posts/d1").status_code == 200
    assert {p["id"] for p in client.get("/api/posts?view=admin").json()["items"]} == {"d1", "p1"}

    client.post("/api/auth/logout")
    assert client.get("/api/posts/d1").status_code == 404
    assert client.get("/api/posts/p1").status_code == 200
    assert [p["id"] for p in client.get("/api/posts?view=admin").json()["items"]] == ["p1"]


def test_create_post_requires_title(admin_client):
    resp = admin_client.post("/api/posts", json={"title": "   "})
    assert resp.status_code == 400


def test_duplicate_post_id_is_400(admin_client):
    assert admin_client.post("/api/posts", json={"id": "dup", "title": "A"}).status_code == 201
    assert admin_client.post("/api/posts", json={"id": "dup", "title": "B"}).status_code == 400


def test_patch_post_applies_only_given_fields(admin_client):
    admin_client.post("/api/posts", json={"id": "p1", "title": "T", "summary": "S", "tags": ["a"]})
    resp = admin_client.patch("/api/posts/p1", json={"summary": "S2", "publishAt": "2024-01-01T00:00:00Z"})
    assert resp.status_code == 200
    post = resp.json()["post"]
    assert post["title"] == "T"
    assert post["summary"] == "S2"
    assert post["tags"] == ["a"]
    assert post["publish_at"] == "2024-01-01T00:00:00+00:00"


def test_patch_post_rejects_bad_timestamp(admin_client):
    admin_client.post("/api/posts", json={"id": "p1", "title": "T"})
    assert admin_client.patch("/api/posts/p1", json={"publishAt": "soon"}).status_code == 400


def test_post_search_and_delete(admin_client):
    admin_client.post("/api/posts", json={"id": "koi", "title": "Koi pond", "status": "published"})
    admin_client.post("/api/posts", json={"id": "other", "title": "Other", "status": "published"})
    assert [p["id"] for p in admin_client.get("/api/posts?q=KOI").json()["items"]] == ["koi"]
    assert admin_client.delete("/api/posts/koi").status_code == 200
    assert admin_client.get("/api/posts/koi").status_code == 404


# ---------------------------------------------------------------------------
# About
# ---------------------------------------------------------------------------


def test_about_default_and_update(admin_client):
    data = admin_client.get("/api/about").json()
    assert data["content"].startswith("# About me")
    assert "updatedAt" in data
    assert admin_client.put("/api/about", json={"content": "# New"}).status_code == 200
    assert admin_client.get("/api/about").json()["content"] == "# New"


# ---------------------------------------------------------------------------
# Admin SSL upload
# ---------------------------------------------------------------------------


def test_ssl_upload_writes_files(tmp_path):
    cert_path = tmp_path / "cert.pem"
    key_path = tmp_path / "key.pem"
    app = create_app(make_settings(ssl_cert_path=str(cert_path), ssl_key_path=str(key_path)))
    with TestClient(app) as c:
        login(c)
        resp = c.put("/api/admin/ssl", json={"cert": "CERT", "key": "KEY"})
    assert resp.status_code == 200
    assert cert_path.read_text() == "CERT"
    assert key_path.read_text() == "KEY"


def test_ssl_upload_without_paths_is_misconfigured(admin_client):
    resp = admin_client.put("/api/admin/ssl", json={"cert": "CERT", "key": "KEY"})
    assert resp.status_code == 500
    assert resp.json()["error"]["code"] == "misconfigured"


def test_ssl_upload_requires_both_parts(admin_client):
    assert admin_client.put("/api/admin/ssl", json={"cert": "CERT"}).status_code == 400


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def test_malformed_json_is_400(admin_client):
    resp = admin_client.post("/api/friends", content=b"{not json", headers={"content-type": "application/json"})
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "validation_error"
