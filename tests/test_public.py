"""Health check and front-end routes."""

import os

import pytest


@pytest.fixture
def public_dir(app):
    path = app.config["PUBLIC_DIR"]
    os.makedirs(path, exist_ok=True)
    with open(os.path.join(path, "index.html"), "w", encoding="utf-8") as f:
        f.write("<h1>upload page</h1>")
    with open(os.path.join(path, "app.js"), "w", encoding="utf-8") as f:
        f.write("console.log('hi');")
    return path


def test_healthz(client):
    res = client.get("/healthz")
    assert res.status_code == 200
    assert res.get_json() == {"ok": True}


def test_root_serves_index(client, public_dir):
    res = client.get("/")
    assert res.status_code == 200
    assert b"upload page" in res.data


def test_unknown_path_serves_index(client, public_dir):
    res = client.get("/some/deep/route")
    assert res.status_code == 200
    assert b"upload page" in res.data


def test_existing_asset_served(client, public_dir):
    res = client.get("/app.js")
    assert res.status_code == 200
    assert b"console.log" in res.data


@pytest.mark.parametrize("path", ["/uploads", "/uploads/", "/uploads/123-abc.jpg"])
def test_uploads_forbidden(client, public_dir, path):
    res = client.get(path)
    assert res.status_code == 403
    assert res.data == b"Forbidden"


def test_missing_index(client):
    res = client.get("/")
    assert res.status_code == 404


def test_cors_header(client):
    res = client.get("/healthz", headers={"Origin": "http://example.com"})
    assert res.headers.get("Access-Control-Allow-Origin") in ("*", "http://example.com")


@pytest.mark.parametrize("path", ["/upload", "/upload/receipt", "/upload/0123456789abcdef01234567"])
def test_upload_paths_serve_index_on_get(client, public_dir, path):
    res = client.get(path)
    assert res.status_code == 200
    assert b"upload page" in res.data
