import os

import pytest
import requests

import main
from config import get_settings
from errors import UpstreamError


@pytest.fixture
def settings(monkeypatch):
    cfg = get_settings()
    for name in ("summary_enabled", "summary_min_chars"):
        monkeypatch.setattr(cfg, name, getattr(cfg, name))
    return cfg


def test_upload_csv(client, stub_llm, storage):
    resp = client.post("/api/upload", files={"file": ("fruit.csv", b"name,qty\napple,3", "text/csv")})

    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["file_name"] == "fruit.csv"
    assert body["file_type"] == "text/csv"
    assert body["extracted_text"] == "name,qty\napple,3"
    assert body["ai_summary"] == "A short summary"
    assert stub_llm.summaries == ["name,qty\napple,3"]

    assert body["file_url"].startswith("http://files.test/files/")
    stored_name = body["file_url"].rsplit("/", 1)[1]
    with open(os.path.join(storage.root, stored_name), "rb") as f:
        assert f.read() == b"name,qty\napple,3"


def test_upload_unsupported_type_still_succeeds(client, stub_llm):
    resp = client.post(
        "/api/upload",
        files={"file": ("blob.bin", b"\x00\x01\x02", "application/octet-stream")},
    )

    assert resp.status_code == 200
    body = resp.json()
    assert body["extracted_text"] == ""
    assert body["ai_summary"] is None
    assert body["file_url"].startswith("http://files.test/files/")
    assert stub_llm.summaries == []


def test_short_text_is_not_summarized(client, stub_llm):
    resp = client.post("/api/upload", files={"file": ("a.txt", b"hey", "text/plain")})
    assert resp.json()["ai_summary"] is None
    assert stub_llm.summaries == []


def test_summary_can_be_disabled(client, stub_llm, settings):
    settings.summary_enabled = False
    resp = client.post("/api/upload", files={"file": ("a.txt", b"a long enough text", "text/plain")})
    assert resp.status_code == 200
    assert resp.json()["ai_summary"] is None
    assert stub_llm.summaries == []


def test_summary_failure_is_swallowed(client, stub_llm):
    stub_llm.summary_error = UpstreamError("openai request failed: timeout")

    resp = client.post("/api/upload", files={"file": ("a.txt", b"some meaningful text", "text/plain")})

    assert resp.status_code == 200
    assert resp.json()["extracted_text"] == "some meaningful text"
    assert resp.json()["ai_summary"] is None


def test_missing_file_is_400(client):
    assert client.post("/api/upload").status_code == 400
    resp = client.post("/api/upload", data={"other": "field"})
    assert resp.status_code == 400
    assert resp.json() == {"error": "No file uploaded"}
    assert client.post("/api/upload", json={}).status_code == 400


def test_storage_failure_is_500(client):
    class BrokenStorage:
        def upload(self, data, filename, content_type=""):
            raise UpstreamError("Cloudinary upload failed: down")

    client.app.dependency_overrides[main.get_storage] = lambda: BrokenStorage()

    resp = client.post("/api/upload", files={"file": ("a.txt", b"hello there", "text/plain")})
    assert resp.status_code == 500
    assert resp.json() == {"error": "Cloudinary upload failed: down"}


class FakeDownload:
    def __init__(self, content, content_type, status_code=200):
        self.content = content
        self.headers = {"content-type": content_type}
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Client Error")


def test_upload_from_url(client, monkeypatch):
    fetched = []

    def fake_get(url, timeout=None):
        fetched.append(url)
        return FakeDownload(b"col\n1", "text/csv")

    monkeypatch.setattr(main.requests, "get", fake_get)

    resp = client.post("/api/upload", json={"url": "https://example.com/data/report.csv"})

    assert resp.status_code == 200
    body = resp.json()
    assert fetched == ["https://example.com/data/report.csv"]
    assert body["file_name"] == "report.csv"
    assert body["extracted_text"] == "col\n1"


def test_upload_from_url_fetch_failure(client, monkeypatch):
    monkeypatch.setattr(main.requests, "get", lambda url, timeout=None: FakeDownload(b"", "text/html", 404))

    resp = client.post("/api/upload", json={"url": "https://example.com/missing.pdf"})
    assert resp.status_code == 500
    assert "Failed to fetch" in resp.json()["error"]


def test_upload_rejects_non_http_url(client):
    resp = client.post("/api/upload", json={"url": "file:///etc/passwd"})
    assert resp.status_code == 400


def test_upload_with_misconfigured_cloudinary(client, monkeypatch):
    cfg = get_settings()
    monkeypatch.setattr(cfg, "storage_backend", "cloudinary")
    monkeypatch.setattr(cfg, "cloudinary_cloud_name", None)
    main.app.dependency_overrides.pop(main.get_storage)
    main.get_storage.cache_clear()
    try:
        resp = client.post("/api/upload", files={"file": ("a.txt", b"hello", "text/plain")})
    finally:
        main.get_storage.cache_clear()

    assert resp.status_code == 500
    assert "CLOUDINARY" in resp.json()["error"]
