# tests/test_gateway/test_simple_gateway.py

import importlib
from types import SimpleNamespace

from fastapi import FastAPI
from fastapi.testclient import TestClient

from signgate.core.exception_handlers import install_exception_handlers
from signgate.utils.aws import S3StorageError, _normalize_key


class FakeS3:
    """Presign-only stand-in for the S3 wrapper used in simple mode."""

    def __init__(self, *, raise_on_presign: Exception | None = None):
        self.bucket = "unit-test-bucket"
        self._raise_on_presign = raise_on_presign
        self.presign_calls = []

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        return None

    def presigned_get(self, key, *, expires_in: int, bucket=None) -> str:
        k = _normalize_key(key)
        self.presign_calls.append({"key": k, "expires_in": expires_in, "bucket": bucket})
        if self._raise_on_presign:
            raise self._raise_on_presign
        return f"https://signed.example/{k}?e={expires_in}"


def _mk_app(monkeypatch, *, fake_s3: FakeS3, allowed=("public", "media"), minutes: int = 60):
    mod = importlib.import_module("signgate.services.dispatcher")
    monkeypatch.setattr(mod, "_s3", lambda config=None: fake_s3, raising=True)

    router_mod = importlib.import_module("signgate.api.routers.simple")
    app = FastAPI()
    app.state.settings = SimpleNamespace(
        ALLOWED_FIRST_PATHS=list(allowed),
        PRESIGN_DURATION_MINUTES=minutes,
        presign_duration_seconds=minutes * 60,
    )
    install_exception_handlers(app)
    app.include_router(router_mod.router)
    return app, TestClient(app)


# ─────────────────────────────────────────────────────────────
# Tests
# ─────────────────────────────────────────────────────────────

def test_allow_listed_prefix_redirects_with_configured_duration(monkeypatch):
    fake_s3 = FakeS3()
    _app, client = _mk_app(monkeypatch, fake_s3=fake_s3, minutes=15)

    r = client.get("/public/videos/intro.mp4", follow_redirects=False)
    assert r.status_code == 302
    assert r.headers["location"] == "https://signed.example/public/videos/intro.mp4?e=900"
    assert r.headers.get("Cache-Control") == "no-store"
    assert "Access-Control-Allow-Origin" not in r.headers
    assert fake_s3.presign_calls == [{"key": "public/videos/intro.mp4", "expires_in": 900, "bucket": "unit-test-bucket"}]


def test_unlisted_prefix_is_404_and_never_presigns(monkeypatch):
    fake_s3 = FakeS3()
    _app, client = _mk_app(monkeypatch, fake_s3=fake_s3)

    for path in ("/private/secret.mp4", "/", "/publicity/a.mp4"):
        r = client.get(path, follow_redirects=False)
        assert r.status_code == 404, path
    assert fake_s3.presign_calls == []


def test_encoded_key_is_decoded_once(monkeypatch):
    fake_s3 = FakeS3()
    _app, client = _mk_app(monkeypatch, fake_s3=fake_s3)

    r = client.get("/media/my%20clip.mp4", follow_redirects=False)
    assert r.status_code == 302
    assert fake_s3.presign_calls[0]["key"] == "media/my clip.mp4"


def test_presign_failure_is_503(monkeypatch):
    fake_s3 = FakeS3(raise_on_presign=S3StorageError("boom"))
    _app, client = _mk_app(monkeypatch, fake_s3=fake_s3)
    r = client.get("/public/a.mp4", follow_redirects=False)
    assert r.status_code == 503
    assert "boom" not in r.text


def test_head_is_redirected_too(monkeypatch):
    _app, client = _mk_app(monkeypatch, fake_s3=FakeS3())
    assert client.head("/public/a.mp4", follow_redirects=False).status_code == 302
