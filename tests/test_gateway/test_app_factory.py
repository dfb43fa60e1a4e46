# tests/test_gateway/test_app_factory.py

import importlib
import uuid

import pytest
from fastapi.testclient import TestClient

from signgate.core.config import Settings
from signgate.main import create_app, validate_settings


def _settings(**overrides) -> Settings:
    base = {
        "GATEWAY_MODE": "signed",
        "AWS_BUCKET_NAME": "unit-test-bucket",
        "HASH_SALTS": "alpha,beta",
        "ALLOWED_FIRST_PATHS": "public",
    }
    base.update(overrides)
    return Settings(**base)


# ─────────────────────────────────────────────────────────────
# Build-time validation
# ─────────────────────────────────────────────────────────────

def test_signed_mode_without_salts_refuses_to_start():
    with pytest.raises(ValueError):
        create_app(_settings(HASH_SALTS=""))


def test_simple_mode_does_not_need_salts():
    validate_settings(_settings(GATEWAY_MODE="simple", HASH_SALTS=""))


# ─────────────────────────────────────────────────────────────
# Health endpoints & middleware
# ─────────────────────────────────────────────────────────────

def test_meta_endpoints_are_not_shadowed_by_gateway_routes():
    with TestClient(create_app(_settings(GATEWAY_MODE="simple"))) as client:
        assert client.get("/healthz").json() == {"ok": True}

        ready = client.get("/readyz").json()
        assert ready["ready"] is True and ready["mode"] == "simple"

        m = client.get("/metrics")
        assert m.status_code == 200
        assert "gateway_requests_total" in m.text


def test_request_id_is_echoed_or_generated():
    with TestClient(create_app(_settings())) as client:
        rid = str(uuid.uuid4())
        r = client.get("/healthz", headers={"X-Request-ID": rid})
        assert r.headers["X-Request-ID"] == rid

        r = client.get("/healthz", headers={"X-Request-ID": "not-a-uuid"})
        generated = r.headers["X-Request-ID"]
        assert generated != "not-a-uuid"
        assert uuid.UUID(generated).version == 4


def test_request_id_is_exposed_on_request_state():
    from fastapi import FastAPI, Request

    from signgate.middleware import request_id as rid_mod

    app = FastAPI()
    app.add_middleware(rid_mod.RequestIDMiddleware)

    @app.get("/echo")
    async def echo(request: Request) -> dict[str, str]:
        return {"rid": request.state.request_id}

    r = TestClient(app).get("/echo")
    assert r.json()["rid"] == r.headers["X-Request-ID"]
    assert rid_mod.__all__ == ["RequestIDMiddleware"]


def test_server_header_is_stripped():
    with TestClient(create_app(_settings())) as client:
        assert "server" not in client.get("/healthz").headers


def test_signed_mode_mounts_signed_routes(monkeypatch):
    dispatcher = importlib.import_module("signgate.services.dispatcher")
    monkeypatch.setattr(dispatcher, "_now_ms", lambda: 10**13, raising=True)

    with TestClient(create_app(_settings())) as client:
        r = client.get("/1000/ABCDEF/media/a.ts", follow_redirects=False)
        assert r.status_code == 410
        assert r.headers["content-type"].startswith("application/problem+json")
        assert r.json()["title"] == "Link expired"


def test_unknown_route_shape_is_problem_json_404():
    with TestClient(create_app(_settings())) as client:
        r = client.get("/only-one-segment")
        assert r.status_code == 404
        assert r.headers["content-type"].startswith("application/problem+json")
