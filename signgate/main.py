# signgate/main.py
from __future__ import annotations

"""
# SignGate — Application Entrypoint (FastAPI)

ASGI application factory and lifecycle for the signed-access gateway.

## Design Goals
- Deterministic, testable **app factory** (`create_app`) with explicit lifespan.
- One gateway mode per process: `signed` (`/{expiry}/{digest}/**`) or
  `simple` (`/{first}/**`); the path shapes overlap so they never share an app.
- Middleware order: 1) request id → 2) strip `Server` header.
- Centralized problem+json exception handling.
- Configuration validated at build time (signed mode without salts refuses to start).

## Health endpoints
- `/healthz`: liveness (process up).
- `/readyz`: readiness (bucket + mode credentials configured).
- `/metrics`: Prometheus exposition.
"""

from contextlib import asynccontextmanager
from datetime import timedelta
from typing import AsyncIterator, Callable, Optional
import os
import time

from fastapi import FastAPI, Request
from loguru import logger
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.responses import Response

# -- Logging bootstrap (Loguru + stdlib intercept) ----------------------------
from signgate.core import logger as _logsetup  # noqa: F401
from signgate.api.routers import router_for_mode
from signgate.core.config import Settings, settings as default_settings
from signgate.core.exception_handlers import install_exception_handlers
from signgate.middleware.request_id import RequestIDMiddleware
from signgate.services.signing import get_digest_function


# ─────────────────────────────────────────────────────────────────────────────
# ✅ Configuration checks
# ─────────────────────────────────────────────────────────────────────────────
def validate_settings(cfg: Settings) -> None:
    """Fail fast on configurations the selected mode cannot serve."""
    if cfg.GATEWAY_MODE == "signed":
        if not cfg.HASH_SALTS:
            raise ValueError("HASH_SALTS must be set in signed mode")
        get_digest_function(cfg.DIGEST_ALGORITHM)
    elif not cfg.ALLOWED_FIRST_PATHS:
        logger.warning("ALLOWED_FIRST_PATHS is empty; every simple-mode request will 404")


def _log_startup(cfg: Settings) -> None:
    logger.info("Gateway config: {}", cfg.describe())
    if cfg.GATEWAY_MODE == "signed":
        now = int(time.time() * 1000)
        hour = int(timedelta(hours=1).total_seconds() * 1000)
        logger.info("Current millis {} in an hour: {} in a day: {}", now, now + hour, now + 24 * hour)


# ─────────────────────────────────────────────────────────────────────────────
# 🔄 Lifespan
# ─────────────────────────────────────────────────────────────────────────────
def _make_lifespan(cfg: Settings):
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info("✅ {} starting up ({} mode)", cfg.PROJECT_NAME, cfg.GATEWAY_MODE)
        _log_startup(cfg)
        try:
            yield
        finally:
            logger.info("🛑 {} shutting down", cfg.PROJECT_NAME)

    return lifespan


# ─────────────────────────────────────────────────────────────────────────────
# 🏗️ App factory
# ─────────────────────────────────────────────────────────────────────────────
def create_app(cfg: Optional[Settings] = None) -> FastAPI:
    """
    Build and configure the FastAPI app instance.

    Args:
        cfg: settings to build from (defaults to the process-wide `settings`).

    Returns:
        FastAPI: application with middleware, exception handlers, health endpoints and
        the router of the configured gateway mode.
    """
    cfg = cfg or default_settings
    validate_settings(cfg)

    docs_url = "/docs" if cfg.ENABLE_DOCS else None
    app = FastAPI(
        title=cfg.PROJECT_NAME,
        version=cfg.VERSION,
        docs_url=docs_url,
        redoc_url=None,
        openapi_url="/openapi.json" if cfg.ENABLE_DOCS else None,
        lifespan=_make_lifespan(cfg),
    )
    app.state.settings = cfg

    # ── Middlewares (order matters) ─────────────────────────────────────────
    app.add_middleware(RequestIDMiddleware)

    @app.middleware("http")
    async def _strip_server_header(request: Request, call_next: Callable) -> Response:
        """Remove the `Server` header to avoid leaking implementation details."""
        response: Response = await call_next(request)
        if "server" in response.headers:
            del response.headers["server"]
        return response

    install_exception_handlers(app)

    # ── Meta endpoints (registered before the catch-all gateway routes) ─────
    @app.get("/healthz", tags=["meta"], include_in_schema=False)
    async def healthz() -> dict[str, bool]:
        """Liveness check; no external calls."""
        return {"ok": True}

    @app.get("/readyz", tags=["meta"], include_in_schema=False)
    async def readyz() -> dict[str, object]:
        """Readiness: the settings this mode needs are present."""
        bucket_ok = bool(cfg.AWS_BUCKET_NAME)
        if cfg.GATEWAY_MODE == "signed":
            auth_ok = bool(cfg.HASH_SALTS)
        else:
            auth_ok = bool(cfg.ALLOWED_FIRST_PATHS)
        return {
            "ready": bucket_ok and auth_ok,
            "checks": {"bucket": bucket_ok, "auth": auth_ok},
            "mode": cfg.GATEWAY_MODE,
        }

    @app.get("/metrics", tags=["meta"], include_in_schema=False)
    async def metrics() -> Response:
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # ── Gateway routes ──────────────────────────────────────────────────────
    app.include_router(router_for_mode(cfg.GATEWAY_MODE))
    return app


__all__ = ["create_app", "validate_settings"]


# Local dev runner (prefer: `uvicorn signgate.main:create_app --factory`)
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "signgate.main:create_app",
        factory=True,
        host="0.0.0.0",
        port=int(os.getenv("PORT", "8000")),
        reload=os.getenv("RELOAD", "0") == "1",
        workers=int(os.getenv("WORKERS", "1")),
        log_level=os.getenv("LOG_LEVEL", "info").lower(),
    )
