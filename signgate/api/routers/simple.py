from __future__ import annotations

"""
SignGate • Allow-listed links
=============================

Route Index
-----------
- GET|HEAD /{first}/{path}  → 302 presigned redirect | 404 when `first` is not allow-listed
"""

from fastapi import APIRouter, Request, Response
from starlette.concurrency import run_in_threadpool

from signgate.api.paths import raw_request_path
from signgate.core.config import settings
from signgate.services.dispatcher import SimpleDispatcher

router = APIRouter(tags=["Allow-listed links"])
__all__ = ["router", "get_dispatcher"]


def get_dispatcher(request: Request) -> SimpleDispatcher:
    """Dispatcher for the app's settings (falls back to the process-wide ones)."""
    cfg = getattr(request.app.state, "settings", None) or settings
    return SimpleDispatcher.from_settings(cfg)


@router.api_route(
    "/{full_path:path}",
    methods=["GET", "HEAD"],
    summary="Redirect an allow-listed path",
    responses={
        302: {"description": "Redirect to presigned object URL"},
        404: {"description": "First path segment not allow-listed"},
        503: {"description": "Storage unavailable"},
    },
)
async def serve_simple(full_path: str, request: Request) -> Response:
    """Presign the object at the request path for the configured duration."""
    return await run_in_threadpool(get_dispatcher(request).handle, raw_request_path(request))
