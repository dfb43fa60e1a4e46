from __future__ import annotations

"""
SignGate • Signed links
=======================

Route Index
-----------
- GET|HEAD /{expiry}/{digest}/{path}  → 200 rewritten playlist | 302 presigned redirect

Status codes
------------
- 410 expired link, 401 digest mismatch, 400 malformed link / unsupported type,
  404 missing object, 502 unparseable playlist, 503 storage or signing failure.
"""

from fastapi import APIRouter, Request, Response
from starlette.concurrency import run_in_threadpool

from signgate.api.paths import raw_request_path
from signgate.core.config import settings
from signgate.services.dispatcher import SignedDispatcher

router = APIRouter(tags=["Signed links"])
__all__ = ["router", "get_dispatcher"]


def get_dispatcher(request: Request) -> SignedDispatcher:
    """Dispatcher for the app's settings (falls back to the process-wide ones)."""
    cfg = getattr(request.app.state, "settings", None) or settings
    return SignedDispatcher.from_settings(cfg)


@router.api_route(
    "/{expiry}/{digest}/{resource_path:path}",
    methods=["GET", "HEAD"],
    summary="Serve a signed link",
    responses={
        200: {"description": "Rewritten playlist", "content": {"audio/mpegurl": {}}},
        302: {"description": "Redirect to presigned object URL"},
        400: {"description": "Malformed link or unsupported content type"},
        401: {"description": "Invalid signature"},
        404: {"description": "Object not found"},
        410: {"description": "Link expired"},
        502: {"description": "Stored playlist could not be parsed"},
        503: {"description": "Storage unavailable"},
    },
)
async def serve_signed(expiry: str, digest: str, resource_path: str, request: Request) -> Response:
    """Verify the link, then rewrite (playlists) or redirect (binary objects)."""
    return await run_in_threadpool(get_dispatcher(request).handle, raw_request_path(request))
