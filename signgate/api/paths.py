from __future__ import annotations

"""Request path helpers shared by the gateway routers."""

from fastapi import Request


def raw_request_path(request: Request) -> str:
    """Request path exactly as sent (percent-encoded), without the query string."""
    raw = request.scope.get("raw_path")
    if raw:
        return raw.decode("latin-1").split("?", 1)[0]
    return request.url.path


__all__ = ["raw_request_path"]
