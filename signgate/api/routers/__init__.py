from __future__ import annotations

"""Gateway routers; exactly one is mounted per process (see `GATEWAY_MODE`)."""

from fastapi import APIRouter

from signgate.api.routers import signed, simple


def router_for_mode(mode: str) -> APIRouter:
    if mode == "signed":
        return signed.router
    if mode == "simple":
        return simple.router
    raise ValueError(f"Unknown gateway mode: {mode!r}")


__all__ = ["router_for_mode", "signed", "simple"]
