"""Utility helpers for the SignGate gateway.

Submodules:
- aws: request-scoped S3 client (fetch, abort, presign)
"""

__all__: list[str] = []
