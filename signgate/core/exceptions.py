# signgate/core/exceptions.py
from __future__ import annotations

"""
SignGate — Application Exceptions
=================================
A small, consistent layer on top of FastAPI/Starlette's `HTTPException` that
lets the dispatcher map each terminal outcome to one status code while keeping
the response body free of internal detail.

Taxonomy
--------
- 410 `ExpiredTokenError`          → link expiry is in the past
- 401 `InvalidSignatureError`      → digest matches no configured salt
- 400 `MalformedLinkError`         → expiry/digest segment not well-formed
- 400 `UnsupportedContentTypeError`→ object type is neither playlist nor redirectable
- 404 `PathNotAllowedError`        → simple mode: first segment not allow-listed
- 404 `ObjectNotFoundError`        → object missing in the store
- 502 `ManifestParseError`         → stored playlist is not a valid media playlist
- 503 `PresignFailureError`        → presigned URL could not be generated
- 503 `StoreUnavailableError`      → object store unreachable / misconfigured

Usage
-----
    raise ExpiredTokenError()
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException, status

__all__ = [
    "AppException",
    "ExpiredTokenError",
    "InvalidSignatureError",
    "MalformedLinkError",
    "UnsupportedContentTypeError",
    "PathNotAllowedError",
    "ObjectNotFoundError",
    "ManifestParseError",
    "PresignFailureError",
    "StoreUnavailableError",
]


# ──────────────────────────────────────────────────────────────
# 📦 Core: AppException
# ──────────────────────────────────────────────────────────────
class AppException(HTTPException):
    """Base application-level exception with optional metadata.

    Attributes
    -----------
    status_code : int
        HTTP status code.
    message : str
        Client-safe message (serialized as `detail` as well).
    code : int
        Internal/typed error code. Defaults to `status_code`.
    details : Any
        Machine-readable, non-sensitive details.
    headers : dict | None
        Optional response headers.
    """

    status_code_default: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    message_default: str = "Internal Server Error"

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        status_code: Optional[int] = None,
        code: Optional[int] = None,
        details: Optional[Any] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        sc = int(status_code or self.status_code_default)
        msg = message or self.message_default
        super().__init__(status_code=sc, detail=msg, headers=headers)
        self.code: int = int(code or sc)
        self.message: str = msg
        self.details: Optional[Any] = details

    @property
    def outcome(self) -> str:
        """Short label used for metrics and logs."""
        name = type(self).__name__
        return name[:-5].lower() if name.endswith("Error") else name.lower()

    def to_problem(self, *, instance: str = "") -> Dict[str, Any]:
        """Return a dict matching the problem+json shape used by the handlers."""
        body: Dict[str, Any] = {
            "type": "about:blank",
            "title": self.message,
            "detail": self.message,
            "status": self.status_code,
            "code": self.code,
            "instance": instance,
        }
        if self.details is not None:
            body["details"] = self.details
        return body


# ──────────────────────────────────────────────────────────────
# 🔑 Capability token outcomes
# ──────────────────────────────────────────────────────────────
class ExpiredTokenError(AppException):
    """Link expired; a benign lifecycle event."""

    status_code_default = status.HTTP_410_GONE
    message_default = "Link expired"


class InvalidSignatureError(AppException):
    """Digest does not match; possible tampering."""

    status_code_default = status.HTTP_401_UNAUTHORIZED
    message_default = "Invalid signature"


class MalformedLinkError(AppException):
    status_code_default = status.HTTP_400_BAD_REQUEST
    message_default = "Malformed link"


class PathNotAllowedError(AppException):
    status_code_default = status.HTTP_404_NOT_FOUND
    message_default = "not found"


# ──────────────────────────────────────────────────────────────
# 📦 Object / content outcomes
# ──────────────────────────────────────────────────────────────
class UnsupportedContentTypeError(AppException):
    status_code_default = status.HTTP_400_BAD_REQUEST
    message_default = "Content type not supported"


class ObjectNotFoundError(AppException):
    status_code_default = status.HTTP_404_NOT_FOUND
    message_default = "Object not found"


class ManifestParseError(AppException):
    """The stored playlist could not be parsed; nothing partial is served."""

    status_code_default = status.HTTP_502_BAD_GATEWAY
    message_default = "Playlist could not be processed"


class PresignFailureError(AppException):
    status_code_default = status.HTTP_503_SERVICE_UNAVAILABLE
    message_default = "Could not sign object URL"


class StoreUnavailableError(AppException):
    status_code_default = status.HTTP_503_SERVICE_UNAVAILABLE
    message_default = "Storage unavailable"
