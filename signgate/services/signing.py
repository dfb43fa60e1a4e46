from __future__ import annotations

"""
Capability tokens for time-limited object links.

A signed link looks like ``/{expiry}/{digest}/{resource_path}`` where

- ``expiry`` is epoch milliseconds (decimal),
- ``digest`` is ``DIGEST(str(expiry) + resource_path + salt)`` as uppercase hex,
- ``resource_path`` is the rest of the raw request path.

Any salt in the configured (ordered) set may have produced the digest, which is
what makes salt rotation possible: put the new salt first, keep the old one
listed until the links it signed have expired.

The default digest is MD5 over the plain concatenation, kept for compatibility
with links already in circulation. It is a capability scheme rather than a MAC;
``hmac-sha256`` is available for deployments free to reissue their links.
"""

import hashlib
import hmac
import re
from enum import Enum
from typing import Callable, Dict, Iterable, Sequence
from urllib.parse import quote

from pydantic import BaseModel, ConfigDict

DigestFunction = Callable[[int, str, str], str]

_EXPIRY_RE = re.compile(r"^\d{1,19}$")
_PATH_SAFE = "/:@!$&'()*+,;=-._~"


class MalformedTokenError(ValueError):
    """The link prefix is not ``/{digits}/{digest}/``."""


class TokenStatus(str, Enum):
    VALID = "valid"
    EXPIRED = "expired"
    INVALID = "invalid"


class CapabilityToken(BaseModel):
    """Token fields as extracted from a request path."""

    model_config = ConfigDict(frozen=True)

    expiry: int
    digest: str
    resource_path: str


# ─────────────────────────────────────────────────────────────
# Digest functions
# ─────────────────────────────────────────────────────────────
def md5_digest(expiry: int, resource_path: str, secret: str) -> str:
    material = f"{expiry}{resource_path}{secret}".encode("utf-8")
    return hashlib.md5(material).hexdigest().upper()


def hmac_sha256_digest(expiry: int, resource_path: str, secret: str) -> str:
    material = f"{expiry}:{resource_path}".encode("utf-8")
    return hmac.new(secret.encode("utf-8"), material, hashlib.sha256).hexdigest().upper()


DIGEST_FUNCTIONS: Dict[str, DigestFunction] = {
    "md5": md5_digest,
    "hmac-sha256": hmac_sha256_digest,
}


def get_digest_function(name: str) -> DigestFunction:
    try:
        return DIGEST_FUNCTIONS[name.lower()]
    except KeyError:
        raise ValueError(f"Unknown digest algorithm: {name!r}") from None


def compute_digest(
    expiry: int,
    resource_path: str,
    secret: str,
    *,
    digest_fn: DigestFunction = md5_digest,
) -> str:
    """Digest binding `expiry` and `resource_path` to `secret` (uppercase hex)."""
    return digest_fn(int(expiry), resource_path, secret)


# ─────────────────────────────────────────────────────────────
# Verification
# ─────────────────────────────────────────────────────────────
def verify(
    token: CapabilityToken,
    secrets: Iterable[str],
    now_ms: int,
    *,
    digest_fn: DigestFunction = md5_digest,
) -> TokenStatus:
    """Check `token` against the ordered salt set at time `now_ms`.

    Expiry is decided first and independently of the digest: a link is only
    usable while ``now_ms < expiry``. Otherwise each salt is tried in order and
    the first match wins.
    """
    if token.expiry <= now_ms:
        return TokenStatus.EXPIRED

    submitted = token.digest.encode("utf-8")
    for secret in secrets:
        candidate = compute_digest(token.expiry, token.resource_path, secret, digest_fn=digest_fn)
        if hmac.compare_digest(candidate.encode("utf-8"), submitted):
            return TokenStatus.VALID
    return TokenStatus.INVALID


# ─────────────────────────────────────────────────────────────
# Path helpers
# ─────────────────────────────────────────────────────────────
def parse_signed_path(raw_path: str) -> CapabilityToken:
    """Split ``/{expiry}/{digest}/{resource_path}`` into a token.

    `raw_path` is the path exactly as received (still percent-encoded); the
    resource path is everything after the second segment's trailing slash.
    """
    parts = (raw_path or "").split("/", 3)
    if len(parts) < 4 or parts[0] != "":
        raise MalformedTokenError("expected /{expiry}/{digest}/{path}")
    _, expiry_s, digest, resource_path = parts
    if not _EXPIRY_RE.fullmatch(expiry_s):
        raise MalformedTokenError("expiry must be epoch milliseconds")
    if not digest:
        raise MalformedTokenError("digest is empty")
    return CapabilityToken(expiry=int(expiry_s), digest=digest, resource_path=resource_path)


def build_signed_path(
    expiry: int,
    resource_path: str,
    secret: str,
    *,
    digest_fn: DigestFunction = md5_digest,
) -> str:
    """Mint the path part of a signed link for `resource_path` (an object key).

    The key is percent-encoded first; the digest covers the encoded form, which
    is what the gateway sees in the request path.
    """
    resource_path = quote(resource_path.lstrip("/"), safe=_PATH_SAFE)
    digest = compute_digest(expiry, resource_path, secret, digest_fn=digest_fn)
    return f"/{int(expiry)}/{digest}/{resource_path}"


def first_secret(secrets: Sequence[str]) -> str:
    """The salt new links are signed with (the head of the rotation list)."""
    if not secrets:
        raise ValueError("no signing salts configured")
    return secrets[0]


__all__ = [
    "CapabilityToken",
    "DigestFunction",
    "DIGEST_FUNCTIONS",
    "MalformedTokenError",
    "TokenStatus",
    "build_signed_path",
    "compute_digest",
    "first_secret",
    "get_digest_function",
    "hmac_sha256_digest",
    "md5_digest",
    "parse_signed_path",
    "verify",
]
