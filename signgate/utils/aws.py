# signgate/utils/aws.py
from __future__ import annotations

"""
🧊 SignGate • S3 Utilities
==========================

Thin, request-scoped wrapper over boto3 used by the gateway dispatchers.

🎯 Goals
--------
- One client per request, always released (`with S3Client() as s3:`)
- Object fetch returning content type + streaming body in a single GET
- Explicit body release: read fully (playlists) or abort (redirects)
- Presigned GET (SigV4) with a caller-supplied lifetime
- Bounded connect/read timeouts, retries off unless configured
- Zero secret leakage in logs

🔗 Contract
-----------
- `S3Client.get_object(key)`          → `StoredObject`
- `S3Client.presigned_get(key, ...)`  → URL string
- `S3Client.close()` / context manager
- Errors: `S3StorageError`, `ObjectMissingError`
"""

from typing import Any, Dict, Optional
import logging
import re

import boto3
import botocore.exceptions
from botocore.config import Config as BotoConfig

from signgate.core.config import settings

logger = logging.getLogger(__name__)

# SigV4 presigned URLs are capped at 7 days
MAX_PRESIGN_SECONDS = 7 * 24 * 3600

# ─────────────────────────────────────────────────────────────────────────────
# 🧱 Exceptions
# ─────────────────────────────────────────────────────────────────────────────


class S3StorageError(RuntimeError):
    """Raised when a storage operation fails (network, auth, policy, etc.)."""


class ObjectMissingError(S3StorageError):
    """The requested key does not exist in the bucket."""


class InvalidKeyError(S3StorageError):
    """The key is empty, climbs out of the bucket or has control characters."""


_MISSING_CODES = {"404", "NoSuchKey", "NotFound"}

# ─────────────────────────────────────────────────────────────────────────────
# 🧰 Key validation
# ─────────────────────────────────────────────────────────────────────────────

_CONTROL_RE = re.compile(r"[\x00-\x1f\x7f]")


def _normalize_key(key: str) -> str:
    """
    Normalize and validate S3 object keys.

    Steps
    -----
    1) Coerce to str, remove leading '/'
    2) Collapse '//' runs
    3) Reject empty keys, path traversal segments and control characters

    Raises
    ------
    InvalidKeyError
        If the key is unusable.
    """
    k = str(key or "").lstrip("/")
    k = re.sub(r"/{2,}", "/", k)
    if not k:
        raise InvalidKeyError("Invalid storage key: empty")
    if ".." in k.split("/"):
        raise InvalidKeyError("Invalid storage key: path traversal detected")
    if _CONTROL_RE.search(k):
        raise InvalidKeyError("Invalid storage key: contains control characters")
    return k


def _secret_value(v: Any) -> Optional[str]:
    """Return the underlying secret string for SecretStr or plain values."""
    if v is None:
        return None
    return v.get_secret_value() if hasattr(v, "get_secret_value") else str(v)


def clamp_presign_seconds(seconds: int) -> int:
    """Keep a presign lifetime within what SigV4 accepts (1s .. 7d)."""
    return max(1, min(int(seconds), MAX_PRESIGN_SECONDS))


# ─────────────────────────────────────────────────────────────────────────────
# 📄 Fetched object
# ─────────────────────────────────────────────────────────────────────────────


class StoredObject:
    """
    Metadata plus the still-open body of a fetched object.

    The body holds a pooled HTTP connection until it is either read to the end
    (`read_text`) or aborted (`abort`). Leaving the `with` block aborts it if
    neither happened.
    """

    def __init__(self, key: str, content_type: str, body: Any, content_length: Optional[int] = None) -> None:
        self.key = key
        self.content_type = content_type
        self.content_length = content_length
        self._body = body
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    def read_bytes(self) -> bytes:
        if self._released:
            raise S3StorageError("Object body already released")
        try:
            return self._body.read()
        except Exception as e:
            raise S3StorageError(f"Failed to read object body: {e}") from e
        finally:
            self._close()

    def read_text(self, encoding: str = "utf-8") -> str:
        data = self.read_bytes()
        try:
            return data.decode(encoding)
        except UnicodeDecodeError as e:
            raise S3StorageError(f"Object body is not {encoding} text") from e

    def abort(self) -> None:
        """Drop the connection without reading the rest of the body."""
        if not self._released:
            logger.debug("Aborting body read for key=%s", self.key)
        self._close()

    def _close(self) -> None:
        if self._released:
            return
        self._released = True
        try:
            self._body.close()
        except Exception as e:
            logger.warning("Closing object body failed (non-fatal): %s", e)

    def __enter__(self) -> "StoredObject":
        return self

    def __exit__(self, *exc_info) -> None:
        self.abort()


# ─────────────────────────────────────────────────────────────────────────────
# 📦 S3 Client
# ─────────────────────────────────────────────────────────────────────────────


class S3Client:
    """
    Request-scoped S3 wrapper with safe defaults.

    Parameters
    ----------
    bucket : str | None
        Source bucket. Defaults to `settings.AWS_BUCKET_NAME`.
    region_name : str | None
        Defaults to `settings.AWS_REGION`.
    endpoint_url : str | None
        Custom S3-compatible endpoint (LocalStack/MinIO). Defaults to
        `settings.AWS_S3_ENDPOINT_URL`.
    config : Settings | None
        Settings to read bucket, region, credentials and timeouts from.
        Defaults to the process-wide `settings`.

    Notes
    -----
    * Credentials: explicit keys from settings when both are present,
      otherwise the standard AWS credential chain (env, profile, role).
    * Timeouts come from settings; retries default to a single attempt so a
      slow store fails the request instead of stretching it.
    """

    def __init__(
        self,
        bucket: Optional[str] = None,
        *,
        region_name: Optional[str] = None,
        endpoint_url: Optional[str] = None,
        config: Any = None,
    ) -> None:
        conf = config or settings
        self.bucket = bucket or conf.AWS_BUCKET_NAME
        if not self.bucket:
            raise S3StorageError("AWS_BUCKET_NAME not configured")

        self.region = region_name or conf.AWS_REGION
        endpoint_cfg = endpoint_url or conf.AWS_S3_ENDPOINT_URL

        cfg = BotoConfig(
            signature_version="s3v4",
            retries={"max_attempts": int(conf.S3_MAX_ATTEMPTS), "mode": "standard"},
            connect_timeout=conf.S3_CONNECT_TIMEOUT,
            read_timeout=conf.S3_READ_TIMEOUT,
            s3={"addressing_style": "path" if endpoint_cfg else "virtual"},
        )

        ak = conf.AWS_ACCESS_KEY_ID
        sk = _secret_value(conf.AWS_SECRET_ACCESS_KEY)
        st = _secret_value(conf.AWS_SESSION_TOKEN)

        client_kwargs: Dict[str, Any] = {"config": cfg, "region_name": self.region}
        if endpoint_cfg:
            client_kwargs["endpoint_url"] = endpoint_cfg
        if ak and sk:
            client_kwargs["aws_access_key_id"] = ak
            client_kwargs["aws_secret_access_key"] = sk
            if st:
                client_kwargs["aws_session_token"] = st

        try:
            self.client = boto3.client("s3", **client_kwargs)
        except Exception as e:  # pragma: no cover
            raise S3StorageError(f"Failed to create S3 client: {e}") from e

        self._closed = False
        self._repr = f"S3Client(bucket={self.bucket}, region={self.region}, endpoint={'yes' if endpoint_cfg else 'no'})"

    # ────────────────────────────────────────────────────────────────────────
    # 📥 Fetch
    # ────────────────────────────────────────────────────────────────────────

    def get_object(self, key: str) -> StoredObject:
        """
        GET the object; metadata is available immediately, the body stays open.

        Raises
        ------
        ObjectMissingError
            Key does not exist.
        S3StorageError
            Any other failure (auth, network, timeout).
        """
        k = _normalize_key(key)
        try:
            resp = self.client.get_object(Bucket=self.bucket, Key=k)
        except botocore.exceptions.ClientError as e:
            code = str(e.response.get("Error", {}).get("Code", ""))
            if code in _MISSING_CODES:
                raise ObjectMissingError(f"No such key: {k}") from e
            raise S3StorageError(f"get_object failed ({code or 'unknown'})") from e
        except botocore.exceptions.BotoCoreError as e:
            raise S3StorageError(f"get_object failed: {e}") from e

        content_type = str(resp.get("ContentType") or "")
        logger.debug("Fetched key=%s content_type=%s", k, content_type)
        return StoredObject(k, content_type, resp["Body"], resp.get("ContentLength"))

    # ────────────────────────────────────────────────────────────────────────
    # 🔐 Signed URL helpers
    # ────────────────────────────────────────────────────────────────────────

    def presigned_get(self, key: str, *, expires_in: int, bucket: Optional[str] = None) -> str:
        """
        Generate a presigned **GET** URL.

        Parameters
        ----------
        key : str
            Object key (normalized).
        expires_in : int
            TTL seconds, clamped to 1s..7d.
        bucket : str | None
            Override bucket (defaults to the client's bucket).
        """
        k = _normalize_key(key)
        try:
            return self.client.generate_presigned_url(
                ClientMethod="get_object",
                Params={"Bucket": bucket or self.bucket, "Key": k},
                ExpiresIn=clamp_presign_seconds(expires_in),
            )
        except Exception as e:
            raise S3StorageError(f"Failed to create presigned GET: {e}") from e

    # ────────────────────────────────────────────────────────────────────────
    # ♻️ Lifecycle
    # ────────────────────────────────────────────────────────────────────────

    def close(self) -> None:
        """Release the client's HTTP connection pool (idempotent)."""
        if self._closed:
            return
        self._closed = True
        try:
            self.client.close()
        except Exception as e:
            logger.warning("S3 client close failed (non-fatal): %s", e)

    def __enter__(self) -> "S3Client":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def __repr__(self) -> str:  # pragma: no cover
        return self._repr


__all__ = [
    "MAX_PRESIGN_SECONDS",
    "InvalidKeyError",
    "ObjectMissingError",
    "S3Client",
    "S3StorageError",
    "StoredObject",
    "clamp_presign_seconds",
]
