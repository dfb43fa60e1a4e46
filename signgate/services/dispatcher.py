from __future__ import annotations

"""
Gateway request handling.

Signed mode (`SignedDispatcher`)
--------------------------------
    Received → TokenChecked(expired | invalid | valid) → MetadataFetched
             → Dispatched(rewritten | redirected | rejected)

1) Parse ``/{expiry}/{digest}/{path}`` from the raw request path.
2) Expired → 410, digest mismatch → 401 (expiry is checked first).
3) One GET to the store for metadata + body.
4) Playlist content type → read body, presign every segment, 200.
   Redirectable binary type → abort body, presign the object, 302.
   Anything else → abort body, 400.

Presigned lifetimes always equal the link's *remaining* lifetime at the moment
of handling, so a URL handed out late in a link's life expires with the link.

Simple mode (`SimpleDispatcher`)
--------------------------------
First path segment must be allow-listed (else 404); the object is presigned
for a fixed configured duration and the client redirected (302).

Every outcome is terminal: failures map to one `AppException`, nothing is
retried, and the store client plus any open body are released on every path.
"""

import math
import time
from typing import Callable, Iterable, Optional, Sequence
from urllib.parse import unquote

from fastapi import status
from loguru import logger
from starlette.responses import RedirectResponse, Response

from signgate.core.exceptions import (
    AppException,
    ExpiredTokenError,
    InvalidSignatureError,
    MalformedLinkError,
    ManifestParseError,
    ObjectNotFoundError,
    PathNotAllowedError,
    PresignFailureError,
    StoreUnavailableError,
    UnsupportedContentTypeError,
)
from signgate.core.metrics import (
    inc_playlist_segments,
    inc_presign,
    inc_request,
    observe_presign_seconds,
)
from signgate.services.playlist import PlaylistParseError, parse_media_playlist, serialize_media_playlist
from signgate.services.rewriter import ObjectReference, PresignFn, base_path_of, rewrite_document
from signgate.services.signing import (
    DigestFunction,
    MalformedTokenError,
    TokenStatus,
    get_digest_function,
    md5_digest,
    parse_signed_path,
    verify,
)
from signgate.utils.aws import InvalidKeyError, ObjectMissingError, S3Client, S3StorageError, StoredObject

PLAYLIST_CONTENT_TYPES = frozenset({"application/vnd.apple.mpegurl", "audio/mpegurl"})
PLAYLIST_RESPONSE_MEDIA_TYPE = "audio/mpegurl"
REWRITTEN_HEADER = "X-Playlist-Rewritten"
VERSION_HEADER = "X-Playlist-Version"

_CORS_HEADERS = {"Access-Control-Allow-Origin": "*"}


# ─────────────────────────────────────────────────────────────
# Seams (monkeypatched in tests)
# ─────────────────────────────────────────────────────────────
def _now_ms() -> int:
    return int(time.time() * 1000)


def _s3(config=None) -> S3Client:
    """Return a fresh request-scoped S3 client (built from `config`) or raise 503."""
    try:
        return S3Client(config=config)
    except S3StorageError as e:
        logger.error("Object store unavailable: {}", e)
        raise StoreUnavailableError() from e


# ─────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────
def normalize_content_type(value: Optional[str]) -> str:
    """``"Audio/MPEGURL; charset=utf-8"`` → ``"audio/mpegurl"``."""
    return (value or "").split(";", 1)[0].strip().lower()


def remaining_seconds(expiry_ms: int, now_ms: int) -> int:
    """Remaining link lifetime in whole seconds, rounded up (at least 1)."""
    return max(1, math.ceil((expiry_ms - now_ms) / 1000))


def _presigner(s3: S3Client) -> PresignFn:
    """Presign callable bound to `s3`, instrumented; raises PresignFailureError."""

    def presign(ref: ObjectReference, expires_in: int) -> str:
        t0 = time.perf_counter()
        try:
            url = s3.presigned_get(ref.key, expires_in=expires_in, bucket=ref.bucket)
        except InvalidKeyError as e:
            logger.warning("Rejected object key: {}", e)
            raise MalformedLinkError() from e
        except S3StorageError as e:
            inc_presign("error")
            observe_presign_seconds("error", time.perf_counter() - t0)
            logger.error("Presign failed for key={}: {}", ref.key, e)
            raise PresignFailureError() from e
        inc_presign("ok")
        observe_presign_seconds("ok", time.perf_counter() - t0)
        return url

    return presign


def _redirect(url: str, *, cors: bool) -> RedirectResponse:
    headers = {"Cache-Control": "no-store"}
    if cors:
        headers.update(_CORS_HEADERS)
    return RedirectResponse(url, status_code=status.HTTP_302_FOUND, headers=headers)


def _fetch(s3: S3Client, key: str) -> StoredObject:
    try:
        return s3.get_object(key)
    except InvalidKeyError as e:
        logger.warning("Rejected object key: {}", e)
        raise MalformedLinkError() from e
    except ObjectMissingError as e:
        logger.warning("Object not found: {}", key)
        raise ObjectNotFoundError() from e
    except S3StorageError as e:
        logger.error("Object fetch failed for key={}: {}", key, e)
        raise StoreUnavailableError() from e


# ─────────────────────────────────────────────────────────────
# Signed mode
# ─────────────────────────────────────────────────────────────
class SignedDispatcher:
    """Capability-token gateway: verify, then rewrite or redirect."""

    mode = "signed"

    def __init__(
        self,
        *,
        secrets: Sequence[str],
        digest_fn: DigestFunction = md5_digest,
        redirect_content_types: Iterable[str] = ("binary/octet-stream",),
        bucket: Optional[str] = None,
        clock: Optional[Callable[[], int]] = None,
        store_config=None,
    ) -> None:
        if not secrets:
            raise ValueError("HASH_SALTS must be set")
        self.secrets = tuple(secrets)
        self.digest_fn = digest_fn
        self.redirect_content_types = frozenset(normalize_content_type(c) for c in redirect_content_types)
        self.bucket = bucket
        self._clock = clock
        self.store_config = store_config

    @classmethod
    def from_settings(cls, settings) -> "SignedDispatcher":
        return cls(
            secrets=settings.HASH_SALTS,
            digest_fn=get_digest_function(settings.DIGEST_ALGORITHM),
            redirect_content_types=settings.REDIRECT_CONTENT_TYPES,
            bucket=settings.AWS_BUCKET_NAME,
            store_config=settings,
        )

    def now_ms(self) -> int:
        return self._clock() if self._clock else _now_ms()

    def handle(self, raw_path: str) -> Response:
        try:
            response, outcome = self._handle(raw_path)
        except AppException as exc:
            inc_request(self.mode, exc.outcome)
            raise
        inc_request(self.mode, outcome)
        return response

    def _handle(self, raw_path: str) -> tuple[Response, str]:
        try:
            token = parse_signed_path(raw_path)
        except MalformedTokenError as e:
            logger.warning("Malformed signed link: {}", e)
            raise MalformedLinkError() from e

        now = self.now_ms()
        logger.info("Request for path: '{}', expiry: {}", token.resource_path, token.expiry)

        status_ = verify(token, self.secrets, now, digest_fn=self.digest_fn)
        if status_ is TokenStatus.EXPIRED:
            logger.warning("Request for expiry in the past: {} - now: {}", token.expiry, now)
            raise ExpiredTokenError()
        if status_ is TokenStatus.INVALID:
            logger.warning("Request with a digest matching no configured salt for path '{}'", token.resource_path)
            raise InvalidSignatureError()

        key = unquote(token.resource_path)
        with _s3(self.store_config) as s3:
            bucket = self.bucket or s3.bucket
            with _fetch(s3, key) as obj:
                content_type = normalize_content_type(obj.content_type)

                if content_type in PLAYLIST_CONTENT_TYPES:
                    logger.info("Rewriting HLS playlist for content-type: {}", content_type)
                    return self._rewrite(s3, obj, key, bucket, token.expiry), "rewritten"

                obj.abort()

                if content_type in self.redirect_content_types:
                    logger.info("Redirecting non-playlist content-type: {}", content_type)
                    expires_in = remaining_seconds(token.expiry, self.now_ms())
                    url = _presigner(s3)(ObjectReference(bucket=bucket, key=key), expires_in)
                    logger.debug("Presigned URL: {}", url)
                    return _redirect(url, cors=True), "redirected"

                logger.warning("Request for unsupported content-type: {} at path {}", content_type, key)
                raise UnsupportedContentTypeError()

    def _rewrite(self, s3: S3Client, obj: StoredObject, key: str, bucket: str, expiry: int) -> Response:
        try:
            raw = obj.read_bytes()
        except S3StorageError as e:
            logger.error("Reading playlist body failed for key={}: {}", key, e)
            raise StoreUnavailableError() from e

        try:
            original = parse_media_playlist(raw.decode("utf-8"))
            rewritten = rewrite_document(
                original,
                base_path=base_path_of(key),
                bucket=bucket,
                presign=_presigner(s3),
                expires_in=remaining_seconds(expiry, self.now_ms()),
            )
        except (PlaylistParseError, UnicodeDecodeError) as e:
            logger.error("Playlist at key={} could not be parsed: {}", key, e)
            raise ManifestParseError() from e
        except MalformedLinkError as e:
            # a segment key the store rejects is a defect of the stored document
            logger.error("Playlist at key={} references an unusable segment key", key)
            raise ManifestParseError() from e

        body = serialize_media_playlist(rewritten)
        inc_playlist_segments(len(rewritten.segments))
        headers = dict(_CORS_HEADERS)
        headers[REWRITTEN_HEADER] = "1"
        headers[VERSION_HEADER] = str(rewritten.version)
        return Response(
            content=body.encode("utf-8"),
            status_code=status.HTTP_200_OK,
            media_type=PLAYLIST_RESPONSE_MEDIA_TYPE,
            headers=headers,
        )


# ─────────────────────────────────────────────────────────────
# Simple mode
# ─────────────────────────────────────────────────────────────
class SimpleDispatcher:
    """Allow-listed prefixes redirected to presigned URLs of fixed lifetime."""

    mode = "simple"

    def __init__(self, *, allowed_first_paths: Iterable[str], duration_seconds: int, store_config=None) -> None:
        self.allowed_first_paths = frozenset(p.strip("/") for p in allowed_first_paths if p.strip("/"))
        self.duration_seconds = int(duration_seconds)
        self.store_config = store_config

    @classmethod
    def from_settings(cls, settings) -> "SimpleDispatcher":
        return cls(
            allowed_first_paths=settings.ALLOWED_FIRST_PATHS,
            duration_seconds=settings.presign_duration_seconds,
            store_config=settings,
        )

    def handle(self, path: str) -> Response:
        try:
            response = self._handle(path)
        except AppException as exc:
            inc_request(self.mode, exc.outcome)
            raise
        inc_request(self.mode, "redirected")
        return response

    def _handle(self, path: str) -> Response:
        key = unquote(path).lstrip("/")
        first_dir = key.split("/", 1)[0]
        logger.info("First dir: {} path: {}", first_dir, key)

        if first_dir not in self.allowed_first_paths:
            raise PathNotAllowedError()

        with _s3(self.store_config) as s3:
            ref = ObjectReference(bucket=s3.bucket, key=key)
            url = _presigner(s3)(ref, self.duration_seconds)
        logger.debug("Presigned URL: {}", url)
        return _redirect(url, cors=False)


__all__ = [
    "PLAYLIST_CONTENT_TYPES",
    "PLAYLIST_RESPONSE_MEDIA_TYPE",
    "REWRITTEN_HEADER",
    "VERSION_HEADER",
    "SignedDispatcher",
    "SimpleDispatcher",
    "normalize_content_type",
    "remaining_seconds",
]
