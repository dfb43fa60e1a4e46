from __future__ import annotations

"""
Playlist rewriting: every segment URI becomes a presigned object URL.

The rewritten document is a new value; the parsed original is never mutated.
Apart from segment URIs only ``#EXT-X-VERSION`` changes (incremented by one,
an absent version counting as 0), which tells players the URIs are no longer
the original relative paths.

Any failure (parse error, a segment escaping the bucket, a presign error) aborts
the whole rewrite; a partially rewritten playlist is never produced.
"""

import posixpath
import re
from typing import Callable, Optional
from urllib.parse import unquote, urlsplit

from loguru import logger
from pydantic import BaseModel, ConfigDict

from signgate.services.playlist import (
    MediaPlaylist,
    PlaylistParseError,
    parse_media_playlist,
    serialize_media_playlist,
)


class ObjectReference(BaseModel):
    model_config = ConfigDict(frozen=True)

    bucket: str
    key: str


# (object, expires_in_seconds) -> presigned URL
PresignFn = Callable[[ObjectReference, int], str]

_CONTROL_RE = re.compile(r"[\x00-\x1f\x7f]")


def base_path_of(resource_path: str) -> str:
    """Directory part of an object key ("" for keys at the bucket root)."""
    head, _, _ = resource_path.rpartition("/")
    return head


def resolve_segment_key(base_path: str, uri: str) -> Optional[str]:
    """Object key a segment URI refers to, or None for absolute URLs.

    - ``seg0.ts`` under ``show/ep1`` → ``show/ep1/seg0.ts``
    - ``/other/seg0.ts``             → ``other/seg0.ts`` (bucket-root relative)
    - ``https://cdn/x.ts``           → None (left as is)

    Raises `PlaylistParseError` when the reference climbs above the bucket root
    or decodes to control characters.
    """
    parts = urlsplit(uri)
    if parts.scheme or parts.netloc:
        return None

    path = unquote(parts.path)
    if not path:
        raise PlaylistParseError(f"segment URI has no path: {uri!r}")
    if _CONTROL_RE.search(path):
        raise PlaylistParseError(f"segment URI has control characters: {uri!r}")
    if path.startswith("/"):
        joined = path.lstrip("/")
    elif base_path:
        joined = f"{base_path.strip('/')}/{path}"
    else:
        joined = path

    key = posixpath.normpath(joined)
    if key in {".", ""} or key == ".." or key.startswith("../"):
        raise PlaylistParseError(f"segment URI escapes the bucket: {uri!r}")
    return key


def rewrite_document(
    playlist: MediaPlaylist,
    *,
    base_path: str,
    bucket: str,
    presign: PresignFn,
    expires_in: int,
) -> MediaPlaylist:
    """Return a copy of `playlist` with presigned segment URIs and version + 1."""
    segments = []
    for index, segment in enumerate(playlist.segments):
        key = resolve_segment_key(base_path, segment.uri)
        if key is None:
            segments.append(segment)
            continue
        url = presign(ObjectReference(bucket=bucket, key=key), expires_in)
        logger.debug("Presigned segment #{} key={}", index, key)
        segments.append(segment.model_copy(update={"uri": url}))

    return playlist.model_copy(
        update={
            "version": (playlist.version or 0) + 1,
            "segments": tuple(segments),
        }
    )


def rewrite(
    base_path: str,
    original_text: str,
    presign: PresignFn,
    expires_in: int,
    *,
    bucket: str,
) -> str:
    """Parse, presign every segment, serialize.

    Raises
    ------
    PlaylistParseError
        `original_text` is not a media playlist or a segment URI is invalid.
    Exception
        Whatever `presign` raises propagates unchanged.
    """
    original = parse_media_playlist(original_text)
    rewritten = rewrite_document(
        original,
        base_path=base_path,
        bucket=bucket,
        presign=presign,
        expires_in=expires_in,
    )
    return serialize_media_playlist(rewritten)


__all__ = [
    "ObjectReference",
    "PresignFn",
    "base_path_of",
    "resolve_segment_key",
    "rewrite",
    "rewrite_document",
]
