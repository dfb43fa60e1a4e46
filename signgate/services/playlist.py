from __future__ import annotations

"""
HLS media playlists: structured model, parser and canonical serializer.

Only *media* playlists are handled (the ones listing ``#EXTINF`` segments).
Master playlists are rejected with `PlaylistParseError`.

Model
-----
- `MediaPlaylist.version`        ``#EXT-X-VERSION`` (None when absent)
- `MediaPlaylist.header_tags`    every other playlist-level tag, in order
- `MediaPlaylist.segments`       ordered `MediaSegment`s
- `MediaPlaylist.trailing_tags`  tags after the last segment URI
- `MediaPlaylist.end_list`       ``#EXT-X-ENDLIST`` present

A `MediaSegment` keeps its ``#EXTINF`` duration/title, its URI and every other
tag that preceded the URI (keys, maps, byte ranges, discontinuities, ...)
untouched in `tags`.

Serialization is deterministic: parsing the output again yields an equal model.
"""

import math
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict

EXTM3U = "#EXTM3U"
EXTINF = "#EXTINF"
EXT_X_VERSION = "#EXT-X-VERSION"
EXT_X_TARGETDURATION = "#EXT-X-TARGETDURATION"
EXT_X_ENDLIST = "#EXT-X-ENDLIST"

PLAYLIST_TAGS = frozenset(
    {
        EXT_X_TARGETDURATION,
        "#EXT-X-MEDIA-SEQUENCE",
        "#EXT-X-DISCONTINUITY-SEQUENCE",
        "#EXT-X-PLAYLIST-TYPE",
        "#EXT-X-I-FRAMES-ONLY",
        "#EXT-X-INDEPENDENT-SEGMENTS",
        "#EXT-X-START",
        "#EXT-X-ALLOW-CACHE",
        "#EXT-X-SERVER-CONTROL",
        "#EXT-X-PART-INF",
        "#EXT-X-DEFINE",
    }
)

MASTER_TAGS = frozenset(
    {
        "#EXT-X-STREAM-INF",
        "#EXT-X-I-FRAME-STREAM-INF",
        "#EXT-X-MEDIA",
        "#EXT-X-SESSION-DATA",
        "#EXT-X-SESSION-KEY",
    }
)

SEGMENT_TAGS = frozenset(
    {
        "#EXT-X-BYTERANGE",
        "#EXT-X-DISCONTINUITY",
        "#EXT-X-KEY",
        "#EXT-X-MAP",
        "#EXT-X-PROGRAM-DATE-TIME",
        "#EXT-X-DATERANGE",
        "#EXT-X-GAP",
        "#EXT-X-BITRATE",
        "#EXT-X-PART",
        "#EXT-X-CUE-OUT",
        "#EXT-X-CUE-IN",
    }
)

_INTEGER_TAGS = frozenset({EXT_X_TARGETDURATION, "#EXT-X-MEDIA-SEQUENCE", "#EXT-X-DISCONTINUITY-SEQUENCE"})


class PlaylistParseError(ValueError):
    """Text is not a well-formed media playlist."""

    def __init__(self, message: str, *, line: Optional[int] = None) -> None:
        self.line = line
        super().__init__(f"line {line}: {message}" if line else message)


# ─────────────────────────────────────────────────────────────
# Model
# ─────────────────────────────────────────────────────────────
class Tag(BaseModel):
    """One ``#NAME[:value]`` line."""

    model_config = ConfigDict(frozen=True)

    name: str
    value: Optional[str] = None

    def render(self) -> str:
        return self.name if self.value is None else f"{self.name}:{self.value}"


class MediaSegment(BaseModel):
    model_config = ConfigDict(frozen=True)

    uri: str
    duration: float
    title: Optional[str] = None
    tags: Tuple[Tag, ...] = ()


class MediaPlaylist(BaseModel):
    model_config = ConfigDict(frozen=True)

    version: Optional[int] = None
    header_tags: Tuple[Tag, ...] = ()
    segments: Tuple[MediaSegment, ...] = ()
    trailing_tags: Tuple[Tag, ...] = ()
    end_list: bool = False

    @property
    def attributes(self) -> Dict[str, Optional[str]]:
        """Playlist-level tags as a name → value mapping (version included)."""
        attrs: Dict[str, Optional[str]] = {}
        if self.version is not None:
            attrs[EXT_X_VERSION] = str(self.version)
        for tag in self.header_tags:
            attrs[tag.name] = tag.value
        return attrs

    @property
    def target_duration(self) -> int:
        return int(self.attributes[EXT_X_TARGETDURATION] or 0)


# ─────────────────────────────────────────────────────────────
# Parsing
# ─────────────────────────────────────────────────────────────
def _split_tag(line: str) -> Tag:
    name, sep, value = line.partition(":")
    return Tag(name=name, value=value if sep else None)


def _parse_int(tag: Tag, lineno: int) -> int:
    try:
        return int((tag.value or "").strip())
    except ValueError:
        raise PlaylistParseError(f"{tag.name} expects an integer", line=lineno) from None


def _parse_extinf(tag: Tag, lineno: int) -> Tuple[float, Optional[str]]:
    raw_duration, sep, title = (tag.value or "").partition(",")
    try:
        duration = float(raw_duration.strip())
    except ValueError:
        raise PlaylistParseError("#EXTINF expects a decimal duration", line=lineno) from None
    if not math.isfinite(duration):
        raise PlaylistParseError("#EXTINF expects a decimal duration", line=lineno)
    if duration < 0:
        raise PlaylistParseError("#EXTINF duration is negative", line=lineno)
    return duration, (title if sep and title else None)


def parse_media_playlist(text: str) -> MediaPlaylist:
    """Parse `text` into a `MediaPlaylist`.

    Raises
    ------
    PlaylistParseError
        Missing ``#EXTM3U`` header, master playlist tags, malformed numbers,
        a URI without ``#EXTINF``, an ``#EXTINF`` without URI, or a missing
        ``#EXT-X-TARGETDURATION``.
    """
    if text is None:
        raise PlaylistParseError("empty document")
    lines = text.lstrip("\ufeff").splitlines()

    version: Optional[int] = None
    header: List[Tag] = []
    segments: List[MediaSegment] = []
    pending: List[Tag] = []
    extinf: Optional[Tuple[float, Optional[str]]] = None
    end_list = False
    seen_header = False
    seen_segment = False

    for lineno, raw in enumerate(lines, start=1):
        line = raw.strip()
        if not line:
            continue

        if not seen_header:
            if line != EXTM3U:
                raise PlaylistParseError("document does not start with #EXTM3U", line=lineno)
            seen_header = True
            continue

        if line.startswith("#EXT"):
            tag = _split_tag(line)
            if tag.name == EXTM3U:
                raise PlaylistParseError("duplicate #EXTM3U", line=lineno)
            if tag.name in MASTER_TAGS:
                raise PlaylistParseError(f"{tag.name} belongs to a master playlist", line=lineno)
            if tag.name == EXT_X_VERSION:
                if version is not None:
                    raise PlaylistParseError("duplicate #EXT-X-VERSION", line=lineno)
                version = _parse_int(tag, lineno)
            elif tag.name == EXT_X_ENDLIST:
                end_list = True
            elif tag.name in PLAYLIST_TAGS:
                if tag.name in _INTEGER_TAGS:
                    _parse_int(tag, lineno)
                header.append(tag)
            elif tag.name == EXTINF:
                if extinf is not None:
                    raise PlaylistParseError("#EXTINF without a segment URI", line=lineno)
                extinf = _parse_extinf(tag, lineno)
                seen_segment = True
            elif seen_segment or tag.name in SEGMENT_TAGS:
                pending.append(tag)
                seen_segment = True
            else:
                header.append(tag)
            continue

        if line.startswith("#"):
            # plain comment
            continue

        if extinf is None:
            raise PlaylistParseError("segment URI without #EXTINF", line=lineno)
        duration, title = extinf
        segments.append(MediaSegment(uri=line, duration=duration, title=title, tags=tuple(pending)))
        pending = []
        extinf = None

    if not seen_header:
        raise PlaylistParseError("empty document")
    if extinf is not None:
        raise PlaylistParseError("#EXTINF without a segment URI", line=len(lines))
    if not any(t.name == EXT_X_TARGETDURATION for t in header):
        raise PlaylistParseError("missing #EXT-X-TARGETDURATION")

    return MediaPlaylist(
        version=version,
        header_tags=tuple(header),
        segments=tuple(segments),
        trailing_tags=tuple(pending),
        end_list=end_list,
    )


# ─────────────────────────────────────────────────────────────
# Serialization
# ─────────────────────────────────────────────────────────────
def format_duration(value: float) -> str:
    """Shortest plain decimal that parses back to `value`: 10.0 → "10", 9.0000004 → "9.0000004".

    Built from `repr` (shortest round-tripping digits) and written without an
    exponent, which the playlist grammar does not allow.
    """
    text = format(Decimal(repr(float(value))), "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text or "0"


def serialize_media_playlist(playlist: MediaPlaylist) -> str:
    """Render `playlist` as text (LF line endings, trailing newline)."""
    out: List[str] = [EXTM3U]
    if playlist.version is not None:
        out.append(f"{EXT_X_VERSION}:{playlist.version}")
    out.extend(tag.render() for tag in playlist.header_tags)

    for segment in playlist.segments:
        out.extend(tag.render() for tag in segment.tags)
        extinf = f"{EXTINF}:{format_duration(segment.duration)},"
        if segment.title:
            extinf += segment.title
        out.append(extinf)
        out.append(segment.uri)

    out.extend(tag.render() for tag in playlist.trailing_tags)
    if playlist.end_list:
        out.append(EXT_X_ENDLIST)
    return "\n".join(out) + "\n"


__all__ = [
    "MediaPlaylist",
    "MediaSegment",
    "PlaylistParseError",
    "Tag",
    "format_duration",
    "parse_media_playlist",
    "serialize_media_playlist",
]
