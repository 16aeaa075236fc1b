"""Decode `busctl get-property` text output into metadata.

busctl prints a property on one line, e.g.

    a{sv} 4 "Title" s "Song" "Artist" as 2 "A" "B" "Duration" u 212000 "ImgHandle" s "1000001"

The format is undocumented, so parsing never raises: unknown type markers are
skipped one token at a time and missing values become empty strings.
"""
import math
import re
from typing import Any, Dict, List

from bluedash.models.media import TrackMetadata

TYPE_MARKERS = frozenset({"s", "o", "u", "t", "q", "i", "n", "y", "b", "as"})
_EMPTY_VALUES = frozenset({"", "-", "none", "null"})
_ARTWORK_KEYS = ("Artwork", "Image", "Cover", "Icon")
_HANDLE_KEYS = ("ImgHandle", "ImageHandle")
_SCALAR_RE = re.compile(r'^\s*\S+\s+"?(.*?)"?\s*$', re.DOTALL)

# Magnitude thresholds for unit-less durations
_MICROSECONDS_ABOVE = 10_000_000
_MILLISECONDS_ABOVE = 10_000


def tokenize(raw: str) -> List[str]:
    """Split on whitespace outside double quotes; each quote boundary ends a token.

    A closing quote always yields a token, so `s ""` keeps its empty value.
    """
    tokens: List[str] = []
    current: List[str] = []
    in_quotes = False

    def flush(keep_empty: bool = False) -> None:
        if current or keep_empty:
            tokens.append("".join(current))
            current.clear()

    for char in raw:
        if char == '"':
            flush(keep_empty=in_quotes)
            in_quotes = not in_quotes
            continue
        if not in_quotes and char.isspace():
            flush()
            continue
        current.append(char)
    flush()
    return tokens


def parse_dict(raw: str) -> Dict[str, Any]:
    """Collect `key TYPE value` triples; `as N v1..vN` yields a list."""
    tokens = tokenize(raw or "")
    entries: Dict[str, Any] = {}
    i = 0
    while i < len(tokens) - 1:
        key, type_ = tokens[i], tokens[i + 1]
        if type_ not in TYPE_MARKERS:
            i += 1
            continue
        i += 2
        if type_ == "as":
            try:
                count = int(tokens[i]) if i < len(tokens) else 0
            except ValueError:
                count = 0
            i += 1
            values = tokens[i:i + max(count, 0)]
            i += len(values)
            entries[key] = values
            continue
        if i < len(tokens):
            entries[key] = tokens[i]
        i += 1
    return entries


def normalize_value(value: Any) -> str:
    if value is None:
        return ""
    text = str(value).strip()
    if text.lower() in _EMPTY_VALUES:
        return ""
    return text


def parse_duration_sec(value: Any) -> int:
    """Seconds from a duration of unknown unit, inferred from its magnitude."""
    try:
        duration = float(value)
    except (TypeError, ValueError):
        return 0
    if not math.isfinite(duration) or duration <= 0:
        return 0
    if duration > _MICROSECONDS_ABOVE:
        duration /= 1_000_000
    elif duration > _MILLISECONDS_ABOVE:
        duration /= 1000
    return int(math.floor(duration + 0.5))


def _first_non_empty(entries: Dict[str, Any], keys) -> str:
    for key in keys:
        value = normalize_value(entries.get(key))
        if value:
            return value
    return ""


def _parse_port(value: Any) -> int:
    try:
        port = int(normalize_value(value) or 0)
    except ValueError:
        return 0
    return port if port > 0 else 0


def decode_track(raw: str) -> TrackMetadata:
    entries = parse_dict(raw)
    raw_artist = entries.get("Artist")
    if isinstance(raw_artist, list):
        artist = ", ".join(v for v in (normalize_value(a) for a in raw_artist) if v)
    else:
        artist = normalize_value(raw_artist)
    return TrackMetadata(
        title=normalize_value(entries.get("Title")),
        artist=artist,
        album=normalize_value(entries.get("Album")),
        duration_sec=parse_duration_sec(entries.get("Duration")),
        img_handle=_first_non_empty(entries, _HANDLE_KEYS),
        artwork_url=_first_non_empty(entries, _ARTWORK_KEYS),
        obex_port=_parse_port(entries.get("ObexPort")),
    )


def parse_scalar(raw: str) -> str:
    """Value of a single-value reply: `s "playing"` -> `playing`, `q 4101` -> `4101`."""
    match = _SCALAR_RE.match(raw or "")
    if not match:
        return ""
    return normalize_value(match.group(1))
