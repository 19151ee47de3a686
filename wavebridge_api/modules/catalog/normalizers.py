"""Coercion of heterogeneous upstream song fields into canonical values.

Two layers live here:

* ``normalize_artist_field`` / ``normalize_song_name`` / ``normalize_album_name``
  clean a single already-located value.
* ``extract_artist_info`` / ``extract_song_info`` / ``extract_album_info`` probe
  a raw upstream payload for the field, trying the shapes used by every
  supported dialect before giving up.

None of these functions raise. When nothing usable survives they return the
localized placeholder for the field.
"""

import json
import re
from collections.abc import Iterable
from typing import Any
from urllib.parse import unquote, urlparse

from wavebridge_api.modules.catalog.constants import (
    ALBUM_IN_URL_PATTERN,
    ARTIST_SEPARATOR_PATTERN,
    AUDIO_EXTENSION_PATTERN,
    EDGE_NOISE_PATTERN,
    INVALID_ALBUM_NAMES,
    INVALID_ARTIST_NAMES,
    INVALID_SONG_NAMES,
    UNKNOWN_ALBUM,
    UNKNOWN_ARTIST,
    UNKNOWN_SONG,
)

ARTIST_SEPARATOR_RE = re.compile(ARTIST_SEPARATOR_PATTERN)
AUDIO_EXTENSION_RE = re.compile(AUDIO_EXTENSION_PATTERN, re.IGNORECASE)
EDGE_NOISE_RE = re.compile(EDGE_NOISE_PATTERN)
ALBUM_IN_URL_RE = re.compile(ALBUM_IN_URL_PATTERN)
WHITESPACE_RE = re.compile(r"\s+")

# Candidate payload paths, most specific first
ARTIST_PATHS = ("artist", "artists", "ar", "artist_name", "singer", "singers", "author", "album.artist", "album.artists")
ARTIST_JSON_PATHS = ("artist", "artists", "ar", "singer")
SONG_NAME_PATHS = ("name", "title", "song_name", "songname", "filename", "file_name")
SONG_URL_PATHS = ("url", "link")
ALBUM_NAME_PATHS = ("album", "album_name", "albumname", "collection", "disc", "al")
ALBUM_ID_PATHS = ("album_id", "album.id", "al.id")
ALBUM_COVER_PATHS = ("pic_url", "cover", "pic", "album_pic")
PIC_ID_PATHS = (
    "pic_id",
    "cover",
    "album_pic",
    "pic",
    "al.picStr",
    "album.picStr",
    "album.pic",
    "al.pic",
    "album.pic_url",
    "pic_url",
)
DURATION_PATHS = ("dt", "duration", "time")


def get_path(payload: Any, path: str) -> Any:
    """Read a dotted path from nested dicts, returning None on any miss."""
    current = payload
    for part in path.split("."):
        if not isinstance(current, dict):
            return None
        current = current.get(part)
    return current


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_placeholder(value: str, denylist: frozenset[str]) -> bool:
    return value.strip().lower() in denylist


def _clean_artist_names(names: Iterable[str]) -> list[str]:
    cleaned: list[str] = []
    for raw_name in names:
        name = raw_name.strip()
        if _is_placeholder(name, INVALID_ARTIST_NAMES) or name in cleaned:
            continue
        cleaned.append(name)
    return cleaned


def _split_artist_text(text: str) -> list[str]:
    # "N/A" is a placeholder, not two artists
    if _is_placeholder(text, INVALID_ARTIST_NAMES):
        return []
    return ARTIST_SEPARATOR_RE.split(text)


def _artist_names_from_item(item: Any) -> list[str]:
    if isinstance(item, str):
        return _split_artist_text(item)
    if isinstance(item, dict):
        name = item.get("name") or item.get("artist")
        if isinstance(name, str):
            return _split_artist_text(name)
    return []


def _artist_names_from(value: Any) -> list[str]:
    if isinstance(value, (list, tuple)):
        names: list[str] = []
        for item in value:
            names.extend(_artist_names_from_item(item))
        return names
    return _artist_names_from_item(value)


def normalize_artist_field(artist: Any) -> list[str]:
    """Normalize an upstream artist value into a non-empty list of names.

    Accepts a delimiter-separated string, an object with ``name``, or a list
    mixing both. Placeholder tokens such as "Unknown" or "Various Artists" are
    dropped and duplicates removed while keeping upstream order.

    Args:
        artist: Raw upstream artist value of any shape

    Returns:
        List of artist names, ``["未知艺术家"]`` when nothing valid remains
    """
    names = _clean_artist_names(_artist_names_from(artist))
    return names or [UNKNOWN_ARTIST]


def _first_valid_text(
    value: Any,
    denylist: frozenset[str],
    keys: tuple[str, ...] = ("name", "title"),
) -> str | None:
    if isinstance(value, (list, tuple)):
        for item in value:
            text = _first_valid_text(item, denylist, keys)
            if text:
                return text
        return None
    if isinstance(value, dict):
        for key in keys:
            candidate = value.get(key)
            if isinstance(candidate, str) and candidate.strip() and not _is_placeholder(candidate, denylist):
                return candidate.strip()
        return None
    if isinstance(value, str):
        text = value.strip()
        if not _is_placeholder(text, denylist):
            return text
    return None


def normalize_song_name(name: Any) -> str:
    """Normalize an upstream song title, falling back to ``未知歌曲``."""
    return _first_valid_text(name, INVALID_SONG_NAMES) or UNKNOWN_SONG


def normalize_album_name(album: Any) -> str:
    """Normalize an upstream album title, falling back to ``未知专辑``."""
    return _first_valid_text(album, INVALID_ALBUM_NAMES, ("name", "title", "album")) or UNKNOWN_ALBUM


def clean_title(value: str) -> str:
    """Strip audio file extensions and separator noise from a title."""
    title = AUDIO_EXTENSION_RE.sub("", value.strip())
    return EDGE_NOISE_RE.sub("", title).strip()


def title_from_url(url: str) -> str:
    """Infer a title from the last path segment of a media URL."""
    segment = urlparse(url).path.rstrip("/").rsplit("/", 1)[-1]
    return clean_title(unquote(segment))


def _parse_json_array(value: str) -> list[Any] | None:
    text = value.strip()
    if not text.startswith("["):
        return None
    try:
        parsed = json.loads(text)
    except (json.JSONDecodeError, ValueError):
        return None
    return parsed if isinstance(parsed, list) else None


def extract_artist_info(song: Any) -> list[str]:
    """Locate and normalize the artist list of a raw upstream song payload.

    Probes direct fields, nested ``name`` objects and the list-of-objects
    shapes (``artists``/``ar``). Stringified JSON arrays are parsed only after
    every structured candidate failed.

    Args:
        song: Raw upstream song payload

    Returns:
        List of artist names, ``["未知艺术家"]`` when nothing valid is found
    """
    if not isinstance(song, dict):
        return [UNKNOWN_ARTIST]

    for path in ARTIST_PATHS:
        value = get_path(song, path)
        if isinstance(value, str) and _parse_json_array(value) is not None:
            continue
        names = _clean_artist_names(_artist_names_from(value))
        if names:
            return names

    for path in ARTIST_JSON_PATHS:
        value = song.get(path)
        if not isinstance(value, str):
            continue
        parsed = _parse_json_array(value)
        if parsed:
            names = _clean_artist_names(_artist_names_from(parsed))
            if names:
                return names

    return [UNKNOWN_ARTIST]


def extract_song_info(song: Any) -> str:
    """Locate and normalize the title of a raw upstream song payload.

    Falls back to a title inferred from the media URL filename, then to
    ``歌曲 {id}``, then to ``未知歌曲``.
    """
    if not isinstance(song, dict):
        return UNKNOWN_SONG

    for path in SONG_NAME_PATHS:
        value = song.get(path)
        if isinstance(value, dict):
            value = value.get("name") or value.get("title")
        if isinstance(value, str):
            title = clean_title(value)
            if not _is_placeholder(title, INVALID_SONG_NAMES):
                return title

    for path in SONG_URL_PATHS:
        value = song.get(path)
        if isinstance(value, str) and value:
            title = title_from_url(value)
            if not _is_placeholder(title, INVALID_SONG_NAMES):
                return title

    song_id = song.get("id")
    if song_id is not None and str(song_id).strip():
        return f"歌曲 {song_id}"
    return UNKNOWN_SONG


def extract_album_info(song: Any) -> str:
    """Locate and normalize the album title of a raw upstream song payload.

    Numeric album ids become ``专辑ID: {id}``; an ``album<n>`` marker in the
    cover URL becomes ``专辑 {n}``.
    """
    if not isinstance(song, dict):
        return UNKNOWN_ALBUM

    for path in ALBUM_NAME_PATHS:
        text = _first_valid_text(song.get(path), INVALID_ALBUM_NAMES)
        if text:
            return text

    for path in ALBUM_ID_PATHS:
        value = get_path(song, path)
        if _is_number(value) or (isinstance(value, str) and value.isdigit()):
            return f"专辑ID: {value}"

    for path in ALBUM_COVER_PATHS:
        value = song.get(path)
        if isinstance(value, str):
            match = ALBUM_IN_URL_RE.search(value)
            if match:
                return f"专辑 {match.group(1)}"

    return UNKNOWN_ALBUM


def extract_pic_id(song: Any) -> str | None:
    """Return the first cover-art reference found in a raw payload."""
    if not isinstance(song, dict):
        return None
    for path in PIC_ID_PATHS:
        value = get_path(song, path)
        if isinstance(value, bool) or value in (None, "", 0):
            continue
        if isinstance(value, (str, int)):
            return str(value)
    return None


def parse_duration(value: Any) -> float:
    """Convert an upstream duration into seconds.

    Numbers and numeric strings are milliseconds, ``"mm:ss"`` strings are
    clock time. Anything else yields 0.
    """
    if isinstance(value, bool):
        return 0.0
    if _is_number(value):
        return value / 1000 if value > 0 else 0.0
    if not isinstance(value, str):
        return 0.0

    text = value.strip()
    try:
        if ":" in text:
            total = 0.0
            for part in text.split(":"):
                total = total * 60 + float(part)
            return total
        return float(text) / 1000
    except ValueError:
        return 0.0


def extract_duration(song: Any) -> float | None:
    """Return the duration of a raw payload in seconds, None when unknown."""
    if not isinstance(song, dict):
        return None
    for path in DURATION_PATHS:
        seconds = parse_duration(song.get(path))
        if seconds > 0:
            return seconds
    return None


def is_similar(first: str, second: str) -> bool:
    """Case and whitespace insensitive containment in either direction."""
    left = WHITESPACE_RE.sub("", first.lower())
    right = WHITESPACE_RE.sub("", second.lower())
    return left in right or right in left
