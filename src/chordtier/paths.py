"""Path normalisation for record keys and artist slugs.

Pure functions, no I/O. Every tier keys its data by the output of these
helpers, so two spellings of the same path must normalise identically.
"""

from __future__ import annotations

import re
import unicodedata
from urllib.parse import unquote, urlparse

_DUPLICATE_SLASHES = re.compile(r"/{2,}")
_SLUG_DROP = re.compile(r"[()\[\]{}'\".,;:!?]")
_SLUG_SEPARATORS = re.compile(r"[\s/\\_-]+")


def normalize_path(raw: str | None) -> str:
    """Normalise a record path: ``" /Oasis//Wonderwall/ "`` → ``"oasis/wonderwall"``.

    Steps (order matters):
      1. Trim whitespace
      2. Drop any query string or fragment
      3. Collapse repeated slashes
      4. Strip leading/trailing slashes
      5. Lowercase
    """
    if not raw:
        return ""
    path = raw.strip()
    path = path.split("?", 1)[0].split("#", 1)[0]
    path = _DUPLICATE_SLASHES.sub("/", path)
    path = path.strip("/")
    return path.lower()


def normalize_artist_path(raw: str | None) -> str:
    """Normalise an artist slug. Raises ``ValueError`` when nothing is left."""
    path = normalize_path(raw)
    if not path:
        raise ValueError("Invalid artist path: must be a non-empty string")
    return path


def split_song_path(path: str) -> tuple[str, str] | None:
    """Split a normalised ``artist/song`` path, or return None if malformed."""
    parts = path.split("/")
    if len(parts) != 2 or not all(parts):
        return None
    return parts[0], parts[1]


def path_from_url(url: str) -> str:
    """Return the normalised path component of a URL or bare path."""
    if not url:
        return ""
    parsed = urlparse(url.strip())
    path = parsed.path if parsed.scheme or parsed.netloc else url
    return normalize_path(unquote(path))


def slugify(text: str) -> str:
    """Accent-insensitive slug: ``"Dias Atrás"`` → ``"dias-atras"``."""
    if not text:
        return ""
    decomposed = unicodedata.normalize("NFD", text.strip())
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    stripped = _SLUG_DROP.sub("", stripped.lower())
    return _SLUG_SEPARATORS.sub("-", stripped).strip("-")


def song_path_for(artist: str, title: str) -> str:
    """Build a record path from display names, for sheets uploaded without one."""
    artist_slug = slugify(artist)
    title_slug = slugify(title)
    if not artist_slug or not title_slug:
        return ""
    return f"{artist_slug}/{title_slug}"


def fold_for_search(text: str) -> str:
    """Lowercase and strip diacritics for accent-insensitive comparisons."""
    decomposed = unicodedata.normalize("NFD", text or "")
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch)).lower().strip()
