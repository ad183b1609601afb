"""URL shape helpers for Bandcamp accounts and items."""
from __future__ import annotations

import re
from typing import Optional
from urllib.parse import urlsplit, urlunsplit

from .exceptions import UnknownUrlError
from .models import UrlType

# Top-level paths on bandcamp.com that are site pages, not fan profiles.
_RESERVED_ACCOUNT_PATHS = frozenset(
    {
        "about",
        "artists",
        "discover",
        "fan_signup",
        "feed",
        "gift_cards",
        "guide",
        "help",
        "login",
        "privacy",
        "search",
        "settings",
        "signup",
        "tag",
        "terms_of_use",
        "yum",
    }
)

_ACCOUNT_PATH_RE = re.compile(r"^/([A-Za-z0-9_\-.]+)/?$")
_ITEM_PATH_RE = re.compile(r"^/(album|track)/[^/]+/?$")


def original_url(url: str) -> str:
    """Strip query string and fragment."""
    url = (url or "").strip()
    if not url:
        return ""
    parts = urlsplit(url)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))


def _split(url: str):
    parts = urlsplit((url or "").strip())
    if parts.scheme not in ("http", "https") or not parts.netloc:
        return None
    return parts


def is_account_url(url: str) -> bool:
    parts = _split(url)
    if parts is None or parts.netloc.lower() not in ("bandcamp.com", "www.bandcamp.com"):
        return False
    match = _ACCOUNT_PATH_RE.match(parts.path)
    return bool(match) and match.group(1).lower() not in _RESERVED_ACCOUNT_PATHS


def _item_kind(url: str) -> Optional[str]:
    parts = _split(url)
    if parts is None or parts.netloc.lower() in ("bandcamp.com", "www.bandcamp.com"):
        return None
    match = _ITEM_PATH_RE.match(parts.path)
    return match.group(1) if match else None


def is_album_url(url: str) -> bool:
    return _item_kind(url) == "album"


def is_track_url(url: str) -> bool:
    return _item_kind(url) == "track"


def is_item_url(url: str) -> bool:
    return _item_kind(url) is not None


def url_type(url: str) -> Optional[UrlType]:
    if is_item_url(url):
        return UrlType.ITEM
    if is_account_url(url):
        return UrlType.ACCOUNT
    return None


def require_url_type(url: str) -> UrlType:
    kind = url_type(url)
    if kind is None:
        raise UnknownUrlError(url)
    return kind
