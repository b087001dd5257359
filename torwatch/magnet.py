from __future__ import annotations

import re
from typing import Optional
from urllib.parse import unquote_plus

from .errors import ValidationError


MAGNET_PREFIX = "magnet:?"
BTIH_MARKER = "xt=urn:btih:"
_BAD_ESCAPE = re.compile(r"%(?![0-9A-Fa-f]{2})")
_BTIH = re.compile(r"xt=urn:btih:([^&]+)", re.IGNORECASE)


def is_valid_magnet_uri(uri: str) -> bool:
    """Structural check only: prefix and a btih exact topic, hash encoding is not verified."""
    if not uri or not uri.strip():
        return False
    return uri.lower().startswith(MAGNET_PREFIX) and BTIH_MARKER in uri.lower()


def validate_magnet_uri(uri: str | None) -> str:
    link = (uri or "").strip()
    if not link:
        raise ValidationError("Magnet link is required")
    if not is_valid_magnet_uri(link):
        raise ValidationError(f"Not a magnet link: {link[:60]}")
    return link


def extract_display_name(uri: str) -> Optional[str]:
    """Decoded value of the first ``&dn=`` parameter, or ``None``.

    Malformed percent escapes and non UTF-8 payloads yield ``None``.
    """
    start = uri.lower().find("&dn=")
    if start == -1:
        return None
    start += len("&dn=")
    end = uri.find("&", start)
    raw = uri[start:] if end == -1 else uri[start:end]
    if _BAD_ESCAPE.search(raw):
        return None
    try:
        return unquote_plus(raw, encoding="utf-8", errors="strict")
    except UnicodeDecodeError:
        return None


def extract_info_hash(uri: str) -> Optional[str]:
    match = _BTIH.search(uri or "")
    if not match:
        return None
    return match.group(1).strip().lower() or None
