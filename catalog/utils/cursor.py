"""
Pagination Cursor Codec
=======================
Turns a list offset into an opaque token and back.

Token format: URL-safe base64 of "{offset}" or "{offset}:{fingerprint}".
The fingerprint identifies the filter set that produced the cursor, so a
cursor replayed under different filters is rejected instead of being
silently reinterpreted as a raw offset.

Usage:
    fp = filter_fingerprint({"genre": "drama"})
    token = encode_cursor(20, fp)
    decode_cursor(token, fp)  # -> 20
"""
import base64
import binascii
import hashlib
import json
from typing import Any, Dict

from catalog.utils.errors import InvalidCursorError

FINGERPRINT_LENGTH = 12

# Largest offset a database driver accepts (signed 64-bit)
MAX_OFFSET = 2**63 - 1

# Filters matched case-insensitively; every other filter is exact
CASE_INSENSITIVE_FILTERS = frozenset({"q", "genre", "distributor"})


def filter_fingerprint(filters: Dict[str, Any]) -> str:
    """
    Build a short, stable digest of the active filters.

    Unset (None) filters are dropped and case-insensitive filters are
    lower-cased so that equivalent filter sets share a fingerprint.
    """
    normalized = {}
    for name, value in filters.items():
        if value is None:
            continue
        if name in CASE_INSENSITIVE_FILTERS and isinstance(value, str):
            value = value.lower()
        normalized[name] = value

    payload = json.dumps(normalized, sort_keys=True, default=str)
    return hashlib.sha256(payload.encode()).hexdigest()[:FINGERPRINT_LENGTH]


def encode_cursor(offset: int, fingerprint: str = "") -> str:
    if offset < 0:
        raise ValueError("cursor offset must be non-negative")

    payload = f"{offset}:{fingerprint}" if fingerprint else str(offset)
    return base64.urlsafe_b64encode(payload.encode()).decode()


def decode_cursor(token: str, fingerprint: str = "") -> int:
    """
    Decode a cursor token back into its offset.

    Args:
        token: Token previously produced by encode_cursor
        fingerprint: Fingerprint of the filters in effect now

    Returns:
        Non-negative offset

    Raises:
        InvalidCursorError: bad encoding, non-numeric or negative payload,
            or a fingerprint that does not match the current filters
    """
    try:
        raw = base64.b64decode(token.encode(), altchars=b"-_", validate=True)
        payload = raw.decode()
    except (binascii.Error, UnicodeError, ValueError) as e:
        raise InvalidCursorError(f"invalid cursor encoding: {e}") from e

    offset_part, _, token_fingerprint = payload.partition(":")

    if not (offset_part.isascii() and offset_part.isdigit()):
        raise InvalidCursorError("invalid cursor format: offset must be a non-negative integer")

    if token_fingerprint != fingerprint:
        raise InvalidCursorError("cursor does not belong to this filter set")

    offset = int(offset_part)
    if offset > MAX_OFFSET:
        raise InvalidCursorError("invalid cursor: offset out of range")

    return offset
