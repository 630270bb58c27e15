"""Opaque identifier generation and shape checks.

Every id the document store hands out (chatbots, contexts, embeddings) is
24 lowercase hex characters, the same shape as a BSON ObjectId: a 4-byte
big-endian timestamp followed by 8 random bytes, so ids sort roughly by
creation time.
"""

from __future__ import annotations

import re
import secrets
import time

_ID_PATTERN = re.compile(r"[0-9a-f]{24}")


def new_id() -> str:
    """Return a fresh 24-hex-character id."""
    return f"{int(time.time()) & 0xFFFFFFFF:08x}{secrets.token_hex(8)}"


def is_valid_id(value: object) -> bool:
    """Return ``True`` if *value* is a string with the opaque-id shape."""
    return isinstance(value, str) and _ID_PATTERN.fullmatch(value) is not None
