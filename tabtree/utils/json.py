"""Lenient JSON parsing for stored blobs.

Stored trees and snapshots may come from an older version, a foreign
writer, or a half-finished write. Restore is best-effort, so the readers
here return None instead of raising.
"""

import json
from collections.abc import Iterable
from typing import Any


def parse_json_field(
    raw: str | bytes | dict | None, *, required_keys: Iterable[str] = ()
) -> dict[str, Any] | None:
    """Parse a JSON object from a string/bytes, or pass a dict through.

    Returns None for: None, empty input, invalid JSON, non-object JSON, or an
    object missing any of required_keys.
    """
    if raw is None:
        return None
    if isinstance(raw, bytes):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError:
            return None
    if isinstance(raw, str):
        if not raw:
            return None
        try:
            raw = json.loads(raw)
        except (ValueError, TypeError):
            return None
    if not isinstance(raw, dict) or not raw:
        return None
    if any(key not in raw for key in required_keys):
        return None
    return raw
