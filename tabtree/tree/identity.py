"""Node identity and URL normalization.

Node ids are derived from external tab ids, so the same tab always maps to
the same node and lookup by tab id is a plain dict access.
"""

from urllib.parse import urlsplit, urlunsplit

NODE_ID_PREFIX = "tab:"

# Prefix for title-based match keys, so a title can never collide with a URL.
_TITLE_KEY_PREFIX = "\x00title:"


def node_id_for(external_id: int) -> str:
    return f"{NODE_ID_PREFIX}{external_id}"


def external_id_from(node_id: str | None) -> int | None:
    """Inverse of node_id_for. Returns None for ids not minted by it."""
    if not node_id or not node_id.startswith(NODE_ID_PREFIX):
        return None
    try:
        return int(node_id[len(NODE_ID_PREFIX):])
    except ValueError:
        return None


def normalize_group_id(group_id: int | None) -> int | None:
    """Browsers report "no group" as -1; we store None."""
    if isinstance(group_id, bool) or not isinstance(group_id, int):
        return None
    return group_id if group_id >= 0 else None


def normalize_url(url: str | None) -> str:
    """Strip the fragment and a single trailing slash from the path.

    Used for matching only, never for identity. Strings that don't parse as
    absolute URLs come back unchanged; None becomes "".
    """
    if not url or not isinstance(url, str):
        return ""
    try:
        parts = urlsplit(url)
    except ValueError:
        return url
    if not parts.scheme:
        return url
    path = parts.path
    if path.endswith("/"):
        path = path[:-1]
    return urlunsplit((parts.scheme, parts.netloc, path, parts.query, ""))


def match_key(url: str | None, title: str | None = None) -> str:
    """Key used to pair current tabs with previously recorded ones.

    Normalized URL when there is one, otherwise the title.
    """
    normalized = normalize_url(url)
    if normalized:
        return normalized
    if title:
        return f"{_TITLE_KEY_PREFIX}{title}"
    return ""
