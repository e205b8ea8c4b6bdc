"""URL normalization used as the cross-tree join key for bookmarks.

The source service and the destination store have unrelated ID spaces,
so a bookmark is identified on both sides by its normalized URL.
"""

from __future__ import annotations


def normalize_url(url: str) -> str:
    """Normalize a URL into the key used to match bookmarks across trees.

    The steps are applied in order: surrounding whitespace is trimmed,
    exactly one trailing slash is removed, then every backslash and every
    forward slash is escaped with a single backslash.

    Query-string ordering is left untouched, so ``?a=1&b=2`` and
    ``?b=2&a=1`` produce different keys.

    Args:
        url: The raw URL as reported by either tree.

    Returns:
        The normalized key string.
    """
    normalized = url.strip()
    if normalized.endswith("/"):
        normalized = normalized[:-1]
    return normalized.replace("\\", "\\\\").replace("/", "\\/")


def url_spellings(url: str) -> list[str]:
    """Raw spellings of ``url`` that share its normalized key.

    Destination lookups match the stored URL literally, so a bookmark
    saved as ``http://a.com`` is not found by ``http://a.com/``.  The
    result starts with ``url`` itself, followed by its trimmed form with
    and without one trailing slash.
    """
    key = normalize_url(url)
    stripped = url.strip()
    bare = stripped[:-1] if stripped.endswith("/") else stripped
    candidates = dict.fromkeys([url, stripped, bare, bare + "/"])
    return [candidate for candidate in candidates if normalize_url(candidate) == key]
