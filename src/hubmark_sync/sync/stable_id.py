"""Deterministic, content-derived bookmark identifiers.

A stable id is ``hm_`` followed by the first 32 hex characters of the
SHA-256 digest of ``canonical_url(url) + "\\n" + normalize_title(title)``.
Every device computes the same id for the same logical bookmark without
any coordination.

Canonicalisation rules (changing any of them changes every id):

1. Scheme is lowercased; ``http`` is promoted to ``https`` unless
   ``promote_https=False``.
2. Host is lowercased and a leading ``www.`` is removed.
3. A port equal to the default of the URL's own scheme (80/443) is dropped.
4. The fragment is dropped.
5. Tracking query parameters (see ``TRACKING_PARAMS``) are removed; the
   remaining parameters keep their original order and encoding unless a
   parameter had to be removed, in which case the query is re-encoded.
6. Path case is preserved.  An empty path becomes ``/`` and a single
   trailing slash is removed from any non-root path.
7. Input that does not parse as an absolute URL falls back to
   ``raw.strip().lower()``.
"""

from __future__ import annotations

import hashlib
import re
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

STABLE_ID_PREFIX = "hm_"
STABLE_ID_HASH_LENGTH = 32
STABLE_ID_PATTERN = r"^hm_[a-z0-9]{32,}$"

_STABLE_ID_RE = re.compile(r"hm_[a-z0-9]{32,}")

TRACKING_PARAMS = frozenset(
    {
        "utm_source",
        "utm_medium",
        "utm_campaign",
        "utm_term",
        "utm_content",
        "gclid",
        "fbclid",
        "ref",
        "referrer",
        "source",
        "_ga",
        "_gl",
        "mc_cid",
        "mc_eid",
    }
)

_DEFAULT_PORTS = {"http": 80, "https": 443}


def normalize_title(title: str) -> str:
    """Trim *title* and collapse internal whitespace runs to one space.

    >>> normalize_title("  Hello    World  ")
    'Hello World'
    """
    return " ".join(title.split())


def canonical_url(raw_url: str, promote_https: bool = True) -> str:
    """Return the canonical form of *raw_url* used for id generation."""
    stripped = raw_url.strip()
    try:
        parts = urlsplit(stripped)
        port = parts.port
    except ValueError:
        return stripped.lower()

    if not parts.scheme or not parts.netloc or not parts.hostname:
        return stripped.lower()

    original_scheme = parts.scheme.lower()
    scheme = original_scheme
    if promote_https and scheme == "http":
        scheme = "https"

    host = parts.hostname.lower()
    if host.startswith("www."):
        host = host[4:]
    if ":" in host:
        # IPv6 literal
        host = f"[{host}]"

    netloc = host
    if "@" in parts.netloc:
        userinfo = parts.netloc.rpartition("@")[0]
        netloc = f"{userinfo}@{netloc}"
    if port is not None and port != _DEFAULT_PORTS.get(original_scheme):
        netloc = f"{netloc}:{port}"

    path = parts.path or "/"
    if path != "/" and path.endswith("/"):
        path = path[:-1]

    query = parts.query
    if query:
        pairs = parse_qsl(query, keep_blank_values=True)
        kept = [(k, v) for k, v in pairs if k not in TRACKING_PARAMS]
        if len(kept) != len(pairs):
            query = urlencode(kept)

    return urlunsplit((scheme, netloc, path, query, ""))


def generate_stable_id(
    url: str, title: str, promote_https: bool = True
) -> str:
    """Generate the stable id for a bookmark.

    Args:
        url: Bookmark URL (any form; it is canonicalised first).
        title: Bookmark title (whitespace-normalised first).
        promote_https: Treat ``http`` and ``https`` URLs as the same page.

    Returns:
        ``hm_`` followed by 32 lowercase hex characters.
    """
    key = f"{canonical_url(url, promote_https)}\n{normalize_title(title)}"
    digest = hashlib.sha256(key.encode("utf-8")).hexdigest()
    return f"{STABLE_ID_PREFIX}{digest[:STABLE_ID_HASH_LENGTH]}"


def is_valid_stable_id(value: object) -> bool:
    """Return ``True`` if *value* is a string in stable-id format."""
    return isinstance(value, str) and bool(_STABLE_ID_RE.fullmatch(value))
