"""
Shared URL validation and classification utilities.

Used by:
- harvester/discoverer.py (known-URL filtering, source type inference)
- harvester/source_search.py (candidate validation)
"""

from typing import Optional
from urllib.parse import urlparse

# Invalid placeholder values that search results and LLMs sometimes produce
INVALID_URL_PLACEHOLDERS = {
    "not mentioned", "not specified", "unknown", "n/a", "none", "",
    "null", "undefined", "not available", "tbd",
}

# Hostname fragments -> source type, checked in order
SOURCE_TYPE_HINTS = [
    ("rss", ("feeds.", "feed.", "/rss", "/feed")),
    ("news", ("news", "cnn", "bbc", "reuters", "nytimes", "bloomberg", "apnews")),
    ("social", ("twitter", "x.com", "facebook", "instagram", "linkedin", "tiktok", "youtube")),
    ("forum", ("forum", "reddit", "discussion", "community", "ycombinator")),
    ("blog", ("blog", "medium", "wordpress", "substack")),
]


def is_valid_url(url: Optional[str]) -> bool:
    """
    Check if URL is a real http(s) URL with a hostname.

    Examples:
        >>> is_valid_url("https://example.com/page")
        True
        >>> is_valid_url("n/a")
        False
        >>> is_valid_url("ftp://example.com")
        False
    """
    if not url:
        return False
    url_lower = url.lower().strip()
    if url_lower in INVALID_URL_PLACEHOLDERS:
        return False
    parsed = urlparse(url_lower)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def url_key(url: str) -> str:
    """Case-insensitive identity of a source URL (used for known-source checks)."""
    return url.strip().lower()


def infer_source_type(url: str) -> str:
    """
    Classify a source URL by its hostname (and feed-like paths).

    Returns one of: rss, news, social, forum, blog, other.
    """
    parsed = urlparse(url.strip().lower())
    host = parsed.netloc
    target = host + parsed.path
    for source_type, hints in SOURCE_TYPE_HINTS:
        haystack = target if source_type == "rss" else host
        if any(hint in haystack for hint in hints):
            return source_type
    return "other"
