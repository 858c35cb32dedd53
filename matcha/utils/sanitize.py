"""
Input sanitisation for user-supplied text.

Strips script-capable markup before anything reaches the store.  Free text
shown back to other users (names, messages, report reasons) is also HTML
escaped; the biography keeps its characters but loses dangerous markup.
"""

from __future__ import annotations

import html
import re

_SCRIPT_TAG = re.compile(r"<script[^>]*>.*?</script>", re.IGNORECASE | re.DOTALL)
_STYLE_TAG = re.compile(r"<style[^>]*>.*?</style>", re.IGNORECASE | re.DOTALL)
_IFRAME_TAG = re.compile(r"<iframe[^>]*>.*?</iframe>", re.IGNORECASE | re.DOTALL)
_OBJECT_TAG = re.compile(r"<object[^>]*>.*?</object>", re.IGNORECASE | re.DOTALL)
_EMBED_TAG = re.compile(r"<embed[^>]*>", re.IGNORECASE)
_ON_EVENT = re.compile(r"on\w+\s*=", re.IGNORECASE)
_JAVASCRIPT_SCHEME = re.compile(r"javascript\s*:", re.IGNORECASE)

_DANGEROUS_PATTERNS = (
    _SCRIPT_TAG,
    _STYLE_TAG,
    _IFRAME_TAG,
    _OBJECT_TAG,
    _EMBED_TAG,
    _ON_EVENT,
    _JAVASCRIPT_SCHEME,
)

_USERNAME_DISALLOWED = re.compile(r"[^a-zA-Z0-9_]")
_EMAIL_DISALLOWED = re.compile(r"[<>\"']")
_TAG_DISALLOWED = re.compile(r"[^a-zA-Z0-9\-_\s]")

BIOGRAPHY_MAX_LENGTH = 1000
TAG_MAX_LENGTH = 30


def _strip_dangerous(value: str) -> str:
    for pattern in _DANGEROUS_PATTERNS:
        value = pattern.sub("", value)
    return value


def sanitize_text(value: str | None) -> str:
    """Remove dangerous markup and HTML-escape what is left."""
    if value is None or not value.strip():
        return ""
    return html.escape(_strip_dangerous(value)).strip()


def sanitize_username(value: str | None) -> str:
    if value is None or not value.strip():
        return ""
    return _USERNAME_DISALLOWED.sub("", value)


def sanitize_email(value: str | None) -> str:
    if value is None or not value.strip():
        return ""
    return _EMAIL_DISALLOWED.sub("", value.strip())


def sanitize_biography(value: str | None) -> str:
    if value is None or not value.strip():
        return ""
    cleaned = _strip_dangerous(value)
    return cleaned[:BIOGRAPHY_MAX_LENGTH].strip()


def sanitize_tags(tags: list[str] | str | None) -> list[str]:
    """Normalise interest tags: safe characters only, lower case, unique, in order."""
    if not tags:
        return []
    if isinstance(tags, str):
        tags = tags.split(",")

    seen: set[str] = set()
    cleaned: list[str] = []
    for tag in tags:
        normalised = _TAG_DISALLOWED.sub("", tag).strip().lower()[:TAG_MAX_LENGTH]
        if normalised and normalised not in seen:
            seen.add(normalised)
            cleaned.append(normalised)
    return cleaned


def is_url_safe(url: str | None) -> bool:
    """Only http(s) and site-relative URLs are accepted."""
    if url is None or not url.strip():
        return False
    url = url.strip().lower()
    if url.startswith(("javascript:", "data:", "vbscript:", "file:")):
        return False
    return url.startswith(("http://", "https://", "/"))
