"""
Input sanitization for widget submissions and operator notes.
"""

import re
from urllib.parse import urlparse

from bs4 import BeautifulSoup

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")
_EMAIL_DISALLOWED = re.compile(r"[^\w@.-]")


def sanitize_html(value: str) -> str:
    """Drop all markup and return the plain text."""
    if not value or not isinstance(value, str):
        return ""
    soup = BeautifulSoup(value, "html.parser")
    for tag in soup(["script", "style"]):
        tag.decompose()
    return soup.get_text()


def sanitize_text(value: str) -> str:
    """Trim and remove NUL/control characters, keeping newlines and tabs."""
    if not value or not isinstance(value, str):
        return ""
    value = value.strip().replace("\0", "")
    return _CONTROL_CHARS.sub("", value)


def sanitize_email(value: str) -> str:
    if not value or not isinstance(value, str):
        return ""
    return _EMAIL_DISALLOWED.sub("", value.strip().lower())


def sanitize_url(value: str) -> str:
    """Return the URL if it is http(s) with a host, else an empty string."""
    if not value or not isinstance(value, str):
        return ""
    parsed = urlparse(value.strip())
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        return ""
    return parsed.geturl()


def sanitize_feedback_content(content: str) -> str:
    return sanitize_text(sanitize_html(content))


def sanitize_notes(notes: str) -> str:
    return sanitize_feedback_content(notes)
