"""
Redaction helpers for user-visible text.

Node URLs commonly embed API keys (``https://mainnet.infura.io/v3/<key>``)
or basic-auth credentials. Anything that may reach a log line or an
error message goes through ``redact_secrets`` first.
"""

import re
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

REDACTED = "[REDACTED]"

PLACEHOLDERS = ("YOUR_API_KEY", "YOUR_KEY")

# Long opaque tokens in URL paths and query strings
_SECRET_TOKEN = re.compile(r"^[A-Za-z0-9_\-]{20,}$")
_URL_IN_TEXT = re.compile(r"\b[a-zA-Z][a-zA-Z0-9+.\-]*://[^\s'\"<>]+")


def redact_url(url: str) -> str:
    """
    Strip credentials from a URL.

    Drops userinfo, and replaces long opaque path segments and query
    values with a placeholder.
    """
    try:
        parts = urlsplit(url)
    except ValueError:
        return REDACTED

    netloc = parts.netloc
    if "@" in netloc:
        netloc = f"{REDACTED}@{netloc.rsplit('@', 1)[1]}"

    path = "/".join(
        REDACTED if _SECRET_TOKEN.match(segment) else segment
        for segment in parts.path.split("/")
    )

    query = parts.query
    if query:
        pairs = parse_qsl(query, keep_blank_values=True)
        query = urlencode(
            [(key, REDACTED if value else value) for key, value in pairs],
            safe="[]",
        )

    return urlunsplit((parts.scheme, netloc, path, query, parts.fragment))


def redact_secrets(text: str) -> str:
    """Redact every URL found in free text, plus known key placeholders."""
    if not text:
        return ""

    text = _URL_IN_TEXT.sub(lambda match: redact_url(match.group(0)), text)
    for placeholder in PLACEHOLDERS:
        text = text.replace(placeholder, REDACTED)
    return text


def truncate_for_display(text: str, max_len: int = 64) -> str:
    """Truncate long strings for safe display in error messages."""
    if len(text) <= max_len:
        return text
    return text[:max_len] + "..."
