"""
Input sanitization for query strings.

The injection check is a heuristic, not a lexer. It rejects payloads
that have no place in this grammar and leaves the grammar's own
keywords (SELECT, FROM, BLOCK) alone.
"""

import re
import unicodedata

ADDRESS_PATTERN = re.compile(r"0x[0-9a-f]{40}")

DANGEROUS_PATTERNS = re.compile(
    r"(union\s+select"
    r"|\bselect\b.*\bselect\b"
    r"|;\s*(drop|insert|update|delete|create|alter|select)\b"
    r"|exec\s*\("
    r"|eval\s*\("
    r"|<\s*script"
    r"|javascript\s*:)",
    re.IGNORECASE | re.DOTALL,
)


def _is_control(char: str) -> bool:
    return unicodedata.category(char) == "Cc" and not char.isspace()


def sanitize_input(text: str) -> str:
    """
    Remove control characters and normalize whitespace.

    A run of removed control characters becomes a single space so the
    tokens on either side of it do not merge.
    """
    cleaned = []
    prev_was_control = False

    for char in text:
        if _is_control(char):
            prev_was_control = True
        elif char.isspace():
            cleaned.append(" ")
            prev_was_control = False
        elif char.isprintable():
            if prev_was_control:
                cleaned.append(" ")
            cleaned.append(char)
            prev_was_control = False
        # Other non-printables (format characters, etc.) are dropped

    return normalize_whitespace("".join(cleaned).strip())


def normalize_whitespace(text: str) -> str:
    """Replace runs of whitespace with a single space."""
    return re.sub(r"\s+", " ", text)


def contains_injection(text: str) -> bool:
    """True if the text matches a known SQL or script injection pattern."""
    return DANGEROUS_PATTERNS.search(text) is not None


def normalize_address(address: str) -> str:
    """Lowercase the address and ensure the ``0x`` prefix."""
    address = address.strip().lower()
    if not address.startswith("0x"):
        address = "0x" + address
    return address


def is_valid_address(address: str) -> bool:
    """True for ``0x`` followed by exactly 40 lowercase hex characters."""
    return ADDRESS_PATTERN.fullmatch(address) is not None
