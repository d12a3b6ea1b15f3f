"""
Utility functions for EVMQL.
"""

from .locks import RWLock
from .logging import setup_logger, get_logger, kv
from .redaction import redact_url, redact_secrets, truncate_for_display

__all__ = [
    "RWLock",
    "setup_logger",
    "get_logger",
    "kv",
    "redact_url",
    "redact_secrets",
    "truncate_for_display",
]
