"""
Structured query representation.

A Query is produced once by the parser and is read-only afterwards.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


# Hard cap applied at parse time, independent of method
MAX_BLOCK_RANGE = 10_000

# Per-method caps enforced again by the executor
MAX_LOGS_BLOCK_RANGE = 10_000
MAX_TRANSACTIONS_BLOCK_RANGE = 1_000

# Post-fetch result caps
MAX_LOG_RESULTS = 10_000
MAX_TRANSACTION_RESULTS = 10_000


class Method(str, Enum):
    """Supported SELECT methods."""
    BALANCE = "BALANCE"
    LOGS = "LOGS"
    TRANSACTIONS = "TRANSACTIONS"

    @property
    def cache_prefix(self) -> str:
        """Prefix under which results of this method are cached."""
        return self.value.lower()

    @property
    def max_block_range(self) -> Optional[int]:
        """Largest allowed ``to_block - from_block``, or None if uncapped."""
        return _METHOD_RANGE_CAPS.get(self)


_METHOD_RANGE_CAPS = {
    Method.LOGS: MAX_LOGS_BLOCK_RANGE,
    Method.TRANSACTIONS: MAX_TRANSACTIONS_BLOCK_RANGE,
}


@dataclass(frozen=True)
class Query:
    """
    Parsed query representation.

    Attributes:
        method: What to retrieve
        address: Canonical lowercase ``0x``-prefixed address
        from_block: Optional first block (inclusive)
        to_block: Optional last block (inclusive)
    """

    method: Method
    address: str
    from_block: Optional[int] = None
    to_block: Optional[int] = None

    @property
    def has_range(self) -> bool:
        return self.from_block is not None and self.to_block is not None

    @property
    def block_span(self) -> Optional[int]:
        """``to_block - from_block`` when both bounds are present."""
        if not self.has_range:
            return None
        return self.to_block - self.from_block

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        result: Dict[str, Any] = {
            "method": self.method.value,
            "address": self.address,
        }
        if self.from_block is not None:
            result["from_block"] = self.from_block
        if self.to_block is not None:
            result["to_block"] = self.to_block
        return result

    def __str__(self) -> str:
        text = f"SELECT {self.method.value} FROM {self.address}"
        if self.has_range:
            text += f" BLOCK {self.from_block} {self.to_block}"
        return text


def balance_query(address: str, from_block: Optional[int] = None, to_block: Optional[int] = None) -> Query:
    return Query(Method.BALANCE, address.lower(), from_block, to_block)


def logs_query(address: str, from_block: Optional[int] = None, to_block: Optional[int] = None) -> Query:
    return Query(Method.LOGS, address.lower(), from_block, to_block)


def transactions_query(address: str, from_block: Optional[int] = None, to_block: Optional[int] = None) -> Query:
    return Query(Method.TRANSACTIONS, address.lower(), from_block, to_block)
