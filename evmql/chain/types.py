"""
Chain record types and JSON-RPC decoding.

Quantities arrive as ``0x``-prefixed hex strings; addresses are
canonicalized to lowercase so they compare equal to parsed queries.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from ..core.exceptions import ChainClientError, TransactionDecodeError

_ADDRESS = re.compile(r"0x[0-9a-fA-F]{40}")


def hex_to_int(value: Any) -> int:
    """Decode a JSON-RPC quantity (``"0x1a"``) or pass an int through."""
    if isinstance(value, bool):
        raise ValueError(f"not a quantity: {value!r}")
    if isinstance(value, int):
        return value
    if not isinstance(value, str) or not value.startswith("0x"):
        raise ValueError(f"not a hex quantity: {value!r}")
    if value == "0x":
        return 0
    return int(value, 16)


def to_block_tag(number: Optional[int]) -> str:
    """Encode a block number for JSON-RPC; None means ``latest``."""
    if number is None:
        return "latest"
    return hex(number)


def _address(value: Any) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str) or not _ADDRESS.fullmatch(value):
        raise ValueError(f"not an address: {value!r}")
    return value.lower()


@dataclass(frozen=True)
class Transaction:
    """A transaction as it appears in a block."""

    hash: str
    block_number: int
    transaction_index: int
    sender: str
    recipient: Optional[str]  # None for contract creation
    value: int
    nonce: int
    gas: int
    input: str = "0x"

    def involves(self, address: str) -> bool:
        """True if ``address`` is the sender or the recipient."""
        return self.sender == address or self.recipient == address

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hash": self.hash,
            "block_number": self.block_number,
            "transaction_index": self.transaction_index,
            "from": self.sender,
            "to": self.recipient,
            "value": self.value,
            "nonce": self.nonce,
            "gas": self.gas,
            "input": self.input,
        }


@dataclass(frozen=True)
class LogRecord:
    """An event log emitted by a contract."""

    address: str
    topics: Tuple[str, ...]
    data: str
    block_number: int
    transaction_hash: str
    log_index: int
    removed: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "topics": list(self.topics),
            "data": self.data,
            "block_number": self.block_number,
            "transaction_hash": self.transaction_hash,
            "log_index": self.log_index,
            "removed": self.removed,
        }


@dataclass(frozen=True)
class Block:
    """
    A block with its full transaction list.

    Transactions are kept in their raw JSON-RPC form; decoding happens
    per transaction so one malformed entry does not spoil the block.
    """

    number: int
    hash: Optional[str]
    timestamp: int
    transactions: List[Dict[str, Any]] = field(default_factory=list)


def decode_transaction(raw: Dict[str, Any]) -> Transaction:
    """
    Decode a JSON-RPC transaction object.

    Raises:
        TransactionDecodeError: If a required field is missing or malformed
    """
    try:
        sender = _address(raw["from"])
        if sender is None:
            raise ValueError("missing sender")
        return Transaction(
            hash=raw["hash"],
            block_number=hex_to_int(raw["blockNumber"]),
            transaction_index=hex_to_int(raw.get("transactionIndex", "0x0")),
            sender=sender,
            recipient=_address(raw.get("to")),
            value=hex_to_int(raw.get("value", "0x0")),
            nonce=hex_to_int(raw.get("nonce", "0x0")),
            gas=hex_to_int(raw.get("gas", "0x0")),
            input=raw.get("input", "0x"),
        )
    except (KeyError, TypeError, ValueError) as exc:
        tx_hash = raw.get("hash") if isinstance(raw, dict) else None
        raise TransactionDecodeError(
            f"cannot decode transaction {tx_hash or '<unknown>'}: {exc}",
            hash=tx_hash,
        ) from exc


def decode_log(raw: Dict[str, Any]) -> LogRecord:
    """Decode a JSON-RPC log object."""
    try:
        return LogRecord(
            address=_address(raw["address"]),
            topics=tuple(raw.get("topics", ())),
            data=raw.get("data", "0x"),
            block_number=hex_to_int(raw["blockNumber"]),
            transaction_hash=raw["transactionHash"],
            log_index=hex_to_int(raw["logIndex"]),
            removed=bool(raw.get("removed", False)),
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise ChainClientError(f"cannot decode log: {exc}") from exc


def decode_block(raw: Dict[str, Any]) -> Block:
    """Decode a JSON-RPC block fetched with full transaction objects."""
    try:
        transactions = raw.get("transactions") or []
        return Block(
            number=hex_to_int(raw["number"]),
            hash=raw.get("hash"),
            timestamp=hex_to_int(raw.get("timestamp", "0x0")),
            transactions=[tx for tx in transactions if isinstance(tx, dict)],
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise ChainClientError(f"cannot decode block: {exc}") from exc
