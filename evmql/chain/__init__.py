"""
Chain access for EVMQL: the collaborator interface, record types and a
JSON-RPC implementation.
"""

from .client import ChainClient, JsonRpcClient
from .types import (
    Block,
    LogRecord,
    Transaction,
    decode_block,
    decode_log,
    decode_transaction,
    hex_to_int,
    to_block_tag,
)

__all__ = [
    "ChainClient",
    "JsonRpcClient",
    "Block",
    "LogRecord",
    "Transaction",
    "decode_block",
    "decode_log",
    "decode_transaction",
    "hex_to_int",
    "to_block_tag",
]
