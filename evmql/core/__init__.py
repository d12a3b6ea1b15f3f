"""
Core types for EVMQL: execution context and exceptions.
"""

from .context import QueryContext
from .exceptions import (
    ErrorKind,
    EVMQLError,
    # Parse
    ParseError,
    EmptyQueryError,
    QueryTooLongError,
    InjectionRejectedError,
    InvalidFormatError,
    UnsupportedMethodError,
    InvalidAddressError,
    MissingBlockBoundError,
    InvalidFromBlockError,
    InvalidToBlockError,
    InvertedRangeError,
    BlockRangeTooLargeError,
    # Execution
    ExecutionError,
    MissingRangeError,
    RangeTooLargeError,
    ResultTooLargeError,
    UpstreamError,
    QueryCancelledError,
    # Ambient
    ChainClientError,
    RPCError,
    TransactionDecodeError,
    ConfigError,
)

__all__ = [
    "QueryContext",
    "ErrorKind",
    "EVMQLError",
    "ParseError",
    "EmptyQueryError",
    "QueryTooLongError",
    "InjectionRejectedError",
    "InvalidFormatError",
    "UnsupportedMethodError",
    "InvalidAddressError",
    "MissingBlockBoundError",
    "InvalidFromBlockError",
    "InvalidToBlockError",
    "InvertedRangeError",
    "BlockRangeTooLargeError",
    "ExecutionError",
    "MissingRangeError",
    "RangeTooLargeError",
    "ResultTooLargeError",
    "UpstreamError",
    "QueryCancelledError",
    "ChainClientError",
    "RPCError",
    "TransactionDecodeError",
    "ConfigError",
]
