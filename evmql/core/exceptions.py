"""
Custom exceptions for EVMQL.

Two families reach the caller: ``ParseError`` from the query parser and
``ExecutionError`` from the executor and range scanner. Every error
carries an ``ErrorKind`` and a ``context`` dict (method, address, range
or cause) so it can be diagnosed without inspecting internals.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(str, Enum):
    """Machine-readable error categories."""
    # Parse-time
    EMPTY_QUERY = "empty_query"
    QUERY_TOO_LONG = "query_too_long"
    INJECTION_REJECTED = "injection_rejected"
    INVALID_FORMAT = "invalid_format"
    UNSUPPORTED_METHOD = "unsupported_method"
    INVALID_ADDRESS = "invalid_address"
    MISSING_BLOCK_BOUND = "missing_block_bound"
    INVALID_FROM_BLOCK = "invalid_from_block"
    INVALID_TO_BLOCK = "invalid_to_block"
    INVERTED_RANGE = "inverted_range"
    RANGE_TOO_LARGE = "range_too_large"
    # Execution-time
    MISSING_RANGE = "missing_range"
    RESULT_TOO_LARGE = "result_too_large"
    UPSTREAM_FAILURE = "upstream_failure"
    CANCELLED = "cancelled"
    # Ambient
    CHAIN_CLIENT = "chain_client"
    CONFIG = "config"


class EVMQLError(Exception):
    """Base exception for EVMQL."""

    kind: ErrorKind = ErrorKind.INVALID_FORMAT

    def __init__(
        self,
        message: str,
        kind: Optional[ErrorKind] = None,
        **context: Any,
    ):
        super().__init__(message)
        self.message = message
        if kind is not None:
            self.kind = kind
        self.context: Dict[str, Any] = context

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": type(self).__name__,
            "kind": self.kind.value,
            "message": self.message,
            "context": dict(self.context),
        }


# =============================================================================
# PARSE ERRORS
# =============================================================================

class ParseError(EVMQLError):
    """The query string could not be turned into a Query."""
    pass


class EmptyQueryError(ParseError):
    """Query string is empty or whitespace only."""
    kind = ErrorKind.EMPTY_QUERY


class QueryTooLongError(ParseError):
    """Query string exceeds the maximum accepted length."""
    kind = ErrorKind.QUERY_TOO_LONG


class InjectionRejectedError(ParseError):
    """Query string matches a known injection pattern."""
    kind = ErrorKind.INJECTION_REJECTED


class InvalidFormatError(ParseError):
    """Query does not follow SELECT <method> FROM <address> [BLOCK <from> <to>]."""
    kind = ErrorKind.INVALID_FORMAT


class UnsupportedMethodError(ParseError):
    """Method is not one of BALANCE, LOGS, TRANSACTIONS."""
    kind = ErrorKind.UNSUPPORTED_METHOD


class InvalidAddressError(ParseError):
    """Address is not 0x followed by 40 hex characters."""
    kind = ErrorKind.INVALID_ADDRESS


class MissingBlockBoundError(ParseError):
    """BLOCK clause is missing one or both bounds."""
    kind = ErrorKind.MISSING_BLOCK_BOUND


class InvalidFromBlockError(ParseError):
    """From-block is not a non-negative base-10 integer."""
    kind = ErrorKind.INVALID_FROM_BLOCK


class InvalidToBlockError(ParseError):
    """To-block is not a non-negative base-10 integer."""
    kind = ErrorKind.INVALID_TO_BLOCK


class InvertedRangeError(ParseError):
    """From-block is greater than to-block."""
    kind = ErrorKind.INVERTED_RANGE


class BlockRangeTooLargeError(ParseError):
    """Block span exceeds the hard parse-time cap."""
    kind = ErrorKind.RANGE_TOO_LARGE


# =============================================================================
# EXECUTION ERRORS
# =============================================================================

class ExecutionError(EVMQLError):
    """A valid query could not be executed."""
    pass


class MissingRangeError(ExecutionError):
    """Method requires a block range but the query has none."""
    kind = ErrorKind.MISSING_RANGE


class RangeTooLargeError(ExecutionError):
    """Block span exceeds the method-specific cap."""
    kind = ErrorKind.RANGE_TOO_LARGE


class ResultTooLargeError(ExecutionError):
    """Result set exceeds the maximum number of items."""
    kind = ErrorKind.RESULT_TOO_LARGE


class UpstreamError(ExecutionError):
    """The chain-access collaborator failed. The original error is kept in ``cause``."""

    kind = ErrorKind.UPSTREAM_FAILURE

    def __init__(self, message: str, cause: Optional[BaseException] = None, **context: Any):
        super().__init__(message, **context)
        self.cause = cause


class QueryCancelledError(ExecutionError):
    """The governing context was cancelled or its deadline passed."""

    kind = ErrorKind.CANCELLED

    def __init__(self, message: str, collected: int = 0, **context: Any):
        super().__init__(message, collected=collected, **context)
        self.collected = collected


# =============================================================================
# AMBIENT ERRORS
# =============================================================================

class ChainClientError(EVMQLError):
    """Error raised by a chain-access client."""
    kind = ErrorKind.CHAIN_CLIENT


class RPCError(ChainClientError):
    """JSON-RPC error object returned by the node."""

    def __init__(self, message: str, code: Optional[int] = None, **context: Any):
        super().__init__(message, code=code, **context)
        self.code = code


class TransactionDecodeError(ChainClientError):
    """A raw transaction could not be decoded."""
    pass


class ConfigError(EVMQLError):
    """Invalid configuration."""
    kind = ErrorKind.CONFIG
