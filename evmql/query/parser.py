"""
Query parsing for EVMQL.

Parses query strings into structured, bounds-checked Query objects.

Grammar (keywords are case-insensitive):

    query   := "SELECT" method "FROM" address [ "BLOCK" integer integer ]
    method  := "BALANCE" | "LOGS" | "TRANSACTIONS"
    address := "0x" 40*HEXDIGIT
    integer := 1*DIGIT
"""

from __future__ import annotations

import re
from typing import List, Optional, Type

from ..core.exceptions import (
    BlockRangeTooLargeError,
    EmptyQueryError,
    InjectionRejectedError,
    InvalidAddressError,
    InvalidFormatError,
    InvalidFromBlockError,
    InvalidToBlockError,
    InvertedRangeError,
    MissingBlockBoundError,
    ParseError,
    QueryTooLongError,
    UnsupportedMethodError,
)
from ..utils.redaction import truncate_for_display
from .model import MAX_BLOCK_RANGE, Method, Query
from .sanitize import (
    contains_injection,
    is_valid_address,
    normalize_address,
    sanitize_input,
)


MAX_QUERY_LENGTH = 10_000

_DIGITS = re.compile(r"[0-9]+")

USAGE = "expected SELECT <method> FROM <address> [BLOCK <from> <to>]"


class QueryParser:
    """
    Parser for EVMQL queries.

    Example:
        >>> parser = QueryParser()
        >>> query = parser.parse(
        ...     "SELECT LOGS FROM 0x742d35cc6634c0532925a3b844bc454e4438f44e BLOCK 100 200"
        ... )
        >>> query.method, query.from_block, query.to_block
        (<Method.LOGS: 'LOGS'>, 100, 200)
    """

    def __init__(
        self,
        max_length: int = MAX_QUERY_LENGTH,
        max_block_range: int = MAX_BLOCK_RANGE,
    ):
        self.max_length = max_length
        self.max_block_range = max_block_range

    def parse(self, raw: str) -> Query:
        """
        Parse a query string.

        Args:
            raw: Query text as typed by the user

        Returns:
            Query object

        Raises:
            ParseError: One of its subclasses, naming what was wrong
        """
        if raw is None or not raw.strip():
            raise EmptyQueryError("empty query")

        if len(raw) > self.max_length:
            raise QueryTooLongError(
                f"query too long: {len(raw)} characters (maximum: {self.max_length})",
                length=len(raw),
            )

        text = sanitize_input(raw)
        if not text:
            raise EmptyQueryError("empty query")

        if contains_injection(text):
            raise InjectionRejectedError(
                "query contains a disallowed pattern",
                input=truncate_for_display(text),
            )

        tokens = text.split(" ")
        self._check_shape(tokens, text)

        method = self._parse_method(tokens[1])
        address = self._parse_address(tokens[3])

        from_block: Optional[int] = None
        to_block: Optional[int] = None

        if len(tokens) > 4:
            if tokens[4].upper() != "BLOCK":
                raise InvalidFormatError(
                    f"unexpected token '{truncate_for_display(tokens[4], 32)}'; {USAGE}",
                    input=truncate_for_display(text),
                )
            from_block, to_block = self._parse_block_clause(tokens[5:], method, address)

        return Query(
            method=method,
            address=address,
            from_block=from_block,
            to_block=to_block,
        )

    def _check_shape(self, tokens: List[str], text: str) -> None:
        if len(tokens) < 4 or tokens[0].upper() != "SELECT" or tokens[2].upper() != "FROM":
            raise InvalidFormatError(
                f"invalid query format; {USAGE}",
                input=truncate_for_display(text),
            )

    def _parse_method(self, token: str) -> Method:
        try:
            return Method(token.upper())
        except ValueError:
            supported = ", ".join(m.value for m in Method)
            raise UnsupportedMethodError(
                f"unsupported select method: {truncate_for_display(token, 32)} "
                f"(supported: {supported})",
                method=truncate_for_display(token, 32),
            ) from None

    def _parse_address(self, token: str) -> str:
        address = normalize_address(token)
        if not is_valid_address(address):
            raise InvalidAddressError(
                f"invalid address: {truncate_for_display(token, 48)}",
                address=truncate_for_display(token, 48),
            )
        return address

    def _parse_block_clause(self, bounds: List[str], method: Method, address: str):
        """Parse the two tokens following BLOCK."""
        if len(bounds) < 2:
            raise MissingBlockBoundError(
                "BLOCK requires both a from and a to block number",
                method=method.value,
                address=address,
            )
        if len(bounds) > 2:
            raise InvalidFormatError(
                f"unexpected trailing tokens after block range: "
                f"'{truncate_for_display(' '.join(bounds[2:]), 32)}'",
                method=method.value,
                address=address,
            )

        from_block = self._parse_block_number(bounds[0], InvalidFromBlockError, "from")
        to_block = self._parse_block_number(bounds[1], InvalidToBlockError, "to")

        if from_block > to_block:
            raise InvertedRangeError(
                f"from block {from_block} is greater than to block {to_block}",
                method=method.value,
                address=address,
                from_block=from_block,
                to_block=to_block,
            )

        span = to_block - from_block
        if span > self.max_block_range:
            raise BlockRangeTooLargeError(
                f"block range too large: {span} blocks (maximum: {self.max_block_range})",
                method=method.value,
                address=address,
                from_block=from_block,
                to_block=to_block,
            )

        return from_block, to_block

    @staticmethod
    def _parse_block_number(token: str, error: Type[ParseError], label: str) -> int:
        if not _DIGITS.fullmatch(token):
            raise error(f"invalid {label} block: {truncate_for_display(token, 32)}")
        try:
            return int(token)
        except ValueError:
            # Digit strings beyond the interpreter's int conversion limit
            raise error(f"invalid {label} block: {truncate_for_display(token, 32)}") from None


# Convenience function
def parse_query(raw: str) -> Query:
    """
    Parse a query.

    Args:
        raw: Query string

    Returns:
        Query object
    """
    return QueryParser().parse(raw)
