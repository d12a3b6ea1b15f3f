"""
Query language for EVMQL.

Provides:
- Query model and per-method limits
- Input sanitization and the query parser
- Query execution and concurrent range scanning
"""

from .model import (
    Method,
    Query,
    balance_query,
    logs_query,
    transactions_query,
    MAX_BLOCK_RANGE,
    MAX_LOGS_BLOCK_RANGE,
    MAX_TRANSACTIONS_BLOCK_RANGE,
    MAX_LOG_RESULTS,
    MAX_TRANSACTION_RESULTS,
)
from .sanitize import (
    sanitize_input,
    contains_injection,
    normalize_address,
    is_valid_address,
)
from .parser import QueryParser, parse_query, MAX_QUERY_LENGTH
from .scanner import RangeScanner, ScanStats
from .executor import QueryExecutor, QueryResult, ExecutionStats

__all__ = [
    "Method",
    "Query",
    "balance_query",
    "logs_query",
    "transactions_query",
    "MAX_BLOCK_RANGE",
    "MAX_LOGS_BLOCK_RANGE",
    "MAX_TRANSACTIONS_BLOCK_RANGE",
    "MAX_LOG_RESULTS",
    "MAX_TRANSACTION_RESULTS",
    "sanitize_input",
    "contains_injection",
    "normalize_address",
    "is_valid_address",
    "QueryParser",
    "parse_query",
    "MAX_QUERY_LENGTH",
    "RangeScanner",
    "ScanStats",
    "QueryExecutor",
    "QueryResult",
    "ExecutionStats",
]
