"""
EVMQL - a small SQL-like query language over EVM chain data.

Example:
    >>> from evmql import JsonRpcClient, InMemoryCache, QueryExecutor, parse_query
    >>>
    >>> client = JsonRpcClient("http://localhost:8545")
    >>> executor = QueryExecutor(client, cache=InMemoryCache())
    >>>
    >>> # Balance at the chain head
    >>> query = parse_query("SELECT BALANCE FROM 0x742d35Cc6634C0532925a3b844Bc454e4438f44e")
    >>> result = executor.execute(query)
    >>> result.value
    1000000000000000000
"""

__version__ = "0.1.0"
__author__ = "EVMQL Team"

from .core import (
    # Context
    QueryContext,
    # Exceptions
    ErrorKind,
    EVMQLError,
    ParseError,
    ExecutionError,
    UpstreamError,
    QueryCancelledError,
    ChainClientError,
    ConfigError,
)

from .query import (
    # Model
    Method,
    Query,
    # Parsing
    QueryParser,
    parse_query,
    # Execution
    QueryExecutor,
    QueryResult,
    ExecutionStats,
    RangeScanner,
)

from .cache import (
    Cache,
    NoOpCache,
    InMemoryCache,
    CacheInvalidator,
)

from .chain import (
    ChainClient,
    JsonRpcClient,
    Block,
    Transaction,
    LogRecord,
)

__all__ = [
    # Context
    "QueryContext",
    # Exceptions
    "ErrorKind",
    "EVMQLError",
    "ParseError",
    "ExecutionError",
    "UpstreamError",
    "QueryCancelledError",
    "ChainClientError",
    "ConfigError",
    # Query
    "Method",
    "Query",
    "QueryParser",
    "parse_query",
    "QueryExecutor",
    "QueryResult",
    "ExecutionStats",
    "RangeScanner",
    # Cache
    "Cache",
    "NoOpCache",
    "InMemoryCache",
    "CacheInvalidator",
    # Chain
    "ChainClient",
    "JsonRpcClient",
    "Block",
    "Transaction",
    "LogRecord",
]
