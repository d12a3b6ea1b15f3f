"""
Query execution for EVMQL.

Routes a parsed Query to its retrieval strategy:

- BALANCE: point lookup
- LOGS: ranged filter fetch
- TRANSACTIONS: concurrent range scan

and enforces the per-method range and result caps.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..cache.base import Cache, NoOpCache, query_key
from ..chain.client import ChainClient
from ..chain.types import LogRecord
from ..core.context import QueryContext
from ..core.exceptions import (
    ErrorKind,
    EVMQLError,
    ExecutionError,
    MissingRangeError,
    RangeTooLargeError,
    ResultTooLargeError,
    UpstreamError,
)
from ..utils.logging import kv
from ..utils.redaction import redact_secrets
from .model import (
    MAX_LOG_RESULTS,
    MAX_LOGS_BLOCK_RANGE,
    MAX_TRANSACTION_RESULTS,
    MAX_TRANSACTIONS_BLOCK_RANGE,
    Method,
    Query,
)
from .scanner import RangeScanner


DEFAULT_TIMEOUT = 30.0
DEFAULT_MAX_WORKERS = 5
DEFAULT_BLOCK_WINDOW = 100


@dataclass
class ExecutionStats:
    """
    Statistics from query execution.
    """

    total_time_ms: float = 0.0
    fetch_time_ms: float = 0.0
    blocks_scanned: int = 0
    items_returned: int = 0
    cache_hit: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_time_ms": self.total_time_ms,
            "fetch_time_ms": self.fetch_time_ms,
            "blocks_scanned": self.blocks_scanned,
            "items_returned": self.items_returned,
            "cache_hit": self.cache_hit,
        }


@dataclass
class QueryResult:
    """
    Result from a query execution.

    ``value`` is an int (wei) for BALANCE, a list of LogRecord for LOGS and
    a list of Transaction for TRANSACTIONS. ``from_block``/``to_block``
    are the bounds actually used, which may have been resolved from the
    chain head.
    """

    query: Query
    value: Any
    from_block: Optional[int] = None
    to_block: Optional[int] = None
    stats: ExecutionStats = field(default_factory=ExecutionStats)

    @property
    def method(self) -> Method:
        return self.query.method

    @property
    def cached(self) -> bool:
        return self.stats.cache_hit

    def __len__(self):
        if isinstance(self.value, list):
            return len(self.value)
        return 1

    def to_dict(self) -> Dict[str, Any]:
        if isinstance(self.value, list):
            value = [item.to_dict() for item in self.value]
        else:
            value = self.value
        return {
            "query": self.query.to_dict(),
            "value": value,
            "from_block": self.from_block,
            "to_block": self.to_block,
            "stats": self.stats.to_dict(),
        }


class QueryExecutor:
    """
    Executes queries against a chain-access client.

    Example:
        >>> executor = QueryExecutor(client, cache=InMemoryCache())
        >>> result = executor.execute(parse_query("SELECT BALANCE FROM 0x742d..."))
        >>> result.value
        1000000000000000000
    """

    def __init__(
        self,
        client: ChainClient,
        cache: Optional[Cache] = None,
        timeout: float = DEFAULT_TIMEOUT,
        max_workers: int = DEFAULT_MAX_WORKERS,
        default_block_window: int = DEFAULT_BLOCK_WINDOW,
        sort_transactions: bool = True,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Args:
            client: Chain-access collaborator
            cache: Result cache (no caching when None)
            timeout: Seconds allowed for a query whose context has no deadline
            max_workers: Range scanner pool size
            default_block_window: Blocks scanned by TRANSACTIONS without a BLOCK clause
            sort_transactions: Sort TRANSACTIONS results by block and index
            logger: Logger (defaults to this module's)
        """
        self.client = client
        self.cache: Cache = cache if cache is not None else NoOpCache()
        self.timeout = timeout
        self.default_block_window = DEFAULT_BLOCK_WINDOW
        self.set_default_block_window(default_block_window)
        self.sort_transactions = sort_transactions
        self.logger = logger or logging.getLogger(__name__)
        self.scanner = RangeScanner(
            client,
            max_workers=max_workers,
            max_results=MAX_TRANSACTION_RESULTS,
            logger=self.logger,
        )

    # =========================================================================
    # CONFIGURATION
    # =========================================================================

    def set_cache(self, cache: Cache) -> None:
        self.cache = cache

    def set_timeout(self, timeout: float) -> None:
        self.timeout = timeout

    def set_max_workers(self, max_workers: int) -> None:
        """Set the scanner pool size. Non-positive values are ignored."""
        self.scanner.max_workers = max_workers

    @property
    def max_workers(self) -> int:
        return self.scanner.max_workers

    def set_default_block_window(self, blocks: int) -> None:
        """Set the TRANSACTIONS default window. Non-positive values are ignored."""
        if blocks > 0:
            self.default_block_window = blocks

    # =========================================================================
    # EXECUTION
    # =========================================================================

    def execute(self, query: Query, ctx: Optional[QueryContext] = None) -> QueryResult:
        """
        Execute a parsed query.

        Args:
            query: Parsed query object
            ctx: Governing context; one with the default timeout is
                derived when it carries no deadline

        Returns:
            QueryResult object

        Raises:
            ExecutionError: One of its subclasses
        """
        if ctx is None:
            ctx = QueryContext.background()
        if ctx.deadline is None:
            ctx = ctx.with_timeout(self.timeout)
        else:
            ctx = ctx.with_cancel()

        method = getattr(query.method, "value", query.method)
        self.logger.info(
            "executing query %s",
            kv(
                method=method,
                address=query.address,
                from_block=query.from_block,
                to_block=query.to_block,
            ),
        )

        start = time.time()
        with ctx:
            try:
                if query.method == Method.BALANCE:
                    result = self._execute_balance(query, ctx)
                elif query.method == Method.LOGS:
                    result = self._execute_logs(query, ctx)
                elif query.method == Method.TRANSACTIONS:
                    result = self._execute_transactions(query, ctx)
                else:
                    raise ExecutionError(
                        f"unsupported select method: {method}",
                        kind=ErrorKind.UNSUPPORTED_METHOD,
                        method=method,
                    )
            except EVMQLError as exc:
                self.logger.error(
                    "query execution failed %s",
                    kv(
                        method=method,
                        duration_ms=round((time.time() - start) * 1000, 1),
                        error=exc,
                    ),
                )
                raise

        result.stats.total_time_ms = (time.time() - start) * 1000
        self.logger.info(
            "query execution completed %s",
            kv(
                method=method,
                duration_ms=round(result.stats.total_time_ms, 1),
                items=result.stats.items_returned,
                cached=result.stats.cache_hit,
            ),
        )
        return result

    def _execute_balance(self, query: Query, ctx: QueryContext) -> QueryResult:
        block = query.from_block
        key = query_key(Method.BALANCE.cache_prefix, query.address, block if block is not None else "latest")

        cached = self._cache_lookup(key)
        if cached is not None:
            return cached_result(query, cached, block, block)

        stats = ExecutionStats()
        balance = self._fetch(
            ctx, stats, "error fetching balance",
            lambda: self.client.balance_at(ctx, query.address, block),
            address=query.address,
            block=block,
        )

        self.cache.set(key, balance, 0)
        self.logger.debug("cached balance %s", kv(key=key))

        stats.items_returned = 1
        return QueryResult(query=query, value=balance, from_block=block, to_block=block, stats=stats)

    def _execute_logs(self, query: Query, ctx: QueryContext) -> QueryResult:
        if not query.has_range:
            raise MissingRangeError(
                "both from and to block numbers must be specified for logs query "
                "(use BLOCK <from> <to>)",
                method=query.method.value,
                address=query.address,
            )

        from_block, to_block = query.from_block, query.to_block
        self._check_range(query, from_block, to_block, MAX_LOGS_BLOCK_RANGE)

        key = query_key(Method.LOGS.cache_prefix, query.address, from_block, to_block)
        cached = self._cache_lookup(key)
        if cached is not None:
            return cached_result(query, cached, from_block, to_block)

        stats = ExecutionStats()
        logs: List[LogRecord] = self._fetch(
            ctx, stats, "error fetching logs",
            lambda: self.client.filter_logs(ctx, query.address, from_block, to_block),
            address=query.address,
            from_block=from_block,
            to_block=to_block,
        )

        if len(logs) > MAX_LOG_RESULTS:
            raise ResultTooLargeError(
                f"result too large: {len(logs)} logs (maximum: {MAX_LOG_RESULTS}); "
                "narrow the block range",
                method=query.method.value,
                address=query.address,
                from_block=from_block,
                to_block=to_block,
            )

        self.cache.set(key, list(logs), 0)
        self.logger.debug("cached logs %s", kv(key=key, count=len(logs)))

        stats.items_returned = len(logs)
        return QueryResult(query=query, value=logs, from_block=from_block, to_block=to_block, stats=stats)

    def _execute_transactions(self, query: Query, ctx: QueryContext) -> QueryResult:
        stats = ExecutionStats()

        if query.has_range:
            from_block, to_block = query.from_block, query.to_block
        else:
            from_block, to_block = self._default_window(ctx, stats, query)

        self._check_range(query, from_block, to_block, MAX_TRANSACTIONS_BLOCK_RANGE)

        key = query_key(Method.TRANSACTIONS.cache_prefix, query.address, from_block, to_block)
        cached = self._cache_lookup(key)
        if cached is not None:
            return cached_result(query, cached, from_block, to_block)

        fetch_start = time.time()
        transactions, scan_stats = self.scanner.scan(ctx, query.address, from_block, to_block)
        stats.fetch_time_ms += (time.time() - fetch_start) * 1000
        stats.blocks_scanned = scan_stats.blocks_scanned

        if self.sort_transactions:
            transactions.sort(key=lambda tx: (tx.block_number, tx.transaction_index))

        self.cache.set(key, list(transactions), 0)
        self.logger.debug("cached transactions %s", kv(key=key, count=len(transactions)))

        stats.items_returned = len(transactions)
        return QueryResult(query=query, value=transactions, from_block=from_block, to_block=to_block, stats=stats)

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _default_window(self, ctx: QueryContext, stats: ExecutionStats, query: Query) -> Tuple[int, int]:
        """The most recent ``default_block_window`` blocks, ending at the chain head."""
        head = self._fetch(
            ctx, stats, "error getting latest block",
            lambda: self.client.block_number(ctx),
            address=query.address,
        )
        from_block = max(0, head - self.default_block_window + 1)
        self.logger.debug(
            "resolved default block window %s",
            kv(from_block=from_block, to_block=head, window=self.default_block_window),
        )
        return from_block, head

    @staticmethod
    def _check_range(query: Query, from_block: int, to_block: int, limit: int) -> None:
        span = to_block - from_block
        if span > limit:
            raise RangeTooLargeError(
                f"block range too large for {query.method.value.lower()} query: "
                f"{span} blocks (maximum: {limit})",
                method=query.method.value,
                address=query.address,
                from_block=from_block,
                to_block=to_block,
            )

    def _cache_lookup(self, key: str) -> Optional[Any]:
        value, found = self.cache.get(key)
        if not found:
            return None
        self.logger.debug("cache hit %s", kv(key=key))
        return value

    def _fetch(
        self,
        ctx: QueryContext,
        stats: ExecutionStats,
        description: str,
        call: Callable[[], Any],
        **context: Any,
    ) -> Any:
        """Run one chain call, wrapping collaborator failures in UpstreamError."""
        ctx.check(**context)
        start = time.time()
        try:
            return call()
        except EVMQLError as exc:
            if exc.kind == ErrorKind.CANCELLED:
                raise
            ctx.check(**context)
            raise UpstreamError(
                f"{description}: {redact_secrets(exc.message)}", cause=exc, **context
            ) from exc
        except Exception as exc:
            # A call that timed out because the deadline passed reports the deadline
            ctx.check(**context)
            raise UpstreamError(
                f"{description}: {redact_secrets(str(exc))}", cause=exc, **context
            ) from exc
        finally:
            stats.fetch_time_ms += (time.time() - start) * 1000


def cached_result(query: Query, value: Any, from_block: Optional[int], to_block: Optional[int]) -> QueryResult:
    """Wrap a cached value in a QueryResult; lists are copied for the caller."""
    stats = ExecutionStats(cache_hit=True)
    if isinstance(value, list):
        value = list(value)
        stats.items_returned = len(value)
    else:
        stats.items_returned = 1
    return QueryResult(query=query, value=value, from_block=from_block, to_block=to_block, stats=stats)
