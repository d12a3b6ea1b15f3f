"""
Concurrent block range scanning.

Fetches every block in a range with a fixed pool of worker threads and
keeps the transactions sent from or to one address.

Layout of a scan:

    feeder  --block numbers-->  [task queue]  -->  N workers
    workers --BlockResult-->    [result queue] --> collector (caller's thread)

Both queues are bounded. Every blocking hand-off polls the scan context,
so an aborted scan never leaves a thread stuck on a full or empty queue.
"""

from __future__ import annotations

import logging
import queue
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from ..chain.client import ChainClient
from ..chain.types import Transaction, decode_transaction
from ..core.context import QueryContext
from ..core.exceptions import (
    EVMQLError,
    QueryCancelledError,
    ResultTooLargeError,
    TransactionDecodeError,
    UpstreamError,
)
from ..utils.logging import kv
from ..utils.redaction import redact_secrets
from .model import MAX_TRANSACTION_RESULTS


# How often blocked hand-offs re-check the context
POLL_INTERVAL = 0.05

_STOP = None


@dataclass
class BlockResult:
    """Outcome of scanning one block."""

    block_number: int
    transactions: List[Transaction] = field(default_factory=list)
    error: Optional[EVMQLError] = None
    skipped: int = 0


@dataclass
class ScanStats:
    blocks_scanned: int = 0
    transactions_matched: int = 0
    transactions_skipped: int = 0
    total_time_ms: float = 0.0


class RangeScanner:
    """
    Bounded worker pool over a block range.

    Example:
        >>> scanner = RangeScanner(client, max_workers=5)
        >>> txs, stats = scanner.scan(ctx, "0x742d35cc6634c0532925a3b844bc454e4438f44e", 100, 200)
    """

    def __init__(
        self,
        client: ChainClient,
        max_workers: int = 5,
        max_results: int = MAX_TRANSACTION_RESULTS,
        logger: Optional[logging.Logger] = None,
    ):
        self.client = client
        self._max_workers = 5
        self.max_workers = max_workers
        self.max_results = max_results
        self.logger = logger or logging.getLogger(__name__)

    @property
    def max_workers(self) -> int:
        return self._max_workers

    @max_workers.setter
    def max_workers(self, value: int) -> None:
        # Non-positive values keep the previous setting
        if value > 0:
            self._max_workers = value

    # =========================================================================
    # SCAN
    # =========================================================================

    def scan(
        self,
        ctx: QueryContext,
        address: str,
        from_block: int,
        to_block: int,
    ) -> Tuple[List[Transaction], ScanStats]:
        """
        Collect the transactions involving ``address`` in ``[from_block, to_block]``.

        The transactions are not ordered by block.

        Returns:
            The matching transactions and the statistics of this scan

        Raises:
            UpstreamError: A block could not be fetched (partial results are discarded)
            ResultTooLargeError: More than ``max_results`` transactions matched
            QueryCancelledError: The context finished first
        """
        address = address.lower()
        total_blocks = to_block - from_block + 1
        workers = min(self.max_workers, max(total_blocks, 1))
        stats = ScanStats()
        start = time.time()

        scan_ctx = ctx.with_cancel()
        tasks: "queue.Queue[Optional[int]]" = queue.Queue(maxsize=workers)
        results: "queue.Queue[BlockResult]" = queue.Queue(maxsize=workers)

        pool = ThreadPoolExecutor(max_workers=workers + 1, thread_name_prefix="evmql-scan")
        finished = False
        try:
            pool.submit(self._feed, scan_ctx, tasks, from_block, to_block, workers)
            for _ in range(workers):
                pool.submit(self._work, scan_ctx, tasks, results, address)

            collected: List[Transaction] = []
            received = 0
            while received < total_blocks:
                result = self._next_result(scan_ctx, results)
                if result is None:
                    self._raise_cancelled(ctx, scan_ctx, collected, address, from_block, to_block)
                received += 1
                stats.blocks_scanned += 1
                stats.transactions_skipped += result.skipped

                if isinstance(result.error, QueryCancelledError):
                    self._raise_cancelled(ctx, scan_ctx, collected, address, from_block, to_block)
                if result.error is not None:
                    raise result.error

                collected.extend(result.transactions)
                if len(collected) > self.max_results:
                    raise ResultTooLargeError(
                        f"result too large: {len(collected)} transactions "
                        f"(maximum: {self.max_results}); narrow the block range",
                        address=address,
                        from_block=from_block,
                        to_block=to_block,
                    )

            if ctx.done():
                self._raise_cancelled(ctx, scan_ctx, collected, address, from_block, to_block)

            finished = True
            stats.transactions_matched = len(collected)
            return collected, stats
        finally:
            scan_ctx.cancel()
            # On abort, workers finish their in-flight fetch and exit on their own
            pool.shutdown(wait=finished, cancel_futures=True)
            stats.total_time_ms = (time.time() - start) * 1000
            self.logger.debug(
                "range scan finished %s",
                kv(
                    address=address,
                    from_block=from_block,
                    to_block=to_block,
                    workers=workers,
                    blocks=stats.blocks_scanned,
                    skipped=stats.transactions_skipped,
                    ms=round(stats.total_time_ms, 1),
                ),
            )

    def _raise_cancelled(self, ctx, scan_ctx, collected, address, from_block, to_block) -> None:
        reason = ctx.error or scan_ctx.error or "context cancelled"
        raise QueryCancelledError(
            f"query cancelled after processing {len(collected)} transactions: {reason}",
            collected=len(collected),
            reason=reason,
            address=address,
            from_block=from_block,
            to_block=to_block,
        )

    @staticmethod
    def _next_result(ctx: QueryContext, results: "queue.Queue[BlockResult]") -> Optional[BlockResult]:
        """Wait for the next block result; None once the context is done."""
        while True:
            if ctx.done():
                return None
            try:
                return results.get(timeout=POLL_INTERVAL)
            except queue.Empty:
                continue

    # =========================================================================
    # FEEDER & WORKERS
    # =========================================================================

    @staticmethod
    def _put(ctx: QueryContext, q: queue.Queue, item) -> bool:
        """Put with cancellation; False if the context finished first."""
        while not ctx.done():
            try:
                q.put(item, timeout=POLL_INTERVAL)
                return True
            except queue.Full:
                continue
        return False

    def _feed(
        self,
        ctx: QueryContext,
        tasks: queue.Queue,
        from_block: int,
        to_block: int,
        workers: int,
    ) -> None:
        for number in range(from_block, to_block + 1):
            if not self._put(ctx, tasks, number):
                return
        for _ in range(workers):
            if not self._put(ctx, tasks, _STOP):
                return

    def _work(
        self,
        ctx: QueryContext,
        tasks: queue.Queue,
        results: queue.Queue,
        address: str,
    ) -> None:
        while not ctx.done():
            try:
                number = tasks.get(timeout=POLL_INTERVAL)
            except queue.Empty:
                continue
            if number is _STOP:
                return

            result = self._scan_block(ctx, number, address)
            if not self._put(ctx, results, result):
                return

    def _scan_block(self, ctx: QueryContext, number: int, address: str) -> BlockResult:
        """Scan one block; every failure comes back as ``BlockResult.error``."""
        try:
            return self._match_block(ctx, number, address)
        except QueryCancelledError as exc:
            return BlockResult(block_number=number, error=exc)
        except Exception as exc:
            return BlockResult(
                block_number=number,
                error=UpstreamError(
                    f"failed to get block {number}: {redact_secrets(str(exc))}",
                    cause=exc,
                    block=number,
                    address=address,
                ),
            )

    def _match_block(self, ctx: QueryContext, number: int, address: str) -> BlockResult:
        block = self.client.block_by_number(ctx, number)

        matched: List[Transaction] = []
        skipped = 0
        for raw in block.transactions:
            try:
                tx = decode_transaction(raw)
            except TransactionDecodeError as exc:
                skipped += 1
                self.logger.debug("skipping undecodable transaction %s", kv(block=number, error=exc))
                continue
            if tx.involves(address):
                matched.append(tx)

        return BlockResult(block_number=number, transactions=matched, skipped=skipped)
