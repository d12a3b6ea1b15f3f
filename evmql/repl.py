"""
Interactive shell for EVMQL.

Reads one query or shell command per line, runs it and prints the result.
"""

from __future__ import annotations

import logging
import os
import sys
import threading
import time
from collections import deque
from decimal import Decimal
from typing import Deque, List, Optional, TextIO

from .cache.base import Cache, NoOpCache
from .cache.invalidation import CacheInvalidator
from .core.context import QueryContext
from .core.exceptions import EVMQLError
from .query.executor import QueryExecutor, QueryResult
from .query.model import Method
from .query.parser import QueryParser
from .query.sanitize import is_valid_address, normalize_address
from .utils.logging import kv


PROMPT = "evmql> "
WEI_PER_ETHER = Decimal(10) ** 18

HELP_TEXT = """\
Available commands:
  SELECT BALANCE FROM <address> [BLOCK <number> <number>]  - Get account balance
  SELECT LOGS FROM <address> BLOCK <from> <to>             - Get logs within block range
  SELECT TRANSACTIONS FROM <address> [BLOCK <from> <to>]   - Get transactions
  cache size                                               - Show number of cached results
  cache clear                                              - Drop all cached results
  cache invalidate <address>                               - Drop cached results for an address
  cache invalidate balance|logs|transactions               - Drop cached results for a method
  history                                                  - Show previous queries
  help                                                     - Show this help message
  exit, quit                                               - Exit the program

Examples:
  SELECT BALANCE FROM 0x742d35Cc6634C0532925a3b844Bc454e4438f44e
  SELECT LOGS FROM 0x742d35Cc6634C0532925a3b844Bc454e4438f44e BLOCK 1000000 1001000
"""


def format_wei(wei: int) -> str:
    """Render a wei amount with its ether equivalent."""
    ether = Decimal(wei) / WEI_PER_ETHER
    return f"{wei} wei ({ether.normalize():f} ETH)"


def format_result(result: QueryResult, max_items: int = 1000) -> List[str]:
    """
    Render a query result as display lines.

    Args:
        result: Executed query result
        max_items: Most list items to print before summarizing the rest

    Returns:
        Lines to print
    """
    method = result.method
    if method == Method.BALANCE:
        return [f"Balance: {format_wei(result.value)}"]

    items = result.value
    span = f"blocks {result.from_block}-{result.to_block}"
    lines = []
    if method == Method.LOGS:
        lines.append(f"{len(items)} log(s) in {span}")
        for log in items[:max_items]:
            topic = log.topics[0] if log.topics else "-"
            lines.append(
                f"  block {log.block_number} tx {log.transaction_hash} "
                f"index {log.log_index} topic {topic}"
            )
    else:
        lines.append(f"{len(items)} transaction(s) in {span}")
        for tx in items[:max_items]:
            recipient = tx.recipient or "(contract creation)"
            lines.append(
                f"  block {tx.block_number} {tx.hash} "
                f"{tx.sender} -> {recipient} {format_wei(tx.value)}"
            )

    if len(items) > max_items:
        lines.append(f"  ... and {len(items) - max_items} more")
    return lines


class Repl:
    """
    Read-eval-print loop over a parser and an executor.

    Example:
        >>> repl = Repl(QueryParser(), executor, cache=cache)
        >>> repl.run()
    """

    def __init__(
        self,
        parser: QueryParser,
        executor: QueryExecutor,
        cache: Optional[Cache] = None,
        timeout: float = 30.0,
        max_history_len: int = 1000,
        history_file: Optional[str] = None,
        show_timings: bool = True,
        max_display: int = 1000,
        stdin: Optional[TextIO] = None,
        stdout: Optional[TextIO] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.parser = parser
        self.executor = executor
        self.cache: Cache = cache if cache is not None else NoOpCache()
        self.timeout = timeout
        self.history_file = history_file
        self.show_timings = show_timings
        self.max_display = max_display
        self.stdin = stdin or sys.stdin
        self.stdout = stdout or sys.stdout
        self.logger = logger or logging.getLogger(__name__)

        self.history: Deque[str] = deque(maxlen=max(1, max_history_len))
        self._active: Optional[QueryContext] = None
        self._active_lock = threading.Lock()

    def _print(self, text: str = "") -> None:
        print(text, file=self.stdout)

    # =========================================================================
    # LOOP
    # =========================================================================

    def run(self) -> int:
        """
        Run until ``exit``/``quit`` or end of input.

        Returns:
            Process exit code
        """
        self._load_history()
        self._print("Entering EVMQL interactive mode. Type your query, or type 'exit' to quit.")
        self._print("Type 'help' for available commands.")

        try:
            while True:
                self.stdout.write(PROMPT)
                self.stdout.flush()
                line = self.stdin.readline()
                if not line:
                    break
                if not self.handle_line(line):
                    self._print("Exiting EVMQL interactive mode.")
                    break
        finally:
            self._save_history()

        return 0

    def handle_line(self, line: str) -> bool:
        """
        Process one input line.

        Returns:
            False when the shell should exit
        """
        text = line.strip()
        if not text:
            return True

        command = text.lower()
        if command in ("exit", "quit"):
            return False
        if command == "help":
            self._print(HELP_TEXT)
            return True
        if command == "history":
            self._show_history()
            return True
        if command.split()[0] == "cache":
            self._handle_cache_command(command.split()[1:])
            return True

        self.history.append(text)
        self.run_query(text)
        self._print()
        return True

    def run_query(self, text: str) -> Optional[QueryResult]:
        """Parse, execute and print one query. Errors are printed, not raised."""
        start = time.time()
        try:
            query = self.parser.parse(text)
        except EVMQLError as e:
            self.logger.error("query parsing failed %s", kv(kind=e.kind.value, error=e))
            self._print(f"Error: {e}")
            return None

        ctx = QueryContext.background().with_timeout(self.timeout)
        with self._active_lock:
            self._active = ctx
        try:
            result = self.executor.execute(query, ctx)
        except EVMQLError as e:
            self._print(f"Error: {e}")
            return None
        finally:
            with self._active_lock:
                self._active = None
            ctx.cancel()

        for out in format_result(result, self.max_display):
            self._print(out)

        if self.show_timings:
            elapsed_ms = (time.time() - start) * 1000
            suffix = " (cached)" if result.cached else ""
            self._print(f"Executed in {elapsed_ms:.1f} ms{suffix}")

        return result

    def interrupt(self) -> bool:
        """
        Cancel the running query, if any.

        Returns:
            True if a query was cancelled
        """
        with self._active_lock:
            ctx = self._active
        if ctx is None:
            return False
        ctx.cancel()
        return True

    # =========================================================================
    # COMMANDS
    # =========================================================================

    def _show_history(self) -> None:
        if not self.history:
            self._print("No history.")
            return
        for i, entry in enumerate(self.history, 1):
            self._print(f"{i:4}  {entry}")

    def _handle_cache_command(self, args: List[str]) -> None:
        if isinstance(self.cache, NoOpCache):
            self._print("Cache is disabled.")
            return

        invalidator = CacheInvalidator(self.cache)

        if args == ["size"]:
            self._print(f"Cache entries: {self.cache.size()}")
        elif args == ["clear"]:
            invalidator.invalidate_all()
            self._print("Cache cleared.")
        elif len(args) == 2 and args[0] == "invalidate":
            target = args[1]
            methods = {m.cache_prefix: m for m in Method}
            if target in methods:
                count = invalidator.invalidate_method(methods[target])
            elif is_valid_address(normalize_address(target)):
                count = invalidator.invalidate_address(target)
            else:
                self._print(f"Error: not an address or method: {target}")
                return
            self._print(f"Invalidated {count} cache entries.")
        else:
            self._print(
                "Usage: cache size | cache clear | "
                "cache invalidate <address|balance|logs|transactions>"
            )

    # =========================================================================
    # HISTORY FILE
    # =========================================================================

    def _load_history(self) -> None:
        if not self.history_file or not os.path.exists(self.history_file):
            return
        try:
            with open(self.history_file, "r", encoding="utf-8") as f:
                for line in f:
                    line = line.rstrip("\n")
                    if line:
                        self.history.append(line)
        except OSError as e:
            self.logger.warning("could not read history file %s", kv(error=e))

    def _save_history(self) -> None:
        if not self.history_file:
            return
        try:
            with open(self.history_file, "w", encoding="utf-8") as f:
                for entry in self.history:
                    f.write(entry + "\n")
        except OSError as e:
            self.logger.warning("could not write history file %s", kv(error=e))
