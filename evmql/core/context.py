"""
Cancellable, deadline-bearing execution context.

A single QueryContext is threaded from the top-level call through the
executor into every chain-access call and every range-scan worker.
Cancelling a context cancels all contexts derived from it.
"""

from __future__ import annotations

import threading
import time
from typing import List, Optional

from .exceptions import QueryCancelledError


CANCELLED = "context cancelled"
DEADLINE_EXCEEDED = "context deadline exceeded"


class QueryContext:
    """
    Context for query execution.

    Example:
        >>> ctx = QueryContext.background().with_timeout(30)
        >>> with ctx:
        ...     executor.execute(query, ctx)
    """

    def __init__(
        self,
        deadline: Optional[float] = None,
        parent: Optional["QueryContext"] = None,
    ):
        """
        Args:
            deadline: Absolute deadline on the ``time.monotonic()`` clock
            parent: Context this one derives from
        """
        if parent is not None and parent.deadline is not None:
            deadline = parent.deadline if deadline is None else min(deadline, parent.deadline)

        self._deadline = deadline
        self._parent = parent
        self._cancelled = threading.Event()
        self._children: List[QueryContext] = []
        self._lock = threading.Lock()

        if parent is not None:
            parent._attach(self)

    @classmethod
    def background(cls) -> "QueryContext":
        """Root context with no deadline."""
        return cls()

    # =========================================================================
    # DERIVATION
    # =========================================================================

    def with_timeout(self, seconds: float) -> "QueryContext":
        """Derive a child whose deadline is at most ``seconds`` from now."""
        return QueryContext(deadline=time.monotonic() + seconds, parent=self)

    def with_cancel(self) -> "QueryContext":
        """Derive a child that can be cancelled independently."""
        return QueryContext(parent=self)

    def _attach(self, child: "QueryContext") -> None:
        with self._lock:
            self._children.append(child)
            cancelled = self._cancelled.is_set()
        if cancelled:
            child.cancel()

    def _detach(self, child: "QueryContext") -> None:
        with self._lock:
            if child in self._children:
                self._children.remove(child)

    # =========================================================================
    # STATE
    # =========================================================================

    @property
    def deadline(self) -> Optional[float]:
        return self._deadline

    def cancel(self) -> None:
        """Cancel this context and everything derived from it."""
        with self._lock:
            if self._cancelled.is_set():
                return
            self._cancelled.set()
            children = list(self._children)
            self._children.clear()

        for child in children:
            child.cancel()

        if self._parent is not None:
            self._parent._detach(self)

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, or None if there is none."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def done(self) -> bool:
        if self._cancelled.is_set():
            return True
        return self._deadline is not None and time.monotonic() >= self._deadline

    @property
    def error(self) -> Optional[str]:
        """Why the context is done, or None while it is live."""
        if self._cancelled.is_set():
            return CANCELLED
        if self._deadline is not None and time.monotonic() >= self._deadline:
            return DEADLINE_EXCEEDED
        return None

    def wait(self, timeout: Optional[float] = None) -> bool:
        """
        Block until the context is done or ``timeout`` elapses.

        Returns:
            True if the context is done
        """
        end = None if timeout is None else time.monotonic() + timeout
        while not self.done():
            limits = []
            if self._deadline is not None:
                limits.append(self._deadline - time.monotonic())
            if end is not None:
                limits.append(end - time.monotonic())
            if limits and min(limits) <= 0:
                break
            self._cancelled.wait(min(limits) if limits else None)
        return self.done()

    def check(self, collected: int = 0, **context) -> None:
        """Raise QueryCancelledError if the context is done."""
        reason = self.error
        if reason is not None:
            raise QueryCancelledError(
                f"query cancelled after processing {collected} items: {reason}",
                collected=collected,
                reason=reason,
                **context,
            )

    def __enter__(self) -> "QueryContext":
        return self

    def __exit__(self, *args) -> None:
        self.cancel()
