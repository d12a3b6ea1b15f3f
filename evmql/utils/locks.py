"""
Reader/writer lock for the query cache.
"""

import threading
from contextlib import contextmanager


class RWLock:
    """
    Shared/exclusive lock over a single condition variable.

    Cache lookups share the lock; inserts, deletes and sweeps hold it
    exclusively. A writer that is waiting holds back new readers, so a
    busy read path cannot starve the sweeper.

    Example:
        >>> lock = RWLock()
        >>> with lock.read_locked():
        ...     value = items.get(key)
    """

    def __init__(self):
        self._cond = threading.Condition()
        self._active_readers = 0
        self._pending_writers = 0
        self._writing = False

    def _readable(self) -> bool:
        return not self._writing and self._pending_writers == 0

    def _writable(self) -> bool:
        return not self._writing and self._active_readers == 0

    def acquire_read(self) -> None:
        with self._cond:
            self._cond.wait_for(self._readable)
            self._active_readers += 1

    def release_read(self) -> None:
        with self._cond:
            self._active_readers -= 1
            if self._active_readers == 0:
                self._cond.notify_all()

    def acquire_write(self) -> None:
        with self._cond:
            self._pending_writers += 1
            try:
                self._cond.wait_for(self._writable)
            finally:
                self._pending_writers -= 1
            self._writing = True

    def release_write(self) -> None:
        with self._cond:
            self._writing = False
            self._cond.notify_all()

    @contextmanager
    def read_locked(self):
        self.acquire_read()
        try:
            yield
        finally:
            self.release_read()

    @contextmanager
    def write_locked(self):
        self.acquire_write()
        try:
            yield
        finally:
            self.release_write()
