"""
Unit tests for logging utilities.
"""

import io
import logging
import threading
import time

import pytest

from evmql.utils.locks import RWLock
from evmql.utils.logging import get_logger, kv, setup_logger


class TestSetupLogger:
    """Test logger configuration."""

    def test_format_and_level(self):
        stream = io.StringIO()
        logger = setup_logger("evmql.test.format", "DEBUG", stream=stream)

        logger.debug("hello %s", kv(method="BALANCE"))

        output = stream.getvalue()
        assert "evmql.test.format - DEBUG - hello method=BALANCE" in output

    def test_level_filters(self):
        stream = io.StringIO()
        logger = setup_logger("evmql.test.level", "WARNING", stream=stream)

        logger.info("hidden")
        logger.warning("shown")

        assert "hidden" not in stream.getvalue()
        assert "shown" in stream.getvalue()

    def test_reconfigure_replaces_handlers(self):
        logger = setup_logger("evmql.test.handlers", "INFO", stream=io.StringIO())
        setup_logger("evmql.test.handlers", "INFO", stream=io.StringIO())
        assert len(logger.handlers) == 1

    def test_log_file(self, tmp_path):
        path = tmp_path / "evmql.log"
        logger = setup_logger("evmql.test.file", "INFO", log_file=str(path), stream=io.StringIO())

        logger.info("to file")
        for handler in logger.handlers:
            handler.flush()

        assert "to file" in path.read_text()

    def test_node_urls_redacted(self):
        stream = io.StringIO()
        logger = setup_logger("evmql.test.redact", "INFO", stream=stream)

        logger.info("connecting %s", kv(node="https://mainnet.infura.io/v3/abcdefghijklmnopqrstuvwx1234"))

        output = stream.getvalue()
        assert "abcdefghijklmnopqrstuvwx1234" not in output
        assert "node=https://mainnet.infura.io/v3/[REDACTED]" in output

    def test_unknown_level(self):
        with pytest.raises(ValueError):
            setup_logger("evmql.test.bad", "LOUD")

    def test_get_logger_cached(self):
        first = get_logger("evmql.test.cached")
        assert get_logger("evmql.test.cached") is first
        assert isinstance(first, logging.Logger)


class TestKv:
    def test_renders_pairs(self):
        assert kv(a=1, b="x") == "a=1 b=x"

    def test_skips_none(self):
        assert kv(a=None, b=2) == "b=2"


class TestRWLock:
    """Test reader/writer exclusion."""

    def test_concurrent_readers(self):
        lock = RWLock()
        inside = []
        barrier = threading.Barrier(3, timeout=2)

        def reader():
            with lock.read_locked():
                inside.append(1)
                barrier.wait()

        threads = [threading.Thread(target=reader) for _ in range(3)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=2)

        assert len(inside) == 3

    def test_writer_excludes_readers(self):
        lock = RWLock()
        events = []

        lock.acquire_write()

        def reader():
            with lock.read_locked():
                events.append("read")

        t = threading.Thread(target=reader)
        t.start()
        time.sleep(0.05)
        events.append("write-done")
        lock.release_write()
        t.join(timeout=2)

        assert events == ["write-done", "read"]
