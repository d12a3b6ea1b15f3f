"""
Unit tests for the concurrent range scanner.
"""

import threading
import time

import pytest

from evmql.core.context import QueryContext
from evmql.core.exceptions import (
    ErrorKind,
    QueryCancelledError,
    ResultTooLargeError,
    UpstreamError,
)
from evmql.query.scanner import RangeScanner


def tx_ids(transactions):
    return {(tx.block_number, tx.transaction_index, tx.hash) for tx in transactions}


def scanner_threads():
    return [t for t in threading.enumerate() if t.name.startswith("evmql-scan")]


def wait_for_scanner_threads(timeout: float = 3.0) -> bool:
    end = time.monotonic() + timeout
    while time.monotonic() < end:
        if not scanner_threads():
            return True
        time.sleep(0.02)
    return not scanner_threads()


class TestScanResults:
    """Test what a scan returns."""

    def test_matches_sequential_scan(self, fake_client, address, ctx):
        """Test concurrent results equal a sequential reference scan as sets."""
        scanner = RangeScanner(fake_client, max_workers=5)

        result, _ = scanner.scan(ctx, address, 0, 120)
        expected = fake_client.expected_transactions(address, 0, 120)

        assert tx_ids(result) == tx_ids(expected)
        assert len(result) == len(expected)

    @pytest.mark.parametrize("workers", [1, 2, 8, 32])
    def test_worker_count_does_not_change_result(self, fake_client, address, ctx, workers):
        scanner = RangeScanner(fake_client, max_workers=workers)
        expected = fake_client.expected_transactions(address, 10, 60)
        result, _ = scanner.scan(ctx, address, 10, 60)
        assert tx_ids(result) == tx_ids(expected)

    def test_every_block_fetched_once(self, fake_client, address, ctx):
        RangeScanner(fake_client, max_workers=4).scan(ctx, address, 50, 99)
        assert sorted(fake_client.fetched) == list(range(50, 100))

    def test_single_block(self, fake_client, address, ctx):
        result, _ = RangeScanner(fake_client).scan(ctx, address, 15, 15)
        # Block 15 is divisible by 3 and by 5
        assert len(result) == 2

    def test_no_matches(self, fake_client, ctx):
        nobody = "0x" + "9" * 40
        result, stats = RangeScanner(fake_client).scan(ctx, nobody, 0, 30)
        assert result == []
        assert stats.transactions_matched == 0

    def test_address_case_insensitive(self, fake_client, address, ctx):
        scanner = RangeScanner(fake_client)
        upper, _ = scanner.scan(ctx, "0x" + address[2:].upper(), 0, 30)
        lower, _ = scanner.scan(ctx, address.lower(), 0, 30)
        assert tx_ids(upper) == tx_ids(lower)

    def test_malformed_transactions_skipped(self, make_client, address, ctx):
        client = make_client(head=100, malformed_blocks={3, 4, 5})
        scanner = RangeScanner(client)

        result, stats = scanner.scan(ctx, address, 0, 10)

        assert tx_ids(result) == tx_ids(client.expected_transactions(address, 0, 10))
        assert stats.transactions_skipped == 3

    def test_stats(self, fake_client, address, ctx):
        scanner = RangeScanner(fake_client)
        result, stats = scanner.scan(ctx, address, 0, 19)

        assert stats.blocks_scanned == 20
        assert stats.transactions_matched == len(result)

    def test_concurrent_scans_keep_their_own_stats(self, fake_client, address, ctx):
        scanner = RangeScanner(fake_client, max_workers=2)
        outcomes = {}

        def run(name, to_block):
            outcomes[name] = scanner.scan(ctx, address, 0, to_block)

        threads = [
            threading.Thread(target=run, args=("short", 9)),
            threading.Thread(target=run, args=("long", 99)),
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=5)

        assert outcomes["short"][1].blocks_scanned == 10
        assert outcomes["long"][1].blocks_scanned == 100


class TestScanFailures:
    """Test aborted scans."""

    def test_block_failure_aborts(self, make_client, address, ctx, secret):
        client = make_client(head=200, fail_blocks={42})

        with pytest.raises(UpstreamError) as exc_info:
            RangeScanner(client, max_workers=4).scan(ctx, address, 0, 100)

        error = exc_info.value
        assert error.kind == ErrorKind.UPSTREAM_FAILURE
        assert "42" in str(error)
        assert error.context["block"] == 42
        assert secret not in str(error)
        assert error.cause is not None

    def test_unexpected_block_error_aborts_promptly(self, make_client, address):
        """Test a worker crash past the fetch still reaches the collector."""
        client = make_client(head=50, broken_blocks={5})
        ctx = QueryContext.background().with_timeout(3.0)

        start = time.monotonic()
        with pytest.raises(UpstreamError) as exc_info:
            RangeScanner(client, max_workers=2).scan(ctx, address, 1, 10)
        elapsed = time.monotonic() - start

        assert elapsed < 1.0
        assert exc_info.value.context["block"] == 5
        assert isinstance(exc_info.value.cause, TypeError)
        assert wait_for_scanner_threads()

    def test_missing_block_aborts(self, make_client, address, ctx):
        client = make_client(head=50)
        with pytest.raises(UpstreamError):
            RangeScanner(client).scan(ctx, address, 40, 60)

    def test_result_cap(self, fake_client, address, ctx):
        scanner = RangeScanner(fake_client, max_results=5)
        with pytest.raises(ResultTooLargeError):
            scanner.scan(ctx, address, 0, 100)

    def test_result_cap_boundary(self, fake_client, address, ctx):
        expected = len(fake_client.expected_transactions(address, 0, 30))

        scanner = RangeScanner(fake_client, max_results=expected)
        result, _ = scanner.scan(ctx, address, 0, 30)
        assert len(result) == expected

        scanner.max_results = expected - 1
        with pytest.raises(ResultTooLargeError):
            scanner.scan(ctx, address, 0, 30)

    def test_threads_released_after_failure(self, make_client, address, ctx):
        client = make_client(head=500, fail_blocks={5}, latency=0.005)

        with pytest.raises(UpstreamError):
            RangeScanner(client, max_workers=4).scan(ctx, address, 0, 400)

        assert wait_for_scanner_threads()
        assert len(client.fetched) < 401


class TestScanCancellation:
    """Test cancellation and deadlines."""

    def test_already_cancelled(self, fake_client, address):
        ctx = QueryContext.background()
        ctx.cancel()

        with pytest.raises(QueryCancelledError) as exc_info:
            RangeScanner(fake_client).scan(ctx, address, 0, 50)

        assert exc_info.value.collected == 0

    def test_cancel_mid_scan(self, make_client, address):
        """Test cancellation returns promptly with a partial count."""
        client = make_client(head=1000, latency=0.01)
        ctx = QueryContext.background()
        total = len(client.expected_transactions(address, 0, 999))

        threading.Timer(0.1, ctx.cancel).start()
        start = time.monotonic()
        with pytest.raises(QueryCancelledError) as exc_info:
            RangeScanner(client, max_workers=4).scan(ctx, address, 0, 999)
        elapsed = time.monotonic() - start

        assert elapsed < 2.0
        assert 0 <= exc_info.value.collected <= total
        assert "cancelled" in str(exc_info.value)
        assert wait_for_scanner_threads()

    def test_deadline_mid_scan(self, make_client, address):
        client = make_client(head=1000, latency=0.01)
        ctx = QueryContext.background().with_timeout(0.1)

        with pytest.raises(QueryCancelledError) as exc_info:
            RangeScanner(client, max_workers=2).scan(ctx, address, 0, 999)

        assert "deadline" in str(exc_info.value)
        assert wait_for_scanner_threads()

    def test_caller_context_untouched(self, fake_client, address, ctx):
        RangeScanner(fake_client).scan(ctx, address, 0, 10)
        assert not ctx.done()


class TestWorkerSetting:
    def test_non_positive_ignored(self, fake_client):
        scanner = RangeScanner(fake_client, max_workers=3)
        scanner.max_workers = 0
        assert scanner.max_workers == 3
        scanner.max_workers = -2
        assert scanner.max_workers == 3
        scanner.max_workers = 7
        assert scanner.max_workers == 7

    def test_non_positive_at_construction(self, fake_client):
        assert RangeScanner(fake_client, max_workers=0).max_workers == 5
