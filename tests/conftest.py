"""
Pytest fixtures for EVMQL tests.
"""

import threading
from collections import Counter
from typing import Any, Dict, List, Optional, Set

import pytest

from evmql.chain.client import ChainClient
from evmql.chain.types import Block, LogRecord, Transaction, decode_transaction
from evmql.core.context import QueryContext
from evmql.core.exceptions import ChainClientError


ADDRESS = "0x742d35Cc6634C0532925a3b844Bc454e4438f44e"
OTHER_ADDRESS = "0x1111111111111111111111111111111111111111"
UNRELATED_ADDRESS = "0x2222222222222222222222222222222222222222"

# Looks like an API key so redaction has something to catch
SECRET = "abcdefghijklmnopqrstuvwx1234"
SECRET_URL = f"https://mainnet.infura.io/v3/{SECRET}"


def raw_transaction(block: int, index: int, sender: str, recipient: Optional[str], value: int) -> Dict[str, Any]:
    """Build a JSON-RPC style transaction object."""
    return {
        "hash": "0x%064x" % (block * 1000 + index),
        "blockNumber": hex(block),
        "transactionIndex": hex(index),
        "from": sender,
        "to": recipient,
        "value": hex(value),
        "nonce": hex(index),
        "gas": hex(21000),
        "input": "0x",
    }


def make_log(address: str, block: int, index: int) -> LogRecord:
    return LogRecord(
        address=address.lower(),
        topics=("0x" + "ab" * 32,),
        data="0x",
        block_number=block,
        transaction_hash="0x%064x" % (block * 1000 + index),
        log_index=index,
    )


class FakeChainClient(ChainClient):
    """
    Deterministic in-memory chain.

    Block ``n`` always holds one unrelated transaction. ``ADDRESS`` sends in
    every block divisible by 3 and receives in every block divisible by 5.
    """

    def __init__(
        self,
        head: int = 200,
        chain_id: int = 1,
        balances: Optional[Dict[str, int]] = None,
        logs: Optional[List[LogRecord]] = None,
        fail_blocks: Optional[Set[int]] = None,
        malformed_blocks: Optional[Set[int]] = None,
        broken_blocks: Optional[Set[int]] = None,
        latency: float = 0.0,
        fail_balance: bool = False,
        fail_logs: bool = False,
    ):
        self.head = head
        self._chain_id = chain_id
        self.balances = {k.lower(): v for k, v in (balances or {}).items()}
        self.logs = list(logs or [])
        self.fail_blocks = set(fail_blocks or ())
        self.malformed_blocks = set(malformed_blocks or ())
        self.broken_blocks = set(broken_blocks or ())
        self.latency = latency
        self.fail_balance = fail_balance
        self.fail_logs = fail_logs

        self.calls: Counter = Counter()
        self.fetched: List[int] = []
        self._lock = threading.Lock()

    def _record(self, name: str, block: Optional[int] = None) -> None:
        with self._lock:
            self.calls[name] += 1
            if block is not None:
                self.fetched.append(block)

    def raw_transactions(self, number: int) -> List[Dict[str, Any]]:
        txs = [raw_transaction(number, 0, OTHER_ADDRESS, UNRELATED_ADDRESS, 1)]
        if number % 3 == 0:
            txs.append(raw_transaction(number, len(txs), ADDRESS, OTHER_ADDRESS, 10 ** 18))
        if number % 5 == 0:
            txs.append(raw_transaction(number, len(txs), UNRELATED_ADDRESS, ADDRESS, 2 * 10 ** 18))
        if number in self.malformed_blocks:
            txs.append({"hash": "0xbad", "blockNumber": hex(number)})
        return txs

    def expected_transactions(self, address: str, from_block: int, to_block: int) -> List[Transaction]:
        """Sequential reference scan."""
        address = address.lower()
        found = []
        for number in range(from_block, to_block + 1):
            for raw in self.raw_transactions(number):
                if "from" not in raw:
                    continue
                tx = decode_transaction(raw)
                if tx.involves(address):
                    found.append(tx)
        return found

    # =========================================================================
    # CHAIN ACCESS
    # =========================================================================

    def balance_at(self, ctx: QueryContext, address: str, block_number: Optional[int] = None) -> int:
        self._record("balance_at")
        if self.fail_balance:
            raise ChainClientError(f"connection refused by {SECRET_URL}")
        return self.balances.get(address.lower(), 0)

    def filter_logs(self, ctx: QueryContext, address: str, from_block: int, to_block: int) -> List[LogRecord]:
        self._record("filter_logs")
        if self.fail_logs:
            raise ConnectionError(f"connection reset by {SECRET_URL}")
        return [
            log for log in self.logs
            if log.address == address.lower() and from_block <= log.block_number <= to_block
        ]

    def block_by_number(self, ctx: QueryContext, number: int) -> Block:
        self._record("block_by_number", number)
        if self.latency and ctx.wait(self.latency):
            ctx.check()
        if number in self.fail_blocks:
            raise ChainClientError(f"upstream unavailable at {SECRET_URL}")
        if number > self.head:
            raise ChainClientError(f"block {number} not found")
        return Block(
            number=number,
            hash="0x%064x" % number,
            timestamp=1_700_000_000 + number * 12,
            transactions=None if number in self.broken_blocks else self.raw_transactions(number),
        )

    def block_number(self, ctx: QueryContext) -> int:
        self._record("block_number")
        return self.head

    def chain_id(self, ctx: QueryContext) -> int:
        self._record("chain_id")
        return self._chain_id


def pytest_configure(config):
    config.addinivalue_line("markers", "integration: end-to-end flows over the fake chain")
    config.addinivalue_line("markers", "slow: tests that wait on timeouts")


@pytest.fixture
def address() -> str:
    """Mixed-case address that appears in the fake chain."""
    return ADDRESS


@pytest.fixture
def canonical_address() -> str:
    return ADDRESS.lower()


@pytest.fixture
def make_client():
    """Factory for FakeChainClient with custom behaviour."""
    def _make(**kwargs) -> FakeChainClient:
        return FakeChainClient(**kwargs)
    return _make


@pytest.fixture
def fake_client() -> FakeChainClient:
    """Fake chain with head 200 and a 1 ETH balance for ADDRESS."""
    return FakeChainClient(head=200, balances={ADDRESS: 10 ** 18})


@pytest.fixture
def ctx():
    """Background context, cancelled after the test."""
    context = QueryContext.background()
    yield context
    context.cancel()


@pytest.fixture
def secret() -> str:
    return SECRET


@pytest.fixture
def other_address() -> str:
    return OTHER_ADDRESS


@pytest.fixture
def log_factory():
    """Build LogRecords: ``log_factory(address, block, index)``."""
    return make_log
