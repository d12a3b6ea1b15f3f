"""
Caching and invalidation with an in-process chain client.

Runs without a node.
"""

from typing import List, Optional

from evmql import (
    Block,
    ChainClient,
    InMemoryCache,
    LogRecord,
    QueryExecutor,
    parse_query,
)
from evmql.cache import CacheInvalidator

ALICE = "0x742d35cc6634c0532925a3b844bc454e4438f44e"
BOB = "0x1111111111111111111111111111111111111111"


class StaticChain(ChainClient):
    """Fixed balances, no logs, one transfer per block from ALICE to BOB."""

    def __init__(self, head: int = 500):
        self.head = head
        self.balances = {ALICE: 5 * 10 ** 18, BOB: 10 ** 17}
        self.calls = 0

    def balance_at(self, ctx, address: str, block_number: Optional[int] = None) -> int:
        self.calls += 1
        return self.balances.get(address, 0)

    def filter_logs(self, ctx, address: str, from_block: int, to_block: int) -> List[LogRecord]:
        self.calls += 1
        return []

    def block_by_number(self, ctx, number: int) -> Block:
        self.calls += 1
        return Block(number=number, hash=hex(number), timestamp=0, transactions=[{
            "hash": "0x%064x" % number,
            "blockNumber": hex(number),
            "transactionIndex": "0x0",
            "from": ALICE,
            "to": BOB,
            "value": hex(10 ** 15),
            "nonce": hex(number),
            "gas": hex(21000),
        }])

    def block_number(self, ctx) -> int:
        return self.head

    def chain_id(self, ctx) -> int:
        return 1337


def main():
    print("=" * 60)
    print("EVMQL Cache Example")
    print("=" * 60)

    chain = StaticChain()
    cache = InMemoryCache(max_items=10, default_ttl=30, cleanup_interval=5)
    executor = QueryExecutor(chain, cache=cache)
    invalidator = CacheInvalidator(cache)

    # 1. Fill the cache
    print("\n1. Running queries...")
    for text in [
        f"SELECT BALANCE FROM {ALICE}",
        f"SELECT BALANCE FROM {BOB}",
        f"SELECT TRANSACTIONS FROM {ALICE} BLOCK 100 199",
        f"SELECT LOGS FROM {ALICE} BLOCK 0 100",
    ]:
        result = executor.execute(parse_query(text))
        print(f"   {result.method.value:<12} items={len(result)} cached={result.cached}")
    print(f"   Node calls: {chain.calls}, cache entries: {len(cache)}")

    # 2. Repeat: no node calls
    print("\n2. Repeating...")
    before = chain.calls
    result = executor.execute(parse_query(f"select transactions from {ALICE.upper().replace('0X', '0x')} block 100 199"))
    print(f"   cached={result.cached}, new node calls: {chain.calls - before}")

    # 3. Invalidate
    print("\n3. Invalidating...")
    print(f"   balance entries dropped: {invalidator.invalidate_balance()}")
    print(f"   entries for ALICE dropped: {invalidator.invalidate_address(ALICE)}")
    print(f"   remaining: {cache.keys()}")

    # 4. Statistics
    print("\n4. Cache statistics...")
    for name, value in cache.stats().to_dict().items():
        print(f"   {name}: {value}")

    cache.close()

    print("\n" + "=" * 60)
    print("Example completed!")
    print("=" * 60)


if __name__ == "__main__":
    main()
