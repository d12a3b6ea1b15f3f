"""
Basic usage example for EVMQL.

Needs a JSON-RPC node; set EVMQL_NODE_URL (default: http://localhost:8545).
"""

import os

from evmql import (
    EVMQLError,
    InMemoryCache,
    JsonRpcClient,
    QueryContext,
    QueryExecutor,
    parse_query,
)
from evmql.repl import format_result

ADDRESS = "0x742d35Cc6634C0532925a3b844Bc454e4438f44e"


def main():
    print("=" * 60)
    print("EVMQL Basic Usage Example")
    print("=" * 60)

    # 1. Connect
    node_url = os.environ.get("EVMQL_NODE_URL", "http://localhost:8545")
    print("\n1. Connecting...")
    client = JsonRpcClient(node_url, timeout=10)
    cache = InMemoryCache(max_items=100, default_ttl=60)
    executor = QueryExecutor(client, cache=cache, max_workers=5)

    with QueryContext.background().with_timeout(10) as ctx:
        head = client.block_number(ctx)
        print(f"   Node: {client.safe_url}")
        print(f"   Chain ID: {client.chain_id(ctx)}")
        print(f"   Head block: {head}")

    # 2. Balance
    print("\n2. Balance at the chain head...")
    result = executor.execute(parse_query(f"SELECT BALANCE FROM {ADDRESS}"))
    for line in format_result(result):
        print(f"   {line}")

    # 3. Same query again comes from the cache
    print("\n3. Repeating the balance query...")
    result = executor.execute(parse_query(f"SELECT BALANCE FROM {ADDRESS.lower()}"))
    print(f"   cached={result.cached} time={result.stats.total_time_ms:.1f} ms")

    # 4. Logs over an explicit range
    print("\n4. Logs over the last 1000 blocks...")
    start = max(0, head - 999)
    result = executor.execute(parse_query(f"SELECT LOGS FROM {ADDRESS} BLOCK {start} {head}"))
    for line in format_result(result, max_items=5):
        print(f"   {line}")

    # 5. Transactions over the default window
    print("\n5. Transactions in the most recent blocks...")
    result = executor.execute(parse_query(f"SELECT TRANSACTIONS FROM {ADDRESS}"))
    for line in format_result(result, max_items=5):
        print(f"   {line}")
    print(f"   Blocks scanned: {result.stats.blocks_scanned}")

    # 6. Errors carry a kind and context
    print("\n6. Rejected queries...")
    for text in [
        f"SELECT NONCE FROM {ADDRESS}",
        f"SELECT LOGS FROM {ADDRESS}",
        f"SELECT TRANSACTIONS FROM {ADDRESS} BLOCK 0 5000",
    ]:
        try:
            executor.execute(parse_query(text))
        except EVMQLError as e:
            print(f"   {e.kind.value}: {e}")

    # 7. A short deadline cancels a long scan
    print("\n7. Cancelling a scan with a deadline...")
    try:
        with QueryContext.background().with_timeout(0.5) as ctx:
            executor.execute(parse_query(f"SELECT TRANSACTIONS FROM {ADDRESS} BLOCK {head - 999} {head}"), ctx)
    except EVMQLError as e:
        print(f"   {e}")

    cache.close()
    client.close()

    print("\n" + "=" * 60)
    print("Example completed!")
    print("=" * 60)


if __name__ == "__main__":
    main()
