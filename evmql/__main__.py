"""
Command-line interface for EVMQL.

Usage:
    evmql [--config PATH] [--network NAME] [--node URL]
    evmql --no-interactive "SELECT BALANCE FROM 0x..."
    evmql --generate-config [--init PATH]
"""

import argparse
import signal
import sys
from typing import List, Optional

from config import init_config_file, load_config, validate_config
from config.settings import Settings, get_default_config_path

from . import __version__
from .cache.base import Cache, NoOpCache
from .cache.memory import InMemoryCache
from .chain.client import JsonRpcClient
from .core.context import QueryContext
from .core.exceptions import EVMQLError
from .query.executor import QueryExecutor
from .query.parser import QueryParser
from .repl import Repl, format_result
from .utils.logging import kv, setup_logger
from .utils.redaction import redact_secrets, redact_url


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="evmql",
        description="EVMQL - query EVM chain data with a small SQL-like language",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("query", nargs="?", help="Query to run instead of starting the shell")
    parser.add_argument("--config", help="Path to configuration file")
    parser.add_argument(
        "--generate-config",
        action="store_true",
        help="Generate a default configuration file and exit",
    )
    parser.add_argument("--init", metavar="PATH", help="Path for --generate-config")
    parser.add_argument("--version", action="store_true", help="Show version information and exit")
    parser.add_argument("--network", help="Network to connect to (mainnet, sepolia, ...)")
    parser.add_argument("--node", help="Ethereum node URL (overrides config)")
    parser.add_argument("--log-level", help="Logging level (overrides config)")
    parser.add_argument("--no-cache", action="store_true", help="Disable result caching")
    parser.add_argument(
        "--no-interactive",
        action="store_true",
        help="Run the positional query and exit instead of starting the shell",
    )
    return parser


def generate_config_command(args) -> int:
    path = args.init or str(get_default_config_path())
    if init_config_file(path):
        print(f"Created default configuration file at {path}")
    else:
        print(f"Configuration file already exists at {path}")
    return 0


def load_settings(args) -> Settings:
    settings = load_config(args.config)

    # Command line flags win over file and environment
    if args.network:
        settings.select_network(args.network)
    if args.node:
        settings.node.url = args.node
    if args.log_level:
        settings.log_level = args.log_level.upper()

    validate_config(settings)
    return settings


def connect(settings: Settings, logger) -> JsonRpcClient:
    """Open the node client and report which chain it serves."""
    client = JsonRpcClient(
        settings.node.url,
        timeout=settings.node.timeout,
        retry_count=settings.node.retry_count,
        retry_delay=settings.node.retry_delay,
        pool_size=max(settings.node.max_concurrent_requests, settings.query.max_workers),
    )
    print(f"Connecting to Ethereum node at {client.safe_url}...")

    with QueryContext.background().with_timeout(settings.node.timeout) as ctx:
        chain_id = client.chain_id(ctx)
    print(f"Connected to chain with ID: {chain_id}")

    if chain_id != settings.default_chain_id:
        network = settings.get_network_by_chain_id(chain_id)
        if network is not None:
            print(f"Warning: Connected to {network.name} instead of the configured default network")
        else:
            print(f"Warning: Connected to chain ID {chain_id}, which doesn't match any configured network")
        logger.warning("chain id mismatch: expected %s, got %s", settings.default_chain_id, chain_id)

    return client


def build_cache(settings: Settings, disabled: bool) -> Cache:
    if disabled or not settings.cache.enabled:
        return NoOpCache()
    return InMemoryCache(
        max_items=settings.cache.max_items,
        default_ttl=settings.cache.default_ttl,
        cleanup_interval=settings.cache.cleanup_every,
    )


def run_single_query(text: str, parser: QueryParser, executor: QueryExecutor, settings: Settings) -> int:
    root = QueryContext.background()
    previous = signal.signal(signal.SIGINT, lambda signum, frame: root.cancel())
    try:
        query = parser.parse(text)
        with root.with_timeout(settings.query.timeout_seconds) as ctx:
            result = executor.execute(query, ctx)
    except EVMQLError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        signal.signal(signal.SIGINT, previous)

    for line in format_result(result, settings.query.result_size_limit):
        print(line)
    return 0


def run_shell(repl: Repl) -> int:
    def on_interrupt(signum, frame):
        # Ctrl-C cancels a running query; at the prompt it exits
        if not repl.interrupt():
            raise KeyboardInterrupt

    previous = signal.signal(signal.SIGINT, on_interrupt)
    try:
        return repl.run()
    except KeyboardInterrupt:
        print("\nExiting EVMQL interactive mode.")
        return 0
    finally:
        signal.signal(signal.SIGINT, previous)


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point"""
    args = build_arg_parser().parse_args(argv)

    if args.version:
        print(f"EVMQL Version {__version__}")
        return 0

    if args.generate_config:
        return generate_config_command(args)

    try:
        settings = load_settings(args)
    except EVMQLError as e:
        print(f"Invalid configuration: {redact_secrets(str(e))}", file=sys.stderr)
        return 2

    logger = setup_logger("evmql", settings.log_level, stream=sys.stderr)
    logger.debug(
        "configuration loaded %s",
        kv(node=redact_url(settings.node.url), chain_id=settings.default_chain_id),
    )

    try:
        client = connect(settings, logger)
    except EVMQLError as e:
        print(f"Failed to connect to Ethereum node: {redact_secrets(str(e))}", file=sys.stderr)
        return 1

    cache = build_cache(settings, args.no_cache)
    parser = QueryParser(max_block_range=settings.query.max_block_range)
    executor = QueryExecutor(
        client,
        cache=cache,
        timeout=float(settings.query.timeout_seconds),
        max_workers=settings.query.max_workers,
        default_block_window=settings.query.default_block_range,
        sort_transactions=settings.query.sort_transactions,
        logger=logger.getChild("executor"),
    )

    try:
        if args.query:
            return run_single_query(args.query, parser, executor, settings)
        if args.no_interactive:
            print("No query provided. Pass a query argument, or omit --no-interactive for the shell.")
            return 1

        repl = Repl(
            parser,
            executor,
            cache=cache,
            timeout=float(settings.query.timeout_seconds),
            max_history_len=settings.repl.max_history_len,
            history_file=settings.repl.history_file,
            show_timings=settings.repl.show_timings,
            max_display=settings.query.result_size_limit,
            logger=logger.getChild("repl"),
        )
        return run_shell(repl)
    finally:
        cache.close()
        client.close()


if __name__ == "__main__":
    sys.exit(main())
