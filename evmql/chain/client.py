"""
Chain-access clients.

``ChainClient`` is the boundary the executor and range scanner depend on.
``JsonRpcClient`` implements it against an Ethereum JSON-RPC endpoint
over HTTP.
"""

from __future__ import annotations

import itertools
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import requests
from requests.adapters import HTTPAdapter
from tenacity import (
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    stop_any,
    wait_exponential,
)

from ..core.context import QueryContext
from ..core.exceptions import ChainClientError, RPCError
from ..utils.logging import kv
from ..utils.redaction import redact_secrets, redact_url
from .types import Block, LogRecord, decode_block, decode_log, hex_to_int, to_block_tag


logger = logging.getLogger(__name__)

MAX_BACKOFF_SECONDS = 8.0


class RetryableStatusError(requests.HTTPError):
    """HTTP 429 or 5xx from the node."""


RETRYABLE_ERRORS = (requests.ConnectionError, requests.Timeout, RetryableStatusError)


class ChainClient(ABC):
    """
    Abstract chain-access collaborator.

    Every call receives the governing QueryContext and should give up
    once it is done.
    """

    @abstractmethod
    def balance_at(self, ctx: QueryContext, address: str, block_number: Optional[int] = None) -> int:
        """
        Balance of ``address`` in wei.

        Args:
            ctx: Governing context
            address: Account address
            block_number: Block to read at (None for the latest block)
        """
        pass

    @abstractmethod
    def filter_logs(self, ctx: QueryContext, address: str, from_block: int, to_block: int) -> List[LogRecord]:
        """Logs emitted by ``address`` in ``[from_block, to_block]``."""
        pass

    @abstractmethod
    def block_by_number(self, ctx: QueryContext, number: int) -> Block:
        """Block ``number`` with its full transaction list."""
        pass

    @abstractmethod
    def block_number(self, ctx: QueryContext) -> int:
        """Number of the chain head."""
        pass

    def chain_id(self, ctx: QueryContext) -> int:
        raise NotImplementedError(f"{type(self).__name__} does not report a chain id")

    def close(self) -> None:
        pass


class JsonRpcClient(ChainClient):
    """
    Ethereum JSON-RPC client over HTTP.

    Transport failures (connection errors, timeouts, HTTP 429/5xx) are
    retried with exponential backoff; JSON-RPC error objects are not.

    Example:
        >>> client = JsonRpcClient("http://localhost:8545", timeout=10)
        >>> client.block_number(QueryContext.background())
        19000000
    """

    def __init__(
        self,
        url: str,
        timeout: float = 10.0,
        retry_count: int = 3,
        retry_delay: float = 2.0,
        session: Optional[requests.Session] = None,
        pool_size: int = 16,
    ):
        """
        Args:
            url: Node endpoint
            timeout: Per-request HTTP timeout in seconds
            retry_count: Extra attempts after a transport failure
            retry_delay: Initial backoff in seconds
            session: Pre-built session (a pooled one is created otherwise)
            pool_size: Connection pool size for the created session
        """
        self.url = url
        self.timeout = timeout
        self.retry_count = max(0, retry_count)
        self.retry_delay = retry_delay
        self._ids = itertools.count(1)

        if session is None:
            session = requests.Session()
            adapter = HTTPAdapter(pool_connections=pool_size, pool_maxsize=pool_size)
            session.mount("http://", adapter)
            session.mount("https://", adapter)
        self._session = session

    @property
    def safe_url(self) -> str:
        """Endpoint URL with credentials removed."""
        return redact_url(self.url)

    # =========================================================================
    # TRANSPORT
    # =========================================================================

    def call(self, ctx: QueryContext, method: str, params: List[Any]) -> Any:
        """
        Perform one JSON-RPC call.

        Returns:
            The ``result`` member of the response

        Raises:
            RPCError: The node returned an error object
            ChainClientError: Transport failed after all retries
            QueryCancelledError: The context finished first
        """
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        retrying = Retrying(
            stop=stop_any(stop_after_attempt(self.retry_count + 1), lambda state: ctx.done()),
            wait=wait_exponential(multiplier=self.retry_delay, max=MAX_BACKOFF_SECONDS),
            retry=retry_if_exception_type(RETRYABLE_ERRORS),
            sleep=ctx.wait,
            before_sleep=lambda state: logger.debug(
                "rpc transport failure, retrying %s",
                kv(method=method, attempt=state.attempt_number, backoff=state.next_action.sleep),
            ),
            reraise=True,
        )

        attempts = 0
        try:
            for attempt in retrying:
                with attempt:
                    attempts = attempt.retry_state.attempt_number
                    body = self._post(ctx, payload)
        except ValueError as exc:
            raise ChainClientError(
                f"invalid JSON-RPC response for {method}: {redact_secrets(str(exc))}",
                method=method,
            ) from exc
        except requests.RequestException as exc:
            # Retries also stop once the context is done
            ctx.check()
            raise ChainClientError(
                f"{method} request to {self.safe_url} failed: {redact_secrets(str(exc))}",
                method=method,
                attempts=attempts,
            ) from exc

        if not isinstance(body, dict):
            raise ChainClientError(f"invalid JSON-RPC response for {method}", method=method)

        if body.get("error"):
            error = body["error"]
            code = error.get("code") if isinstance(error, dict) else None
            message = error.get("message") if isinstance(error, dict) else str(error)
            raise RPCError(
                f"{method} failed: {redact_secrets(str(message))}",
                code=code,
                method=method,
            )

        if "result" not in body:
            raise ChainClientError(f"JSON-RPC response for {method} has no result", method=method)

        return body["result"]

    def _post(self, ctx: QueryContext, payload: Dict[str, Any]) -> Any:
        """One HTTP round trip; returns the decoded JSON body."""
        ctx.check()

        timeout = self.timeout
        remaining = ctx.remaining()
        if remaining is not None:
            timeout = min(timeout, max(remaining, 0.001))

        response = self._session.post(self.url, json=payload, timeout=timeout)
        if response.status_code == 429 or response.status_code >= 500:
            raise RetryableStatusError(f"HTTP {response.status_code} from node", response=response)
        response.raise_for_status()
        return response.json()

    # =========================================================================
    # CHAIN ACCESS
    # =========================================================================

    def balance_at(self, ctx: QueryContext, address: str, block_number: Optional[int] = None) -> int:
        result = self.call(ctx, "eth_getBalance", [address, to_block_tag(block_number)])
        return self._quantity(result, "eth_getBalance")

    def filter_logs(self, ctx: QueryContext, address: str, from_block: int, to_block: int) -> List[LogRecord]:
        result = self.call(ctx, "eth_getLogs", [{
            "address": address,
            "fromBlock": to_block_tag(from_block),
            "toBlock": to_block_tag(to_block),
        }])
        if not isinstance(result, list):
            raise ChainClientError("eth_getLogs returned a non-list result")
        return [decode_log(raw) for raw in result]

    def block_by_number(self, ctx: QueryContext, number: int) -> Block:
        result = self.call(ctx, "eth_getBlockByNumber", [to_block_tag(number), True])
        if result is None:
            raise ChainClientError(f"block {number} not found", block=number)
        return decode_block(result)

    def block_number(self, ctx: QueryContext) -> int:
        return self._quantity(self.call(ctx, "eth_blockNumber", []), "eth_blockNumber")

    def chain_id(self, ctx: QueryContext) -> int:
        return self._quantity(self.call(ctx, "eth_chainId", []), "eth_chainId")

    def close(self) -> None:
        self._session.close()

    @staticmethod
    def _quantity(value: Any, method: str) -> int:
        try:
            return hex_to_int(value)
        except ValueError as exc:
            raise ChainClientError(f"{method} returned an invalid quantity: {value!r}") from exc

    def __enter__(self) -> "JsonRpcClient":
        return self

    def __exit__(self, *args) -> None:
        self.close()
