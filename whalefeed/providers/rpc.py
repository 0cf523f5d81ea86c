"""
Ethereum JSON-RPC provider.

Talks to any node exposing the standard JSON-RPC API over HTTP (Geth,
Erigon, Nethermind, hosted endpoints).

Design decisions:
- Uses async httpx for all HTTP calls, one shared AsyncClient.
- Request timeout is enforced by httpx; the monitor adds its own per-call
  deadline on top.
- Hex quantities are decoded to int here; nothing downstream sees raw hex
  except log topics/data, which the decoder owns.
"""

from __future__ import annotations

import itertools
import logging
from typing import Any

import httpx

from whalefeed.exceptions import (
    ConnectionFailedError,
    NetworkError,
    NetworkTimeoutError,
    RateLimitError,
    RPCError,
)
from whalefeed.providers.base import (
    Block,
    ChainTransaction,
    FeeData,
    LogEntry,
    NetworkInfo,
    Receipt,
)

logger = logging.getLogger(__name__)

DEFAULT_RPC_URL = "http://localhost:8545"

# chain id → network name, as reported by common client libraries
NETWORK_NAMES: dict[int, str] = {
    1: "mainnet",
    5: "goerli",
    10: "optimism",
    137: "matic",
    8453: "base",
    17000: "holesky",
    42161: "arbitrum",
    11155111: "sepolia",
}


class JsonRpcProvider:
    """
    Async JSON-RPC client implementing ChainProvider.
    """

    def __init__(
        self,
        url: str = DEFAULT_RPC_URL,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._url = url
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._ids = itertools.count(1)

    @property
    def url(self) -> str:
        return self._url

    async def get_block_number(self) -> int:
        return _hex_to_int(await self._request("eth_blockNumber", []))

    async def get_block(self, number: int, full_transactions: bool = True) -> Block | None:
        raw = await self._request("eth_getBlockByNumber", [hex(number), full_transactions])
        if raw is None:
            return None
        try:
            return _parse_block(raw)
        except (KeyError, ValueError, TypeError) as e:
            raise RPCError(
                f"Malformed block payload for block {number}: {e}",
                details={"block": number},
            ) from e

    async def get_transaction_receipt(self, tx_hash: str) -> Receipt | None:
        raw = await self._request("eth_getTransactionReceipt", [tx_hash])
        if raw is None:
            return None
        try:
            return _parse_receipt(raw)
        except (KeyError, ValueError, TypeError) as e:
            raise RPCError(
                f"Malformed receipt payload for {tx_hash}: {e}",
                details={"tx_hash": tx_hash},
            ) from e

    async def get_network_info(self) -> NetworkInfo:
        chain_id = _hex_to_int(await self._request("eth_chainId", []))
        return NetworkInfo(name=NETWORK_NAMES.get(chain_id, "unknown"), chain_id=chain_id)

    async def get_fee_data(self) -> FeeData:
        raw = await self._request("eth_gasPrice", [])
        return FeeData(gas_price=_hex_to_int(raw) if raw is not None else None)

    async def close(self) -> None:
        await self._client.aclose()

    # ──────────────────────────────────────────────────────────────
    # Private helpers
    # ──────────────────────────────────────────────────────────────

    async def _request(self, method: str, params: list[Any]) -> Any:
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params,
        }
        try:
            resp = await self._client.post(self._url, json=payload)
        except httpx.TimeoutException as e:
            raise NetworkTimeoutError(f"RPC timeout on {method}: {e}") from e
        except httpx.ConnectError as e:
            raise ConnectionFailedError(f"Cannot connect to {self._url}: {e}") from e
        except httpx.TransportError as e:
            raise NetworkError(f"Transport error on {method}: {e}") from e

        if resp.status_code == 429:
            retry_after = int(resp.headers.get("retry-after", "60") or 60)
            raise RateLimitError("RPC rate limit exceeded", retry_after=retry_after)
        if resp.status_code >= 400:
            raise RPCError(
                f"RPC HTTP {resp.status_code} on {method}",
                details={"status": resp.status_code, "method": method},
            )

        try:
            data = resp.json()
        except ValueError as e:
            raise RPCError(f"Non-JSON response to {method}") from e

        if not isinstance(data, dict):
            raise RPCError(f"Unexpected response shape to {method}")

        error = data.get("error")
        if error:
            code = error.get("code") if isinstance(error, dict) else None
            message = error.get("message", "") if isinstance(error, dict) else str(error)
            raise RPCError(
                f"RPC error on {method}: {message}",
                details={"code": code, "method": method},
            )

        return data.get("result")


def _hex_to_int(value: Any) -> int:
    if isinstance(value, int):
        return value
    if not isinstance(value, str):
        raise RPCError(f"Expected hex quantity, got {value!r}")
    try:
        return int(value, 16)
    except ValueError as e:
        raise RPCError(f"Invalid hex quantity {value!r}") from e


def _lower(address: str | None) -> str | None:
    return address.lower() if address else None


def _parse_transaction(raw: dict[str, Any]) -> ChainTransaction:
    gas_price = raw.get("gasPrice")
    return ChainTransaction(
        hash=raw["hash"],
        from_addr=raw["from"].lower(),
        to_addr=_lower(raw.get("to")),
        value=int(raw.get("value") or "0x0", 16),
        gas_price=int(gas_price, 16) if gas_price else None,
    )


def _parse_block(raw: dict[str, Any]) -> Block:
    # Without full_transactions the node returns bare hashes; nothing to classify.
    txs = [_parse_transaction(t) for t in raw.get("transactions") or [] if isinstance(t, dict)]
    return Block(
        number=int(raw["number"], 16),
        hash=raw.get("hash") or "",
        timestamp=int(raw.get("timestamp") or "0x0", 16),
        transactions=txs,
    )


def _parse_receipt(raw: dict[str, Any]) -> Receipt:
    logs = [
        LogEntry(
            address=entry["address"].lower(),
            topics=[t.lower() for t in entry.get("topics") or []],
            data=entry.get("data") or "0x",
            log_index=int(entry["logIndex"], 16) if entry.get("logIndex") else None,
        )
        for entry in raw.get("logs") or []
    ]
    block_number = raw.get("blockNumber")
    return Receipt(
        tx_hash=raw["transactionHash"],
        block_number=int(block_number, 16) if block_number else None,
        logs=logs,
    )
