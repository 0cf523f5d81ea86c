"""Pytest fixtures shared across all whalefeed tests."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable

import pytest

from whalefeed.config import (
    _ENV_OVERRIDES,
    HubConfig,
    MonitorConfig,
    ProviderConfig,
    StoreConfig,
    WhalefeedConfig,
)
from whalefeed.decoder import TRANSFER_EVENT_SIGNATURE
from whalefeed.exceptions import ConnectionFailedError, NetworkTimeoutError, RPCError
from whalefeed.models import AssetKind, WhaleEvent
from whalefeed.providers.base import (
    Block,
    ChainTransaction,
    FeeData,
    LogEntry,
    NetworkInfo,
    Receipt,
)
from whalefeed.registry import AssetRegistry

WEI = 10**18

USDT_ADDR = "0xdac17f958d2ee523a2206206994597c13d831ec7"
UNI_ADDR = "0x1f9840a85d5af5bf1d1762f925bdaddc4201f984"
STETH_ADDR = "0xae7ab96520de3a18e5e111b5eaab095312d7fe84"
UNKNOWN_TOKEN_ADDR = "0x000000000000000000000000000000000000beef"

BINANCE_14 = "0x28c6c06298d514db089934071355e5743bf21d60"
WHALE_ADDR = "0xd8da6bf26964af9d7eed9e03e53415d37aa96045"
OTHER_ADDR = "0x1111111111111111111111111111111111111111"


# ── Environment isolation ─────────────────────────────────────────────────────


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """No WHALEFEED_* variable from the host leaks into a test."""
    for env_var, _, _ in _ENV_OVERRIDES:
        monkeypatch.delenv(env_var, raising=False)
    monkeypatch.delenv("WHALEFEED_CONFIG", raising=False)
    monkeypatch.delenv("WHALEFEED_CONFIG_PATH", raising=False)


# ── Config fixtures ───────────────────────────────────────────────────────────


@pytest.fixture
def sample_config() -> WhalefeedConfig:
    """Valid config with delays shrunk for fast tests."""
    return WhalefeedConfig(
        provider=ProviderConfig(
            rpc_url="http://node.test:8545",
            request_timeout=1.0,
            poll_interval=0.01,
        ),
        monitor=MonitorConfig(
            native_threshold=Decimal("100"),
            reconnect_delay=0.01,
            max_retries=-1,
            receipt_concurrency=4,
            max_catchup_blocks=16,
            max_poll_failures=3,
            shutdown_timeout=1.0,
        ),
        store=StoreConfig(capacity=100),
        hub=HubConfig(queue_size=16),
    )


# ── Fake chain provider ───────────────────────────────────────────────────────


class FakeProvider:
    """In-memory ChainProvider with failure injection."""

    def __init__(self, head: int = 100, chain_id: int = 1) -> None:
        self.head = head
        self.network = NetworkInfo(name="mainnet", chain_id=chain_id)
        self.gas_price: int | None = 20 * 10**9
        self.blocks: dict[int, Block] = {}
        self.receipts: dict[str, Receipt] = {}

        self.connect_failures = 0       # get_network_info calls left to fail
        self.head_failures = 0          # get_block_number calls left to fail
        self.fee_failures = 0
        self.failing_blocks: set[int] = set()
        self.failing_receipts: set[str] = set()
        self.receipt_delay = 0.0
        self.hanging_receipts: set[str] = set()
        self.hang_blocks = False

        self.network_calls = 0
        self.fee_calls = 0
        self.block_requests: list[int] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.closed = False

    def add_block(
        self,
        number: int,
        transactions: list[ChainTransaction],
        logs: dict[str, list[LogEntry]] | None = None,
    ) -> Block:
        logs = logs or {}
        block = Block(
            number=number,
            hash=f"0xblock{number}",
            timestamp=1_700_000_000 + number * 12,
            transactions=transactions,
        )
        self.blocks[number] = block
        for tx in transactions:
            self.receipts[tx.hash] = Receipt(
                tx_hash=tx.hash, block_number=number, logs=logs.get(tx.hash, [])
            )
        return block

    async def get_block_number(self) -> int:
        if self.head_failures > 0:
            self.head_failures -= 1
            raise NetworkTimeoutError("head poll timed out")
        return self.head

    async def get_block(self, number: int, full_transactions: bool = True) -> Block | None:
        self.block_requests.append(number)
        if self.hang_blocks:
            await asyncio.Event().wait()
        if number in self.failing_blocks:
            raise RPCError(f"block {number} unavailable")
        return self.blocks.get(number)

    async def get_transaction_receipt(self, tx_hash: str) -> Receipt | None:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.receipt_delay:
                await asyncio.sleep(self.receipt_delay)
            if tx_hash in self.hanging_receipts:
                await asyncio.Event().wait()
            if tx_hash in self.failing_receipts:
                raise NetworkTimeoutError(f"receipt {tx_hash} timed out")
            return self.receipts.get(tx_hash)
        finally:
            self.in_flight -= 1

    async def get_network_info(self) -> NetworkInfo:
        self.network_calls += 1
        if self.connect_failures > 0:
            self.connect_failures -= 1
            raise ConnectionFailedError("connection refused")
        return self.network

    async def get_fee_data(self) -> FeeData:
        self.fee_calls += 1
        if self.fee_failures > 0:
            self.fee_failures -= 1
            raise NetworkTimeoutError("gas price timed out")
        return FeeData(gas_price=self.gas_price)

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def registry() -> AssetRegistry:
    return AssetRegistry.default()


# ── Builders ──────────────────────────────────────────────────────────────────


@pytest.fixture
def make_tx() -> Callable[..., ChainTransaction]:
    def _make(
        tx_hash: str,
        value: int = 0,
        from_addr: str = WHALE_ADDR,
        to_addr: str | None = BINANCE_14,
        gas_price: int | None = 30 * 10**9,
    ) -> ChainTransaction:
        return ChainTransaction(
            hash=tx_hash,
            from_addr=from_addr,
            to_addr=to_addr,
            value=value,
            gas_price=gas_price,
        )

    return _make


def address_topic(address: str) -> str:
    return "0x" + address[2:].lower().rjust(64, "0")


@pytest.fixture
def make_transfer_log() -> Callable[..., LogEntry]:
    def _make(
        token: str,
        amount: int,
        from_addr: str = WHALE_ADDR,
        to_addr: str = BINANCE_14,
        log_index: int | None = 0,
    ) -> LogEntry:
        return LogEntry(
            address=token,
            topics=[TRANSFER_EVENT_SIGNATURE, address_topic(from_addr), address_topic(to_addr)],
            data="0x" + format(amount, "064x"),
            log_index=log_index,
        )

    return _make


@pytest.fixture
def make_event(registry: AssetRegistry) -> Callable[..., WhaleEvent]:
    """Build a WhaleEvent directly; symbol None means native."""

    def _make(
        block_number: int,
        symbol: str | None = None,
        tx_hash: str | None = None,
        amount: str = "150",
    ) -> WhaleEvent:
        asset = registry.find_symbol(symbol) if symbol else None
        return WhaleEvent(
            tx_hash=tx_hash or f"0xtx{block_number}",
            from_addr=WHALE_ADDR,
            from_label="Unknown (0xd8dA...6045)",
            to_addr=BINANCE_14,
            to_label="Binance 14",
            amount=Decimal(amount),
            value_usd=None,
            block_number=block_number,
            detected_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
            kind=AssetKind.TOKEN if asset else AssetKind.NATIVE,
            asset=asset,
        )

    return _make
