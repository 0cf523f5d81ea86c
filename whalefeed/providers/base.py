"""Upstream provider protocol and the chain records it returns."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable


@dataclass(frozen=True)
class ChainTransaction:
    """
    Transaction body as returned inside a full block.

    Providers normalize addresses to lowercase and quantities to int.
    """

    hash: str
    from_addr: str
    to_addr: str | None     # None for contract creation
    value: int              # wei
    gas_price: int | None = None


@dataclass(frozen=True)
class Block:
    number: int
    hash: str
    timestamp: int          # Unix seconds
    transactions: list[ChainTransaction] = field(default_factory=list)


@dataclass(frozen=True)
class LogEntry:
    address: str            # emitting contract, lowercase
    topics: list[str]       # 0x-prefixed 32-byte hex words
    data: str               # 0x-prefixed hex
    log_index: int | None = None


@dataclass(frozen=True)
class Receipt:
    tx_hash: str
    block_number: int | None
    logs: list[LogEntry] = field(default_factory=list)


@dataclass(frozen=True)
class NetworkInfo:
    name: str
    chain_id: int


@dataclass(frozen=True)
class FeeData:
    gas_price: int | None   # wei


@runtime_checkable
class ChainProvider(Protocol):
    """
    Protocol that all upstream chain providers must implement.

    Providers are responsible for:
    - Talking to the node (transport, per-request timeout)
    - Normalizing payloads into the records above
    - Mapping transport failures onto NetworkError / RPCError

    Providers are NOT responsible for:
    - New-block notification scheduling (that's monitor.py)
    - Retry/backoff (that's monitor.py)
    - Classification or formatting
    """

    async def get_block_number(self) -> int:
        """Return the current chain head."""
        ...

    async def get_block(self, number: int, full_transactions: bool = True) -> Block | None:
        """
        Return block `number` with transaction bodies, or None if the node
        does not know it yet.
        """
        ...

    async def get_transaction_receipt(self, tx_hash: str) -> Receipt | None:
        """Return the receipt for `tx_hash`, or None if not yet available."""
        ...

    async def get_network_info(self) -> NetworkInfo:
        ...

    async def get_fee_data(self) -> FeeData:
        ...

    async def close(self) -> None:
        ...
