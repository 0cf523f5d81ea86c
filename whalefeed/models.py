"""
Shared data models for whalefeed.

These dataclasses are the canonical data shapes used across all modules:
the decoder produces transfers, the classifier consumes them, the formatter
turns whales into WhaleEvent, and the store/hub/server render them.
All records are frozen: nothing is updated after creation, only appended
to the store or evicted from it.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Context, Decimal
from enum import Enum

# 2**256 has 78 decimal digits; keep every digit when normalizing.
_WIDE = Context(prec=100)


class AssetKind(str, Enum):
    """Wire values match the `type` field consumed by the dashboard."""

    NATIVE = "ETH"
    TOKEN = "ERC20"


@dataclass(frozen=True)
class AssetDescriptor:
    """A registered asset and its whale threshold (in whole units)."""

    symbol: str
    name: str
    address: str | None     # lower-cased; None for the native asset
    decimals: int
    category: str           # "stablecoin" | "defi" | "meme" | "wrapped" | ...
    whale_threshold: Decimal
    priority: str = "medium"

    @property
    def is_stablecoin(self) -> bool:
        return self.category == "stablecoin"

    def to_dict(self) -> dict:
        return {
            "symbol": self.symbol,
            "name": self.name,
            "address": self.address,
            "decimals": self.decimals,
            "category": self.category,
            "priority": self.priority,
            "whaleThreshold": decimal_to_str(self.whale_threshold),
        }


@dataclass(frozen=True)
class NativeTransfer:
    """Plain value transfer carried by a transaction."""

    tx_hash: str
    from_addr: str
    to_addr: str | None     # None for contract creation
    amount: int             # wei
    block_number: int
    gas_price: int | None = None    # wei


@dataclass(frozen=True)
class TokenTransfer:
    """ERC-20 Transfer log decoded into typed fields."""

    contract: str
    from_addr: str
    to_addr: str
    amount: int             # raw integer, token's smallest unit
    tx_hash: str = ""
    block_number: int | None = None
    log_index: int | None = None


@dataclass(frozen=True)
class WhaleEvent:
    """Canonical outward-facing whale record."""

    tx_hash: str
    from_addr: str
    from_label: str
    to_addr: str | None
    to_label: str
    amount: Decimal             # human-scaled, never negative
    value_usd: Decimal | None   # None = unavailable for this asset
    block_number: int
    detected_at: datetime       # UTC
    kind: AssetKind
    asset: AssetDescriptor | None = None    # None for native transfers
    gas_price_gwei: Decimal | None = None

    @property
    def symbol(self) -> str:
        return self.asset.symbol if self.asset else AssetKind.NATIVE.value

    def to_dict(self) -> dict:
        """Serialize to the push-channel / REST wire shape."""
        d = {
            "hash": self.tx_hash,
            "from": self.from_addr,
            "fromLabel": self.from_label,
            "to": self.to_addr,
            "toLabel": self.to_label,
            "value": decimal_to_str(self.amount),
            "valueUSD": (
                decimal_to_str(self.value_usd) if self.value_usd is not None else "N/A"
            ),
            "blockNumber": self.block_number,
            "timestamp": self.detected_at.isoformat(),
            "type": self.kind.value,
        }
        if self.asset is not None:
            d["token"] = {
                "symbol": self.asset.symbol,
                "name": self.asset.name,
                "address": self.asset.address,
                "category": self.asset.category,
            }
        if self.gas_price_gwei is not None:
            d["gasPrice"] = decimal_to_str(self.gas_price_gwei)
        return d


def decimal_to_str(value: Decimal) -> str:
    """Plain (non-scientific) string without trailing zeros: 1000000, 0.5"""
    if value == 0:
        return "0"
    return format(value.normalize(_WIDE), "f")
