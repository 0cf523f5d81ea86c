"""Static asset registry: contract address → decimals, category, whale threshold.

Only assets listed here are ever classified; an unknown contract is a
no-op, not an error.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any, Iterable

from whalefeed.exceptions import ConfigInvalidError
from whalefeed.models import AssetDescriptor

NATIVE_SYMBOL = "ETH"
NATIVE_DECIMALS = 18

# Thresholds are in whole token units.
DEFAULT_ASSETS: list[AssetDescriptor] = [
    # Stablecoins
    AssetDescriptor("USDT", "Tether USD", "0xdac17f958d2ee523a2206206994597c13d831ec7",
                    6, "stablecoin", Decimal("1000000"), "high"),
    AssetDescriptor("USDC", "USD Coin", "0xa0b86991c6218b36c1d19d4a2e9eb0ce3606eb48",
                    6, "stablecoin", Decimal("1000000"), "high"),
    AssetDescriptor("DAI", "Dai Stablecoin", "0x6b175474e89094c44da98b954eedeac495271d0f",
                    18, "stablecoin", Decimal("1000000"), "high"),
    AssetDescriptor("BUSD", "Binance USD", "0x4fabb145d64652a948d72533023f6e7a623c7c53",
                    18, "stablecoin", Decimal("1000000"), "high"),
    # DeFi
    AssetDescriptor("UNI", "Uniswap", "0x1f9840a85d5af5bf1d1762f925bdaddc4201f984",
                    18, "defi", Decimal("100000"), "high"),
    AssetDescriptor("AAVE", "Aave Token", "0x7fc66500c84a76ad7e9c93437bfc5ac33e2ddae9",
                    18, "defi", Decimal("5000"), "high"),
    AssetDescriptor("LINK", "ChainLink Token", "0x514910771af9ca656af840dff83e8264ecf986ca",
                    18, "oracle", Decimal("50000"), "high"),
    AssetDescriptor("CRV", "Curve DAO Token", "0xd533a949740bb3306d119cc777fa900ba034cd52",
                    18, "defi", Decimal("1000000"), "medium"),
    AssetDescriptor("COMP", "Compound", "0xc00e94cb662c3520282e6f5717214004a7f26888",
                    18, "defi", Decimal("10000"), "medium"),
    # Popular
    AssetDescriptor("SHIB", "SHIBA INU", "0x95ad61b0a150d79219dcf64e1e6cc01f0b64c4ce",
                    18, "meme", Decimal("50000000000000"), "medium"),
    AssetDescriptor("PEPE", "Pepe", "0x6982508145454ce325ddbe47a25d4ec3d2311933",
                    18, "meme", Decimal("50000000000000"), "medium"),
    AssetDescriptor("MATIC", "Matic Token", "0x7d1afa7b718fb893db30a3abc0cfc608aacfebb0",
                    18, "layer2", Decimal("1000000"), "medium"),
    AssetDescriptor("LDO", "Lido DAO Token", "0x5a98fcbea516cf06857215779fd812ca3bef1b32",
                    18, "staking", Decimal("500000"), "medium"),
    # Wrapped / staked
    AssetDescriptor("WBTC", "Wrapped BTC", "0x2260fac5e5542a773aa44fbcfedf7c193bc2c599",
                    8, "wrapped", Decimal("10"), "high"),
    AssetDescriptor("stETH", "Lido Staked Ether", "0xae7ab96520de3a18e5e111b5eaab095312d7fe84",
                    18, "staking", Decimal("200"), "high"),
]


class AssetRegistry:
    """Immutable lookup keyed by lower-cased contract address."""

    def __init__(self, assets: Iterable[AssetDescriptor]) -> None:
        by_address: dict[str, AssetDescriptor] = {}
        for asset in assets:
            if not asset.address:
                continue
            by_address[asset.address.lower()] = asset
        self._by_address = by_address
        self._addresses = frozenset(by_address)

    @classmethod
    def default(cls) -> AssetRegistry:
        return cls(DEFAULT_ASSETS)

    @classmethod
    def from_entries(cls, entries: Iterable[dict[str, Any]]) -> AssetRegistry:
        """
        DEFAULT_ASSETS plus config `[[assets]]` entries.

        An entry whose address matches a default replaces it.
        """
        merged = {a.address: a for a in DEFAULT_ASSETS}
        for entry in entries:
            asset = parse_asset(entry)
            merged[asset.address] = asset
        return cls(merged.values())

    def lookup(self, address: str | None) -> AssetDescriptor | None:
        if not address:
            return None
        return self._by_address.get(address.lower())

    def all_addresses(self) -> frozenset[str]:
        return self._addresses

    def assets(self) -> list[AssetDescriptor]:
        return list(self._by_address.values())

    def find_symbol(self, symbol: str) -> AssetDescriptor | None:
        wanted = symbol.upper()
        for asset in self._by_address.values():
            if asset.symbol.upper() == wanted:
                return asset
        return None

    def __len__(self) -> int:
        return len(self._by_address)

    def __contains__(self, address: object) -> bool:
        return isinstance(address, str) and address.lower() in self._by_address


def native_asset(threshold: Decimal) -> AssetDescriptor:
    """Synthetic descriptor for ETH, used only by the query interface."""
    return AssetDescriptor(
        symbol=NATIVE_SYMBOL,
        name="Ether",
        address=None,
        decimals=NATIVE_DECIMALS,
        category="native",
        whale_threshold=threshold,
        priority="high",
    )


def parse_asset(entry: dict[str, Any]) -> AssetDescriptor:
    """Build an AssetDescriptor from a config table. Raises ConfigInvalidError."""
    try:
        address = str(entry["address"]).lower()
        decimals = int(entry["decimals"])
        threshold = Decimal(str(entry["whale_threshold"]))
        symbol = str(entry["symbol"])
    except KeyError as e:
        raise ConfigInvalidError(f"Asset entry missing key {e}", details={"entry": entry}) from e
    except (ValueError, TypeError, InvalidOperation) as e:
        raise ConfigInvalidError(f"Invalid asset entry: {e}", details={"entry": entry}) from e

    if not address.startswith("0x") or len(address) != 42:
        raise ConfigInvalidError(f"Invalid asset address {address!r}")
    if not 0 <= decimals <= 77:
        raise ConfigInvalidError(f"Asset {symbol} decimals out of range: {decimals}")
    if threshold < 0:
        raise ConfigInvalidError(f"Asset {symbol} whale_threshold must be non-negative")

    return AssetDescriptor(
        symbol=symbol,
        name=str(entry.get("name", symbol)),
        address=address,
        decimals=decimals,
        category=str(entry.get("category", "other")),
        whale_threshold=threshold,
        priority=str(entry.get("priority", "medium")),
    )
