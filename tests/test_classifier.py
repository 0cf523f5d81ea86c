"""Tests for whalefeed/classifier.py — exact whale thresholds."""

from __future__ import annotations

from decimal import Decimal

import pytest

from conftest import UNKNOWN_TOKEN_ADDR, USDT_ADDR, WEI, WHALE_ADDR
from whalefeed.classifier import (
    classify_token_transfer,
    is_native_whale,
    is_token_whale,
    scale_amount,
    to_base_units,
)
from whalefeed.decoder import UINT256_MAX
from whalefeed.models import TokenTransfer, decimal_to_str
from whalefeed.registry import AssetRegistry


def transfer(contract: str, amount: int) -> TokenTransfer:
    return TokenTransfer(contract=contract, from_addr=WHALE_ADDR, to_addr=WHALE_ADDR, amount=amount)


# ── Native ────────────────────────────────────────────────────────────────────


def test_native_threshold_is_inclusive() -> None:
    """Exactly 100 ETH is a whale; one wei less is not."""
    threshold = 100 * WEI
    assert is_native_whale(100 * WEI, threshold)
    assert not is_native_whale(100 * WEI - 1, threshold)
    assert is_native_whale(150 * WEI, threshold)


# ── Tokens ────────────────────────────────────────────────────────────────────


def test_usdt_boundary(registry: AssetRegistry) -> None:
    """USDT has 6 decimals and a 1,000,000 unit threshold."""
    usdt = registry.lookup(USDT_ADDR)
    assert usdt is not None
    assert is_token_whale(1_000_001_000_000, usdt)
    assert is_token_whale(1_000_000_000_000, usdt)
    assert not is_token_whale(999_999_000_000, usdt)
    assert not is_token_whale(999_999_999_999, usdt)


@pytest.mark.parametrize("symbol", ["USDT", "WBTC", "stETH", "SHIB", "AAVE"])
@pytest.mark.parametrize("offset", [-1, 0, 1])
def test_matches_integer_comparison(registry: AssetRegistry, symbol: str, offset: int) -> None:
    """Same answer as raw >= threshold * 10**decimals in integers."""
    asset = registry.find_symbol(symbol)
    assert asset is not None
    boundary = int(asset.whale_threshold) * 10**asset.decimals
    raw = boundary + offset
    assert is_token_whale(raw, asset) is (raw >= boundary)


def test_classify_known_whale(registry: AssetRegistry) -> None:
    asset = classify_token_transfer(transfer(USDT_ADDR, 2_000_000 * 10**6), registry)
    assert asset is not None
    assert asset.symbol == "USDT"


def test_classify_below_threshold(registry: AssetRegistry) -> None:
    assert classify_token_transfer(transfer(USDT_ADDR, 10**6), registry) is None


def test_classify_unknown_contract(registry: AssetRegistry) -> None:
    """Unregistered contracts are never whales, whatever the amount."""
    assert classify_token_transfer(transfer(UNKNOWN_TOKEN_ADDR, UINT256_MAX), registry) is None


# ── Scaling ───────────────────────────────────────────────────────────────────


def test_scale_amount() -> None:
    assert scale_amount(1_500_000, 6) == Decimal("1.5")
    assert scale_amount(150 * WEI, 18) == Decimal("150")
    assert scale_amount(0, 18) == 0


def test_scale_amount_keeps_every_digit() -> None:
    """A full uint256 survives scaling without rounding."""
    scaled = decimal_to_str(scale_amount(UINT256_MAX, 18))
    assert scaled.replace(".", "") == str(UINT256_MAX)


def test_to_base_units() -> None:
    assert to_base_units(Decimal("100"), 18) == 100 * WEI
    assert to_base_units(Decimal("0.5"), 6) == 500_000


def test_to_base_units_too_precise() -> None:
    with pytest.raises(ValueError):
        to_base_units(Decimal("0.1"), 0)
