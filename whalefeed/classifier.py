"""
Whale classification.

All comparisons are exact. Native amounts are compared in wei as ints; token
amounts are compared as Fractions, which is the same as comparing
`raw_amount >= whale_threshold * 10**decimals` in integer arithmetic.
Floats never touch an amount.
"""

from __future__ import annotations

from decimal import Context, Decimal
from fractions import Fraction

from whalefeed.models import AssetDescriptor, TokenTransfer
from whalefeed.registry import AssetRegistry

# Wide enough for any uint256 at any scale.
_WIDE = Context(prec=100)


def is_native_whale(amount_wei: int, threshold_wei: int) -> bool:
    """Inclusive: an amount equal to the threshold is a whale."""
    return amount_wei >= threshold_wei


def is_token_whale(raw_amount: int, asset: AssetDescriptor) -> bool:
    return Fraction(raw_amount, 10**asset.decimals) >= Fraction(asset.whale_threshold)


def classify_token_transfer(
    transfer: TokenTransfer, registry: AssetRegistry
) -> AssetDescriptor | None:
    """
    Return the transfer's asset if it is a whale, otherwise None.

    Contracts missing from the registry are never whales.
    """
    asset = registry.lookup(transfer.contract)
    if asset is None:
        return None
    return asset if is_token_whale(transfer.amount, asset) else None


def scale_amount(raw_amount: int, decimals: int) -> Decimal:
    """Exact raw → whole-unit conversion: scale_amount(1_500_000, 6) == Decimal('1.5')"""
    return Decimal(raw_amount).scaleb(-decimals, _WIDE)


def to_base_units(amount: Decimal, decimals: int) -> int:
    """
    Exact whole-unit → raw conversion.

    Raises:
        ValueError: amount has more precision than `decimals` allows.
    """
    scaled = Fraction(amount) * 10**decimals
    if scaled.denominator != 1:
        raise ValueError(f"{amount} has more than {decimals} decimal places")
    return int(scaled)
