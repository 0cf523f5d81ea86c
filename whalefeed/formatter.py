"""Turn classified transfers into WhaleEvent records.

Pure given its inputs: the reference price and detection time are passed in,
never fetched here.
"""

from __future__ import annotations

from datetime import datetime
from decimal import ROUND_HALF_UP, Context, Decimal

from whalefeed.classifier import scale_amount
from whalefeed.labels import Labeler
from whalefeed.models import (
    AssetDescriptor,
    AssetKind,
    NativeTransfer,
    TokenTransfer,
    WhaleEvent,
)
from whalefeed.registry import NATIVE_DECIMALS

GWEI_DECIMALS = 9
_CENTS = Decimal("0.01")
_WIDE = Context(prec=100)


def estimate_usd(
    amount: Decimal,
    asset: AssetDescriptor | None,
    eth_usd_price: Decimal | None = None,
) -> Decimal | None:
    """
    USD estimate for a human-scaled amount.

    Native: amount × reference price, to the cent (None without a price).
    Stablecoin: 1:1. Anything else: None rather than a guess.
    """
    if asset is None:
        if eth_usd_price is None:
            return None
        return _WIDE.multiply(amount, eth_usd_price).quantize(
            _CENTS, rounding=ROUND_HALF_UP, context=_WIDE
        )
    if asset.is_stablecoin:
        return amount
    return None


def format_native_transfer(
    transfer: NativeTransfer,
    labeler: Labeler,
    eth_usd_price: Decimal | None,
    detected_at: datetime,
) -> WhaleEvent:
    amount = scale_amount(transfer.amount, NATIVE_DECIMALS)
    gas_gwei = (
        scale_amount(transfer.gas_price, GWEI_DECIMALS)
        if transfer.gas_price is not None
        else None
    )
    return WhaleEvent(
        tx_hash=transfer.tx_hash,
        from_addr=transfer.from_addr,
        from_label=labeler.label(transfer.from_addr),
        to_addr=transfer.to_addr,
        to_label=labeler.label(transfer.to_addr),
        amount=amount,
        value_usd=estimate_usd(amount, None, eth_usd_price),
        block_number=transfer.block_number,
        detected_at=detected_at,
        kind=AssetKind.NATIVE,
        gas_price_gwei=gas_gwei,
    )


def format_token_transfer(
    transfer: TokenTransfer,
    asset: AssetDescriptor,
    labeler: Labeler,
    detected_at: datetime,
) -> WhaleEvent:
    amount = scale_amount(transfer.amount, asset.decimals)
    return WhaleEvent(
        tx_hash=transfer.tx_hash,
        from_addr=transfer.from_addr,
        from_label=labeler.label(transfer.from_addr),
        to_addr=transfer.to_addr,
        to_label=labeler.label(transfer.to_addr),
        amount=amount,
        value_usd=estimate_usd(amount, asset),
        block_number=transfer.block_number or 0,
        detected_at=detected_at,
        kind=AssetKind.TOKEN,
        asset=asset,
    )
