"""
WhaleFeed: wires the pipeline together and answers read-only queries.

    provider → BlockMonitor → EventStore → DistributionHub → subscribers

Usage:
    async with WhaleFeed(load_config()) as feed:
        async for message in feed.hub.subscribe():
            ...
"""

from __future__ import annotations

import logging
import time
from decimal import Decimal
from typing import Any

from whalefeed.config import WhalefeedConfig
from whalefeed.exceptions import WhalefeedError
from whalefeed.hub import DistributionHub
from whalefeed.labels import AddressLabeler, Labeler
from whalefeed.models import AssetDescriptor, WhaleEvent, decimal_to_str
from whalefeed.monitor import BlockMonitor
from whalefeed.providers import ChainProvider, FeeData, NetworkInfo, get_provider
from whalefeed.registry import AssetRegistry, native_asset
from whalefeed.store import EventStore

logger = logging.getLogger(__name__)

# Seconds a live network-status answer is reused.
STATUS_CACHE_SECONDS = 5.0

GWEI = Decimal(10) ** 9


class WhaleFeed:
    def __init__(
        self,
        config: WhalefeedConfig,
        provider: ChainProvider | None = None,
        registry: AssetRegistry | None = None,
        labeler: Labeler | None = None,
    ) -> None:
        self.config = config
        self.registry = (
            registry if registry is not None else AssetRegistry.from_entries(config.assets)
        )
        self.labeler = labeler or AddressLabeler(config.labels)
        self.store = EventStore(config.store.capacity)
        self.hub = DistributionHub(self.store, config.hub.queue_size)
        self.provider = provider or get_provider(config)
        self.monitor = BlockMonitor(
            self.provider, self.registry, self.labeler, self.store, self.hub, config
        )
        self._status_cache: dict[str, Any] | None = None
        self._status_at = 0.0

    async def __aenter__(self) -> WhaleFeed:
        self.start()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.stop()

    def start(self) -> None:
        self.monitor.start()

    async def stop(self) -> None:
        await self.monitor.stop()
        self.hub.close()
        await self.provider.close()

    def set_eth_usd_price(self, price: Decimal | None) -> None:
        """Swap the reference price used for native USD estimates."""
        self.monitor.eth_usd_price = price

    # ── Query interface ──────────────────────────────────────────────────────

    def recent_events(self, asset: str | None = None) -> list[WhaleEvent]:
        """Newest first; `asset` is a token symbol or "ETH" for native transfers."""
        if asset:
            return self.store.filter_by_asset(asset)
        return self.store.snapshot()

    def tokens(self) -> list[AssetDescriptor]:
        return self.registry.assets()

    def native_asset(self) -> AssetDescriptor:
        return native_asset(self.config.monitor.native_threshold)

    async def network_status(self) -> dict[str, Any]:
        """
        Live network status, cached briefly.

        While the monitor is not subscribed, or if the node does not answer,
        the last known values are returned with status "disconnected".
        """
        if not self.monitor.is_connected:
            return self._stale_status()

        now = time.monotonic()
        if self._status_cache and now - self._status_at < STATUS_CACHE_SECONDS:
            return self._status_cache

        try:
            network = await self.provider.get_network_info()
            block_number = await self.provider.get_block_number()
            fees = await self.provider.get_fee_data()
        except WhalefeedError as e:
            logger.warning("Network status query failed: %s", e)
            return self._stale_status()

        self._status_cache = build_network_status(network, block_number, fees)
        self._status_cache["monitor"] = self.monitor.status()
        self._status_at = now
        return self._status_cache

    def _stale_status(self) -> dict[str, Any]:
        status: dict[str, Any] = dict(self._status_cache or {})
        network = self.monitor.network
        status.update(
            {
                "status": "disconnected",
                "stale": True,
                "network": network.name if network else status.get("network"),
                "chainId": str(network.chain_id) if network else status.get("chainId"),
                "blockNumber": self.monitor.head,
                "monitor": self.monitor.status(),
            }
        )
        status.setdefault("gasPrice", None)
        return status


def build_network_status(
    network: NetworkInfo, block_number: int, fees: FeeData
) -> dict[str, Any]:
    """Wire shape of /api/network-status; gas price in gwei."""
    return {
        "status": "connected",
        "stale": False,
        "network": network.name,
        "chainId": str(network.chain_id),
        "blockNumber": block_number,
        "gasPrice": (
            decimal_to_str(Decimal(fees.gas_price) / GWEI)
            if fees.gas_price is not None
            else "0"
        ),
    }
