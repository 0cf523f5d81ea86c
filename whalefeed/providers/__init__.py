"""
Upstream provider layer for whalefeed.

Provides a factory `get_provider()` that returns the provider matching the
configured endpoint. All providers implement ChainProvider.

Usage:
    from whalefeed.providers import get_provider
    provider = get_provider(config)
    head = await provider.get_block_number()
"""

from __future__ import annotations

from typing import TYPE_CHECKING
from urllib.parse import urlparse

from whalefeed.exceptions import ConfigInvalidError
from whalefeed.providers.base import (
    Block,
    ChainProvider,
    ChainTransaction,
    FeeData,
    LogEntry,
    NetworkInfo,
    Receipt,
)

if TYPE_CHECKING:
    from whalefeed.config import WhalefeedConfig

SUPPORTED_SCHEMES = {"http", "https"}

__all__ = [
    "Block",
    "ChainProvider",
    "ChainTransaction",
    "FeeData",
    "LogEntry",
    "NetworkInfo",
    "Receipt",
    "get_provider",
]


def get_provider(config: WhalefeedConfig) -> ChainProvider:
    """
    Factory: return a provider for `config.provider.rpc_url`.

    Raises:
        ConfigInvalidError: URL scheme is not supported
    """
    url = config.provider.rpc_url
    scheme = urlparse(url).scheme.lower()
    if scheme not in SUPPORTED_SCHEMES:
        raise ConfigInvalidError(
            f"Unsupported RPC URL scheme {scheme!r} in {url!r}. "
            f"Supported: {sorted(SUPPORTED_SCHEMES)}"
        )

    from whalefeed.providers.rpc import JsonRpcProvider

    return JsonRpcProvider(url=url, timeout=config.provider.request_timeout)
