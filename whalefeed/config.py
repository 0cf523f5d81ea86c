"""
Config loading for whalefeed.

Sources (in precedence order, highest first):
  1. Environment variables (WHALEFEED_*)
  2. ~/.whalefeed/config.toml
  3. Built-in defaults

Usage:
    from whalefeed.config import load_config
    config = load_config()
    print(config.provider.rpc_url)
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import toml

from whalefeed.exceptions import ConfigInvalidError

# Default config directory and file
DEFAULT_CONFIG_DIR = Path.home() / ".whalefeed"
DEFAULT_CONFIG_PATH = DEFAULT_CONFIG_DIR / "config.toml"

# Environment variable → config key mapping
# Format: (env_var_name, dotted_config_path, type_converter)
_ENV_OVERRIDES: list[tuple[str, str, Any]] = [
    ("WHALEFEED_RPC_URL", "provider.rpc_url", str),
    ("WHALEFEED_REQUEST_TIMEOUT", "provider.request_timeout", float),
    ("WHALEFEED_POLL_INTERVAL", "provider.poll_interval", float),
    ("WHALEFEED_NATIVE_THRESHOLD", "monitor.native_threshold", Decimal),
    ("WHALEFEED_RECONNECT_DELAY", "monitor.reconnect_delay", float),
    ("WHALEFEED_MAX_RETRIES", "monitor.max_retries", int),
    ("WHALEFEED_RECEIPT_CONCURRENCY", "monitor.receipt_concurrency", int),
    ("WHALEFEED_ETH_USD_PRICE", "pricing.eth_usd_price", str),
    ("WHALEFEED_STORE_CAPACITY", "store.capacity", int),
    ("WHALEFEED_QUEUE_SIZE", "hub.queue_size", int),
    ("WHALEFEED_HOST", "server.host", str),
    ("WHALEFEED_PORT", "server.port", int),
    ("WHALEFEED_LOG_LEVEL", "logging.level", str),
]

VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


@dataclass
class ProviderConfig:
    """Upstream JSON-RPC node."""

    rpc_url: str = "http://localhost:8545"
    request_timeout: float = 10.0       # seconds, per upstream call
    poll_interval: float = 2.0          # seconds between head checks


@dataclass
class MonitorConfig:
    """Block monitor behaviour."""

    native_threshold: Decimal = Decimal("100")  # ETH, inclusive
    reconnect_delay: float = 10.0
    max_retries: int = -1               # consecutive connect failures; -1 = unbounded
    receipt_concurrency: int = 16
    max_catchup_blocks: int = 16
    max_poll_failures: int = 3
    shutdown_timeout: float = 15.0


@dataclass
class PricingConfig:
    """Static reference price; empty string disables native USD estimates."""

    eth_usd_price: str = "2500"

    @property
    def eth_usd(self) -> Decimal | None:
        if not self.eth_usd_price:
            return None
        return Decimal(self.eth_usd_price)


@dataclass
class StoreConfig:
    capacity: int = 100


@dataclass
class HubConfig:
    queue_size: int = 256               # per-subscriber outbound messages


@dataclass
class ServerConfig:
    host: str = "0.0.0.0"
    port: int = 3001


@dataclass
class LoggingConfig:
    level: str = "INFO"


@dataclass
class WhalefeedConfig:
    """Full configuration object. Passed via Click context to all commands."""

    provider: ProviderConfig = field(default_factory=ProviderConfig)
    monitor: MonitorConfig = field(default_factory=MonitorConfig)
    pricing: PricingConfig = field(default_factory=PricingConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    hub: HubConfig = field(default_factory=HubConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    labels: dict[str, str] = field(default_factory=dict)
    assets: list[dict[str, Any]] = field(default_factory=list)


def load_config(path: str | None = None) -> WhalefeedConfig:
    """
    Load configuration from TOML file + environment variable overrides.

    Args:
        path: Override config file path. If None, uses WHALEFEED_CONFIG_PATH
              env var or default (~/.whalefeed/config.toml).

    Returns:
        WhalefeedConfig with all values resolved. A missing file yields defaults.

    Raises:
        ConfigInvalidError: Config file exists but is invalid TOML or values.
    """
    config_path = _resolve_config_path(path)

    raw: dict = {}
    if config_path.exists():
        try:
            raw = toml.load(str(config_path))
        except toml.TomlDecodeError as e:
            raise ConfigInvalidError(f"Invalid TOML in {config_path}: {e}") from e

    try:
        config = _dict_to_config(raw)
    except (ValueError, TypeError, InvalidOperation) as e:
        raise ConfigInvalidError(f"Invalid value in {config_path}: {e}") from e
    _apply_env_overrides(config)
    _validate_config(config)

    return config


def save_config(config: WhalefeedConfig, path: str | None = None) -> Path:
    """
    Serialize WhalefeedConfig to TOML and write to disk.

    Returns the path where config was written.
    """
    config_path = _resolve_config_path(path)
    config_path.parent.mkdir(parents=True, exist_ok=True)

    data: dict[str, Any] = {
        "provider": {
            "rpc_url": config.provider.rpc_url,
            "request_timeout": config.provider.request_timeout,
            "poll_interval": config.provider.poll_interval,
        },
        "monitor": {
            "native_threshold": str(config.monitor.native_threshold),
            "reconnect_delay": config.monitor.reconnect_delay,
            "max_retries": config.monitor.max_retries,
            "receipt_concurrency": config.monitor.receipt_concurrency,
            "max_catchup_blocks": config.monitor.max_catchup_blocks,
            "max_poll_failures": config.monitor.max_poll_failures,
            "shutdown_timeout": config.monitor.shutdown_timeout,
        },
        "pricing": {"eth_usd_price": config.pricing.eth_usd_price},
        "store": {"capacity": config.store.capacity},
        "hub": {"queue_size": config.hub.queue_size},
        "server": {"host": config.server.host, "port": config.server.port},
        "logging": {"level": config.logging.level},
    }
    if config.labels:
        data["labels"] = dict(config.labels)
    if config.assets:
        data["assets"] = list(config.assets)

    with open(config_path, "w") as f:
        toml.dump(data, f)

    return config_path


def get_default_config_path() -> Path:
    """Return the default config file path."""
    return DEFAULT_CONFIG_PATH


# ──────────────────────────────────────────────────────────────
# Private helpers
# ──────────────────────────────────────────────────────────────


def _resolve_config_path(path: str | None) -> Path:
    if path:
        return Path(path).expanduser()
    env_path = os.environ.get("WHALEFEED_CONFIG_PATH")
    if env_path:
        return Path(env_path).expanduser()
    return DEFAULT_CONFIG_PATH


def _section(raw: dict, name: str) -> dict:
    section = raw.get(name, {})
    if not isinstance(section, dict):
        raise TypeError(f"[{name}] must be a table, got {type(section).__name__}")
    return section


def _dict_to_config(raw: dict) -> WhalefeedConfig:
    """Build WhalefeedConfig from raw TOML dict, applying defaults for missing keys."""
    config = WhalefeedConfig()

    provider = _section(raw, "provider")
    config.provider.rpc_url = provider.get("rpc_url", config.provider.rpc_url)
    config.provider.request_timeout = float(provider.get("request_timeout", 10.0))
    config.provider.poll_interval = float(provider.get("poll_interval", 2.0))

    monitor = _section(raw, "monitor")
    # Thresholds go through str so TOML floats don't leak binary rounding.
    config.monitor.native_threshold = Decimal(str(monitor.get("native_threshold", "100")))
    config.monitor.reconnect_delay = float(monitor.get("reconnect_delay", 10.0))
    config.monitor.max_retries = int(monitor.get("max_retries", -1))
    config.monitor.receipt_concurrency = int(monitor.get("receipt_concurrency", 16))
    config.monitor.max_catchup_blocks = int(monitor.get("max_catchup_blocks", 16))
    config.monitor.max_poll_failures = int(monitor.get("max_poll_failures", 3))
    config.monitor.shutdown_timeout = float(monitor.get("shutdown_timeout", 15.0))

    pricing = _section(raw, "pricing")
    config.pricing.eth_usd_price = str(pricing.get("eth_usd_price", "2500"))

    config.store.capacity = int(_section(raw, "store").get("capacity", 100))
    config.hub.queue_size = int(_section(raw, "hub").get("queue_size", 256))

    server = _section(raw, "server")
    config.server.host = server.get("host", "0.0.0.0")
    config.server.port = int(server.get("port", 3001))

    config.logging.level = str(_section(raw, "logging").get("level", "INFO"))

    config.labels = {str(k).lower(): str(v) for k, v in _section(raw, "labels").items()}
    assets = raw.get("assets", [])
    if not isinstance(assets, list):
        raise TypeError(f"assets must be an array of tables, got {type(assets).__name__}")
    config.assets = list(assets)

    return config


def _apply_env_overrides(config: WhalefeedConfig) -> None:
    """Apply environment variable overrides to a loaded config."""
    for env_var, dotted_key, converter in _ENV_OVERRIDES:
        val = os.environ.get(env_var)
        if val is None:
            continue
        section, key = dotted_key.split(".", 1)
        section_obj = getattr(config, section)
        try:
            setattr(section_obj, key, converter(val))
        except (ValueError, TypeError, InvalidOperation) as e:
            raise ConfigInvalidError(
                f"Invalid value for {env_var}={val!r}: {e}"
            ) from e


def _validate_config(config: WhalefeedConfig) -> None:
    """Validate config values. Raises ConfigInvalidError on invalid values."""
    if config.store.capacity < 1:
        raise ConfigInvalidError(f"store.capacity must be >= 1, got {config.store.capacity}")
    if config.hub.queue_size < 1:
        raise ConfigInvalidError(f"hub.queue_size must be >= 1, got {config.hub.queue_size}")
    if config.monitor.native_threshold < 0:
        raise ConfigInvalidError(
            f"monitor.native_threshold must be non-negative, "
            f"got {config.monitor.native_threshold}"
        )
    if config.monitor.receipt_concurrency < 1:
        raise ConfigInvalidError(
            f"monitor.receipt_concurrency must be >= 1, "
            f"got {config.monitor.receipt_concurrency}"
        )
    if config.provider.request_timeout <= 0:
        raise ConfigInvalidError(
            f"provider.request_timeout must be positive, "
            f"got {config.provider.request_timeout}"
        )
    try:
        price = config.pricing.eth_usd
    except InvalidOperation as e:
        raise ConfigInvalidError(
            f"pricing.eth_usd_price must be a number, got {config.pricing.eth_usd_price!r}"
        ) from e
    if price is not None and price < 0:
        raise ConfigInvalidError(f"pricing.eth_usd_price must be non-negative, got {price}")
    if config.logging.level.upper() not in VALID_LOG_LEVELS:
        raise ConfigInvalidError(
            f"logging.level must be one of {sorted(VALID_LOG_LEVELS)}, "
            f"got {config.logging.level!r}"
        )
