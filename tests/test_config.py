"""Tests for whalefeed/config.py — TOML loading, env overrides, validation."""

from __future__ import annotations

from decimal import Decimal
from pathlib import Path

import pytest

from whalefeed.config import WhalefeedConfig, load_config, save_config
from whalefeed.exceptions import ConfigInvalidError


def write_config(tmp_path: Path, body: str) -> str:
    path = tmp_path / "config.toml"
    path.write_text(body)
    return str(path)


# ── Defaults ──────────────────────────────────────────────────────────────────


def test_missing_file_yields_defaults(tmp_path: Path) -> None:
    """A config path that does not exist loads the built-in defaults."""
    config = load_config(str(tmp_path / "absent.toml"))
    assert config.provider.rpc_url == "http://localhost:8545"
    assert config.monitor.native_threshold == Decimal("100")
    assert config.monitor.max_retries == -1
    assert config.pricing.eth_usd == Decimal("2500")
    assert config.store.capacity == 100
    assert config.server.port == 3001
    assert config.labels == {}
    assert config.assets == []


def test_config_path_from_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """WHALEFEED_CONFIG_PATH is used when no path is passed."""
    path = write_config(tmp_path, '[store]\ncapacity = 7\n')
    monkeypatch.setenv("WHALEFEED_CONFIG_PATH", path)
    assert load_config().store.capacity == 7


# ── File values ───────────────────────────────────────────────────────────────


def test_load_values_from_file(tmp_path: Path) -> None:
    path = write_config(
        tmp_path,
        """
[provider]
rpc_url = "https://eth.example.com"
poll_interval = 1.5

[monitor]
native_threshold = "250.5"
max_retries = 5

[pricing]
eth_usd_price = "3100.25"

[store]
capacity = 50

[labels]
"0xABCDEF0000000000000000000000000000000001" = "Treasury"

[[assets]]
symbol = "FOO"
address = "0x0000000000000000000000000000000000000f00"
decimals = 9
whale_threshold = 1000
""",
    )
    config = load_config(path)
    assert config.provider.rpc_url == "https://eth.example.com"
    assert config.provider.poll_interval == 1.5
    assert config.monitor.native_threshold == Decimal("250.5")
    assert config.monitor.max_retries == 5
    assert config.pricing.eth_usd == Decimal("3100.25")
    assert config.store.capacity == 50
    # label keys are normalised to lowercase
    assert config.labels == {"0xabcdef0000000000000000000000000000000001": "Treasury"}
    assert config.assets[0]["symbol"] == "FOO"


def test_float_threshold_keeps_decimal_digits(tmp_path: Path) -> None:
    """A TOML float threshold is read through str, not binary float."""
    path = write_config(tmp_path, "[monitor]\nnative_threshold = 0.1\n")
    assert load_config(path).monitor.native_threshold == Decimal("0.1")


def test_invalid_toml_raises(tmp_path: Path) -> None:
    path = write_config(tmp_path, "[provider\nrpc_url = ")
    with pytest.raises(ConfigInvalidError):
        load_config(path)


def test_invalid_value_raises(tmp_path: Path) -> None:
    path = write_config(tmp_path, '[store]\ncapacity = "lots"\n')
    with pytest.raises(ConfigInvalidError):
        load_config(path)


@pytest.mark.parametrize(
    "body",
    [
        'labels = "oops"\n',
        'provider = "x"\n',
        "store = 5\n",
        'assets = "USDT"\n',
    ],
)
def test_section_of_wrong_type_raises(tmp_path: Path, body: str) -> None:
    path = write_config(tmp_path, body)
    with pytest.raises(ConfigInvalidError):
        load_config(path)


def test_empty_price_disables_usd(tmp_path: Path) -> None:
    path = write_config(tmp_path, '[pricing]\neth_usd_price = ""\n')
    assert load_config(path).pricing.eth_usd is None


# ── Env overrides ─────────────────────────────────────────────────────────────


def test_env_overrides_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """WHALEFEED_* env vars beat the file."""
    path = write_config(tmp_path, '[provider]\nrpc_url = "http://file:8545"\n')
    monkeypatch.setenv("WHALEFEED_RPC_URL", "http://env:8545")
    monkeypatch.setenv("WHALEFEED_NATIVE_THRESHOLD", "42")
    monkeypatch.setenv("WHALEFEED_PORT", "9000")
    config = load_config(path)
    assert config.provider.rpc_url == "http://env:8545"
    assert config.monitor.native_threshold == Decimal("42")
    assert config.server.port == 9000


def test_env_override_bad_value(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("WHALEFEED_STORE_CAPACITY", "many")
    with pytest.raises(ConfigInvalidError, match="WHALEFEED_STORE_CAPACITY"):
        load_config(str(tmp_path / "absent.toml"))


# ── Validation ────────────────────────────────────────────────────────────────


@pytest.mark.parametrize(
    "body",
    [
        "[store]\ncapacity = 0\n",
        "[hub]\nqueue_size = 0\n",
        '[monitor]\nnative_threshold = "-1"\n',
        "[monitor]\nreceipt_concurrency = 0\n",
        "[provider]\nrequest_timeout = 0\n",
        '[pricing]\neth_usd_price = "cheap"\n',
        '[pricing]\neth_usd_price = "-5"\n',
        '[logging]\nlevel = "LOUD"\n',
    ],
)
def test_validation_rejects(tmp_path: Path, body: str) -> None:
    with pytest.raises(ConfigInvalidError):
        load_config(write_config(tmp_path, body))


# ── save_config ───────────────────────────────────────────────────────────────


def test_save_then_load(tmp_path: Path) -> None:
    """save_config writes a file load_config reads back identically."""
    config = WhalefeedConfig()
    config.provider.rpc_url = "https://saved.example.com"
    config.monitor.native_threshold = Decimal("75.25")
    config.labels = {"0x1111111111111111111111111111111111111111": "Desk"}

    path = save_config(config, str(tmp_path / "nested" / "config.toml"))
    assert path.exists()

    loaded = load_config(str(path))
    assert loaded.provider.rpc_url == "https://saved.example.com"
    assert loaded.monitor.native_threshold == Decimal("75.25")
    assert loaded.labels == config.labels
