"""Click CLI entry point for whalefeed.

All commands are thin orchestration wrappers; business logic lives in
config, providers, monitor, store, hub, service, output, and stream modules.

Exit codes:
  0   — success
  1   — generic error
  2   — RPC error, rate limit
  3   — network error / upstream unavailable
  4   — data error (undecodable upstream payload)
  5   — config error
  130 — stream or server ended by SIGINT
"""

from __future__ import annotations

import asyncio
import json
import shutil
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any

import click

from whalefeed import __version__
from whalefeed.config import (
    WhalefeedConfig,
    get_default_config_path,
    load_config,
    save_config,
)
from whalefeed.exceptions import WhalefeedError
from whalefeed.logging_config import setup_logging
from whalefeed.output import format_output

if TYPE_CHECKING:
    from whalefeed.service import WhaleFeed

# ── Error handler ─────────────────────────────────────────────────────────────


def _output_error(err: WhalefeedError | Exception) -> None:
    """Write error JSON to stderr."""
    if isinstance(err, WhalefeedError):
        payload = err.to_dict()
        exit_code = err.exit_code
    else:
        payload = {"error": "unknown_error", "message": str(err), "details": {}}
        exit_code = 1
    sys.stderr.write(json.dumps(payload) + "\n")
    sys.stderr.flush()
    sys.exit(exit_code)


def _make_feed(config: WhalefeedConfig) -> WhaleFeed:
    from whalefeed.service import WhaleFeed

    return WhaleFeed(config)


# ── Root group ────────────────────────────────────────────────────────────────


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--config",
    "config_path",
    envvar="WHALEFEED_CONFIG",
    default=None,
    help="Config file path (default: ~/.whalefeed/config.toml)",
)
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["json", "jsonl", "table"]),
    default="json",
    show_default=True,
    help="Output format for one-shot commands",
)
@click.option("--log-level", default=None, help="Override logging.level")
@click.pass_context
def cli(
    ctx: click.Context,
    config_path: str | None,
    output_format: str,
    log_level: str | None,
) -> None:
    """whalefeed — real-time whale transfer feed for EVM chains."""
    ctx.ensure_object(dict)
    try:
        config = load_config(config_path)
    except WhalefeedError as e:
        if ctx.invoked_subcommand == "config":
            # config init must still work over a broken file
            config = WhalefeedConfig()
        else:
            _output_error(e)

    if log_level:
        config.logging.level = log_level
    setup_logging(config.logging.level)

    ctx.obj["config"] = config
    ctx.obj["format"] = output_format
    ctx.obj["config_path"] = config_path


# ── Watch / serve ─────────────────────────────────────────────────────────────


@cli.command("watch")
@click.option("--heartbeat", default=30.0, type=float, show_default=True, help="Seconds")
@click.pass_context
def watch_command(ctx: click.Context, heartbeat: float) -> None:
    """Monitor new blocks and stream whale events as JSONL to stdout."""
    from whalefeed.stream import run_stream

    config: WhalefeedConfig = ctx.obj["config"]

    async def _run() -> None:
        feed = _make_feed(config)
        monitor_task = feed.monitor.start()
        streamer = asyncio.create_task(run_stream(feed, heartbeat_seconds=heartbeat))
        try:
            # Ends when the monitor gives up (max_retries) or on SIGINT.
            await asyncio.wait({streamer, monitor_task}, return_when=asyncio.FIRST_COMPLETED)
            if monitor_task.done():
                monitor_task.result()
        finally:
            streamer.cancel()
            await asyncio.gather(streamer, return_exceptions=True)
            await feed.stop()

    try:
        asyncio.run(_run())
    except KeyboardInterrupt:
        sys.exit(130)
    except WhalefeedError as e:
        _output_error(e)


@cli.command("serve")
@click.option("--host", default=None, help="Bind address (default: server.host)")
@click.option("--port", default=None, type=int, help="Port (default: server.port)")
@click.pass_context
def serve_command(ctx: click.Context, host: str | None, port: int | None) -> None:
    """Monitor new blocks and serve the HTTP API plus WebSocket push channel."""
    import uvicorn

    from whalefeed.server import create_app

    config: WhalefeedConfig = ctx.obj["config"]
    try:
        app = create_app(_make_feed(config))
    except WhalefeedError as e:
        _output_error(e)
        return

    uvicorn.run(
        app,
        host=host or config.server.host,
        port=port or config.server.port,
        log_config=None,
    )


# ── One-shot commands ─────────────────────────────────────────────────────────


@cli.command("block")
@click.argument("number", type=click.IntRange(min=0))
@click.pass_context
def block_command(ctx: click.Context, number: int) -> None:
    """Scan a single block and print its whale transfers."""
    config: WhalefeedConfig = ctx.obj["config"]
    fmt = ctx.obj.get("format", "json")

    async def _run() -> dict[str, Any]:
        feed = _make_feed(config)
        try:
            events = await feed.monitor.process_block(number)
        finally:
            await feed.provider.close()
        return {
            "block": number,
            "transactions": [e.to_dict() for e in events],
            "count": len(events),
        }

    try:
        result = asyncio.run(_run())
    except WhalefeedError as e:
        _output_error(e)
        return
    click.echo(format_output(result, fmt))


@cli.command("tokens")
@click.option("--category", default=None, help="Only assets in this category")
@click.pass_context
def tokens_command(ctx: click.Context, category: str | None) -> None:
    """List monitored assets and their whale thresholds."""
    from whalefeed.registry import AssetRegistry, native_asset

    config: WhalefeedConfig = ctx.obj["config"]
    fmt = ctx.obj.get("format", "json")

    try:
        registry = AssetRegistry.from_entries(config.assets)
    except WhalefeedError as e:
        _output_error(e)
        return

    assets = [native_asset(config.monitor.native_threshold)] + registry.assets()
    if category:
        assets = [a for a in assets if a.category == category.lower()]
    tokens = [a.to_dict() for a in assets]
    click.echo(format_output({"tokens": tokens, "count": len(tokens)}, fmt))


@cli.command("network")
@click.pass_context
def network_command(ctx: click.Context) -> None:
    """Show network, head block and gas price of the configured node."""
    from whalefeed.providers import get_provider
    from whalefeed.service import build_network_status

    config: WhalefeedConfig = ctx.obj["config"]
    fmt = ctx.obj.get("format", "json")

    async def _run() -> dict[str, Any]:
        provider = get_provider(config)
        try:
            network = await provider.get_network_info()
            block_number = await provider.get_block_number()
            fees = await provider.get_fee_data()
        finally:
            await provider.close()
        return build_network_status(network, block_number, fees)

    try:
        result = asyncio.run(_run())
    except WhalefeedError as e:
        _output_error(e)
        return
    click.echo(format_output(result, fmt))


# ── Config commands ───────────────────────────────────────────────────────────


@cli.group("config")
def config_group() -> None:
    """Manage whalefeed configuration."""


@config_group.command("init")
@click.option("--force", is_flag=True, help="Overwrite existing config")
@click.pass_context
def config_init(ctx: click.Context, force: bool) -> None:
    """Initialize default config at ~/.whalefeed/config.toml."""
    provided = ctx.obj.get("config_path")
    config_path = Path(provided) if provided else get_default_config_path()

    if config_path.exists() and not force:
        click.echo(
            json.dumps(
                {
                    "status": "already_exists",
                    "config_path": str(config_path),
                    "hint": "Use --force to reinitialize",
                }
            )
        )
        return

    status = "initialized"
    backup = None

    if config_path.exists() and force:
        backup = str(config_path) + ".bak"
        shutil.copy2(config_path, backup)
        status = "reinitialized"

    save_config(WhalefeedConfig(), str(config_path))

    result: dict[str, Any] = {
        "status": status,
        "config_path": str(config_path),
    }
    if backup:
        result["backup"] = backup
    click.echo(json.dumps(result))


@config_group.command("show")
@click.pass_context
def config_show(ctx: click.Context) -> None:
    """Show the resolved configuration."""
    config: WhalefeedConfig = ctx.obj["config"]
    provided = ctx.obj.get("config_path")

    result = {
        "config_path": provided or str(get_default_config_path()),
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
            "shutdown_timeout": config.monitor.shutdown_timeout,
        },
        "pricing": {"eth_usd_price": config.pricing.eth_usd_price},
        "store": {"capacity": config.store.capacity},
        "hub": {"queue_size": config.hub.queue_size},
        "server": {"host": config.server.host, "port": config.server.port},
        "logging": {"level": config.logging.level},
        "labels": len(config.labels),
        "extra_assets": len(config.assets),
    }
    click.echo(format_output(result, "json"))


if __name__ == "__main__":
    cli()
