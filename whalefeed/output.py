"""Output format routing for whalefeed.

Converts result dicts to the requested format: json, jsonl, table.

Design rules:
- JSON: 2-space indent, utf-8
- JSONL: one JSON object per line, no trailing whitespace
- Table: Rich-formatted; stablecoins green, USD "N/A" dimmed

All functions return strings. The caller writes to stdout.
"""

from __future__ import annotations

import io
import json
from decimal import Decimal
from typing import Any

from rich.console import Console
from rich.table import Table
from rich.text import Text

from whalefeed.labels import short_address

VALID_FORMATS = {"json", "jsonl", "table"}


class DecimalEncoder(json.JSONEncoder):
    """JSON encoder that renders Decimal exactly, as a string."""

    def default(self, obj: Any) -> Any:
        if isinstance(obj, Decimal):
            return format(obj, "f")
        return super().default(obj)


def format_output(data: Any, fmt: str) -> str:
    """
    Format data for stdout output.

    Args:
        data: Result dict, list, or any JSON-serialisable value.
        fmt: "json" | "jsonl" | "table"

    Raises:
        ValueError: If fmt is not a recognised format.
    """
    fmt = fmt.lower()
    if fmt not in VALID_FORMATS:
        raise ValueError(f"Unknown format {fmt!r}. Valid: {sorted(VALID_FORMATS)}")

    if fmt == "jsonl":
        return format_jsonl(data)
    if fmt == "table":
        return format_table(data)
    return format_json(data)


# ── JSON ─────────────────────────────────────────────────────────────────────


def format_json(data: Any) -> str:
    return json.dumps(data, indent=2, cls=DecimalEncoder, ensure_ascii=False)


def format_jsonl(data: Any) -> str:
    """
    One object per line.

    A dict holding `transactions` or `tokens` is expanded into its rows;
    anything else becomes a single line.
    """
    rows: list[Any]
    if isinstance(data, dict) and isinstance(data.get("transactions"), list):
        rows = data["transactions"]
    elif isinstance(data, dict) and isinstance(data.get("tokens"), list):
        rows = data["tokens"]
    elif isinstance(data, list):
        rows = data
    else:
        rows = [data]
    return "\n".join(json.dumps(r, cls=DecimalEncoder, ensure_ascii=False) for r in rows)


# ── Table ────────────────────────────────────────────────────────────────────


def format_table(data: Any) -> str:
    """
    Format as a Rich terminal table.

    Handles:
    - Whale transactions (dict with 'transactions')
    - Asset registry (dict with 'tokens')
    - Network status (dict with 'network')
    - Generic dict fallback
    """
    buf = io.StringIO()
    console = Console(file=buf, highlight=False, markup=True, width=140)

    if isinstance(data, dict) and "transactions" in data:
        _render_transactions_table(console, data)
    elif isinstance(data, dict) and "tokens" in data:
        _render_tokens_table(console, data)
    elif isinstance(data, dict) and "network" in data:
        _render_network_table(console, data)
    else:
        console.print_json(json.dumps(data, cls=DecimalEncoder))

    return buf.getvalue()


def _category_style(category: str) -> str:
    return {
        "stablecoin": "green",
        "native": "bold cyan",
        "wrapped": "yellow",
        "meme": "magenta",
    }.get(category, "")


def _render_transactions_table(console: Console, data: dict[str, Any]) -> None:
    title = "Whale Transactions"
    if data.get("token"):
        title += f" — {data['token']}"
    table = Table(title=title, show_header=True, header_style="bold blue")
    table.add_column("Block", justify="right")
    table.add_column("Asset", justify="center")
    table.add_column("Amount", justify="right")
    table.add_column("USD", justify="right")
    table.add_column("From", style="italic")
    table.add_column("To", style="italic")
    table.add_column("Tx", style="cyan", no_wrap=True)

    for tx in data.get("transactions", []):
        token = tx.get("token") or {}
        symbol = token.get("symbol", "ETH")
        usd = tx.get("valueUSD", "N/A")
        usd_text = Text(usd, style="dim") if usd == "N/A" else Text(f"${usd}")
        table.add_row(
            str(tx.get("blockNumber", "")),
            Text(symbol, style=_category_style(token.get("category", "native"))),
            str(tx.get("value", "")),
            usd_text,
            tx.get("fromLabel", ""),
            tx.get("toLabel", ""),
            short_address(tx.get("hash", "")),
        )

    console.print(table)
    console.print(f"Total: [bold]{data.get('count', 0)}[/bold] whale transactions")


def _render_tokens_table(console: Console, data: dict[str, Any]) -> None:
    table = Table(title="Monitored Assets", show_header=True, header_style="bold blue")
    table.add_column("Symbol")
    table.add_column("Name")
    table.add_column("Category")
    table.add_column("Priority", justify="center")
    table.add_column("Decimals", justify="right")
    table.add_column("Whale Threshold", justify="right")
    table.add_column("Address", style="cyan")

    for t in data.get("tokens", []):
        category = t.get("category", "")
        table.add_row(
            t.get("symbol", ""),
            t.get("name", ""),
            Text(category, style=_category_style(category)),
            t.get("priority", ""),
            str(t.get("decimals", "")),
            str(t.get("whaleThreshold", "")),
            t.get("address") or "—",
        )
    console.print(table)
    console.print(f"Total: [bold]{data.get('count', 0)}[/bold] assets")


def _render_network_table(console: Console, data: dict[str, Any]) -> None:
    connected = data.get("status") == "connected"
    table = Table(title="Network Status", show_header=False)
    table.add_column("Key", style="bold")
    table.add_column("Value")
    table.add_row(
        "Status",
        Text(data.get("status", "unknown"), style="green" if connected else "red"),
    )
    table.add_row("Network", str(data.get("network") or "—"))
    table.add_row("Chain ID", str(data.get("chainId") or "—"))
    table.add_row("Block", str(data.get("blockNumber") or "—"))
    table.add_row("Gas (gwei)", str(data.get("gasPrice") or "—"))
    console.print(table)
