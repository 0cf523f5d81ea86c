"""JSONL streaming engine for whalefeed.

Implements `whalefeed watch`: subscribes to the distribution hub and writes
one JSON object per line to stdout, designed for agent/pipe consumers.

Event types emitted:
  stream_start       — stream begins
  initial_data       — snapshot of the recent-event store (first hub message)
  whale_transaction  — one detected whale transfer
  heartbeat          — periodic proof-of-life while no whale activity
  stream_end         — SIGINT / SIGTERM / subscriber dropped

stdout is flushed after each write (critical for pipe consumers).
"""

from __future__ import annotations

import asyncio
import json
import sys
from datetime import datetime, timezone
from typing import Any

from whalefeed.output import DecimalEncoder
from whalefeed.service import WhaleFeed


def emit_event(event: dict[str, Any]) -> None:
    """
    Write a single JSONL event to stdout and flush.

    Never use print(): buffered output breaks pipe consumers.
    """
    sys.stdout.write(json.dumps(event, cls=DecimalEncoder) + "\n")
    sys.stdout.flush()


def _now_iso() -> str:
    return datetime.now(tz=timezone.utc).isoformat()


async def run_stream(feed: WhaleFeed, heartbeat_seconds: float = 30.0) -> None:
    """
    Relay hub messages to stdout until cancelled.

    The feed must already be started; this only consumes.

    Args:
        feed: Running WhaleFeed
        heartbeat_seconds: Emit a heartbeat after this long without messages
    """
    network = feed.monitor.network
    emit_event({
        "type": "stream_start",
        "timestamp": _now_iso(),
        "rpc_url": feed.config.provider.rpc_url,
        "network": network.name if network else None,
        "assets": len(feed.registry),
        "capacity": feed.store.capacity,
    })

    subscription = feed.hub.subscribe()
    relayed = 0
    reason = "cancelled"
    try:
        while True:
            try:
                message = await asyncio.wait_for(subscription.get(), heartbeat_seconds)
            except asyncio.TimeoutError:
                emit_event({
                    "type": "heartbeat",
                    "timestamp": _now_iso(),
                    "state": feed.monitor.state.value,
                    "head": feed.monitor.head,
                    "events_buffered": len(feed.store),
                })
                continue

            if message is None:
                reason = "dropped" if subscription.dropped else "closed"
                break
            emit_event(message)
            if message.get("type") == "whale_transaction":
                relayed += 1

    except (KeyboardInterrupt, asyncio.CancelledError):
        pass
    finally:
        feed.hub.unsubscribe(subscription)
        emit_event({
            "type": "stream_end",
            "timestamp": _now_iso(),
            "reason": reason,
            "events_relayed": relayed,
        })
