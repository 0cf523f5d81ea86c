"""
HTTP + WebSocket surface for the whale feed.

Usage:
    whalefeed serve

Or with uvicorn:
    uvicorn --factory whalefeed.server:app_from_config --port 3001

Endpoints:
  GET /                                 service status
  GET /api/whale-transactions           recent events, newest first
  GET /api/whale-transactions/{token}   filtered by symbol ("ETH" = native)
  GET /api/tokens                       monitored assets and thresholds
  GET /api/network-status               node status (stale when disconnected)
  WS  /ws                               initial_data, then whale_transaction pushes
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware

from whalefeed import __version__
from whalefeed.config import load_config
from whalefeed.hub import Subscription
from whalefeed.service import WhaleFeed

logger = logging.getLogger(__name__)


def create_app(feed: WhaleFeed, manage_lifecycle: bool = True) -> FastAPI:
    """
    Build the FastAPI app around `feed`.

    With manage_lifecycle the app's lifespan starts the monitor on startup
    and stops it (and closes the provider) on shutdown.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if manage_lifecycle:
            logger.info("Starting whale feed against %s", feed.config.provider.rpc_url)
            feed.start()
        yield
        if manage_lifecycle:
            logger.info("Shutting down whale feed...")
            await feed.stop()
            logger.info("Shutdown complete")

    app = FastAPI(
        title="Whale Alert API",
        description="Streams large native and ERC-20 transfers as they are mined.",
        version=__version__,
        lifespan=lifespan,
    )
    app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])

    @app.get("/")
    async def root() -> dict:
        return {
            "message": "Whale Alert API",
            "status": "running",
            "connectedClients": feed.hub.subscriber_count,
            "monitor": feed.monitor.state.value,
        }

    @app.get("/api/whale-transactions")
    async def whale_transactions() -> dict:
        events = [e.to_dict() for e in feed.recent_events()]
        return {"transactions": events, "count": len(events)}

    @app.get("/api/whale-transactions/{token}")
    async def whale_transactions_by_token(token: str) -> dict:
        events = [e.to_dict() for e in feed.recent_events(token)]
        return {"token": token.upper(), "transactions": events, "count": len(events)}

    @app.get("/api/tokens")
    async def tokens() -> dict:
        listed = [t.to_dict() for t in feed.tokens()]
        return {"tokens": listed, "count": len(listed)}

    @app.get("/api/network-status")
    async def network_status() -> dict:
        return await feed.network_status()

    @app.websocket("/ws")
    async def whale_stream(websocket: WebSocket) -> None:
        await websocket.accept()
        subscription = feed.hub.subscribe()
        watcher = asyncio.create_task(_watch_disconnect(websocket, feed, subscription))
        try:
            async for message in subscription:
                await websocket.send_json(message)
        except (WebSocketDisconnect, RuntimeError) as e:
            logger.debug("Subscriber %d send failed: %s", subscription.id, e)
        finally:
            feed.hub.unsubscribe(subscription)
            watcher.cancel()
            await asyncio.gather(watcher, return_exceptions=True)
        if subscription.dropped:
            await _close_quietly(websocket, code=1013)

    return app


async def _watch_disconnect(
    websocket: WebSocket, feed: WhaleFeed, subscription: Subscription
) -> None:
    """Unsubscribe as soon as the client goes away, even while idle."""
    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
    except (WebSocketDisconnect, RuntimeError) as e:
        logger.debug("Subscriber %d receive ended: %s", subscription.id, e)
    finally:
        feed.hub.unsubscribe(subscription)


async def _close_quietly(websocket: WebSocket, code: int) -> None:
    try:
        await websocket.close(code=code)
    except RuntimeError as e:
        logger.debug("Close on finished websocket: %s", e)


def app_from_config() -> FastAPI:
    """uvicorn factory: config from ~/.whalefeed/config.toml + WHALEFEED_* env."""
    return create_app(WhaleFeed(load_config()))
