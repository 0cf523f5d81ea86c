"""Block monitor: follows the chain head and emits whale events.

State machine:

    DISCONNECTED → CONNECTING → SUBSCRIBED ⇄ PROCESSING_BLOCK
          ↑            │             │
          └── backoff ─┘◄── subscription lost

A failed connect waits `reconnect_delay` and tries again; `retry_count`
holds the number of consecutive failures and `max_retries` (>= 0) bounds
it. A failure while processing a block is logged and the monitor goes back
to SUBSCRIBED; it never stops monitoring because of one block. STOPPED is
only reached through stop() or cancellation.

New-block notification is a producer task polling the head and feeding a
bounded queue of block numbers. The consumer processes one block at a time
and joins all of that block's receipt fetches before taking the next
number, so a slow node back-pressures the producer.

Ordering within one block: native transfers in transaction order, then
token transfers. Every event goes to the store before the hub, so no
subscriber can see an event the store does not hold.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, TypeVar

from whalefeed.classifier import classify_token_transfer, is_native_whale, to_base_units
from whalefeed.config import WhalefeedConfig
from whalefeed.decoder import decode_transfer_log, is_transfer_log
from whalefeed.exceptions import (
    ConfigInvalidError,
    DecodeError,
    NetworkTimeoutError,
    UpstreamUnavailableError,
    WhalefeedError,
)
from whalefeed.formatter import format_native_transfer, format_token_transfer
from whalefeed.hub import DistributionHub
from whalefeed.labels import Labeler
from whalefeed.models import NativeTransfer, WhaleEvent
from whalefeed.providers.base import ChainProvider, ChainTransaction, NetworkInfo, Receipt
from whalefeed.registry import NATIVE_DECIMALS, AssetRegistry
from whalefeed.store import EventStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Pending block notifications; the head poller blocks when this is full.
BLOCK_QUEUE_SIZE = 32


class MonitorState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    SUBSCRIBED = "subscribed"
    PROCESSING_BLOCK = "processing_block"
    STOPPED = "stopped"


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


class BlockMonitor:
    def __init__(
        self,
        provider: ChainProvider,
        registry: AssetRegistry,
        labeler: Labeler,
        store: EventStore,
        hub: DistributionHub,
        config: WhalefeedConfig,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._provider = provider
        self._registry = registry
        self._labeler = labeler
        self._store = store
        self._hub = hub
        self._settings = config.monitor
        self._timeout = config.provider.request_timeout
        self._poll_interval = config.provider.poll_interval
        self._clock = clock

        try:
            self.native_threshold_wei = to_base_units(
                config.monitor.native_threshold, NATIVE_DECIMALS
            )
        except ValueError as e:
            raise ConfigInvalidError(f"monitor.native_threshold: {e}") from e
        self.eth_usd_price = config.pricing.eth_usd

        self.state = MonitorState.DISCONNECTED
        self.retry_count = 0
        self.network: NetworkInfo | None = None
        self.head: int | None = None
        self.last_processed: int | None = None
        self.blocks_processed = 0
        self.events_emitted = 0

        self._last_detected: datetime | None = None
        self._stopping = asyncio.Event()
        self._blocks: asyncio.Queue[int] = asyncio.Queue(maxsize=BLOCK_QUEUE_SIZE)
        self._task: asyncio.Task | None = None

    @property
    def is_connected(self) -> bool:
        return self.state in (MonitorState.SUBSCRIBED, MonitorState.PROCESSING_BLOCK)

    # ── Lifecycle ────────────────────────────────────────────────────────────

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._stopping.clear()
            self._task = asyncio.create_task(self.run(), name="whalefeed-monitor")
        return self._task

    async def stop(self, timeout: float | None = None) -> None:
        """
        Stop taking notifications and wait for the in-flight block.

        After `timeout` (default: monitor.shutdown_timeout) the block is
        abandoned and the task cancelled.
        """
        self._stopping.set()
        task = self._task
        if task is None or task.done():
            return
        timeout = self._settings.shutdown_timeout if timeout is None else timeout
        _, pending = await asyncio.wait({task}, timeout=timeout)
        if pending:
            logger.warning("Monitor did not stop within %.1fs; abandoning in-flight block", timeout)
            task.cancel()
        await asyncio.gather(task, return_exceptions=True)

    async def run(self) -> None:
        """
        Monitor until stop() is called.

        Raises:
            UpstreamUnavailableError: more than max_retries consecutive
                                      connection failures.
        """
        logger.info("Starting whale alert monitoring")
        try:
            while not self._stopping.is_set():
                if not await self._connect():
                    await self._backoff()
                    continue
                await self._follow_chain()
                if not self._stopping.is_set():
                    self._set_state(MonitorState.DISCONNECTED)
                    await self._backoff()
        finally:
            self._set_state(MonitorState.STOPPED)
            logger.info(
                "Whale monitoring stopped (%d blocks, %d events)",
                self.blocks_processed,
                self.events_emitted,
            )

    # ── Block processing ─────────────────────────────────────────────────────

    async def process_block(self, number: int) -> list[WhaleEvent]:
        """
        Detect and emit every whale transfer in block `number`.

        Receipt failures forfeit only that transaction's logs; decode
        failures only that log entry.

        Raises:
            WhalefeedError: the block itself could not be fetched.
        """
        block = await self._call(self._provider.get_block(number, True))
        if block is None or not block.transactions:
            logger.debug("Block %d has no transactions", number)
            self.blocks_processed += 1
            return []

        logger.debug("Checking %d transactions in block %d", len(block.transactions), number)
        emitted: list[WhaleEvent] = []

        for tx in block.transactions:
            if not is_native_whale(tx.value, self.native_threshold_wei):
                continue
            transfer = NativeTransfer(
                tx_hash=tx.hash,
                from_addr=tx.from_addr,
                to_addr=tx.to_addr,
                amount=tx.value,
                block_number=number,
                gas_price=tx.gas_price,
            )
            event = format_native_transfer(
                transfer, self._labeler, self.eth_usd_price, self._now()
            )
            emitted.append(self._emit(event))

        watched = self._registry.all_addresses()
        for receipt in await self._fetch_receipts(block.transactions):
            if receipt is None:
                continue
            for log in receipt.logs:
                if log.address.lower() not in watched or not is_transfer_log(log):
                    continue
                try:
                    token_transfer = decode_transfer_log(log, receipt.tx_hash, number)
                except DecodeError as e:
                    logger.warning("Skipping malformed Transfer log in %s: %s", receipt.tx_hash, e)
                    continue
                asset = classify_token_transfer(token_transfer, self._registry)
                if asset is None:
                    continue
                event = format_token_transfer(token_transfer, asset, self._labeler, self._now())
                emitted.append(self._emit(event))

        self.blocks_processed += 1
        return emitted

    async def _fetch_receipts(self, txs: list[ChainTransaction]) -> list[Receipt | None]:
        semaphore = asyncio.Semaphore(self._settings.receipt_concurrency)

        async def _bounded(tx_hash: str) -> Receipt | None:
            async with semaphore:
                return await self._fetch_receipt(tx_hash)

        return await asyncio.gather(*(_bounded(tx.hash) for tx in txs))

    async def _fetch_receipt(self, tx_hash: str) -> Receipt | None:
        try:
            return await self._call(self._provider.get_transaction_receipt(tx_hash))
        except WhalefeedError as e:
            logger.warning("Error getting receipt for %s: %s", tx_hash, e)
            return None

    def _emit(self, event: WhaleEvent) -> WhaleEvent:
        self._store.append(event)
        self._hub.broadcast(event)
        self.events_emitted += 1
        logger.info(
            "%s WHALE ALERT: %s %s from %s to %s (block %d)",
            event.symbol,
            event.to_dict()["value"],
            event.symbol,
            event.from_label,
            event.to_label,
            event.block_number,
        )
        return event

    def _now(self) -> datetime:
        """Wall clock clamped so detection timestamps never go backwards."""
        now = self._clock()
        if self._last_detected is not None and now < self._last_detected:
            now = self._last_detected
        self._last_detected = now
        return now

    # ── Connection / subscription ────────────────────────────────────────────

    async def _connect(self) -> bool:
        self._set_state(MonitorState.CONNECTING)
        try:
            network = await self._call(self._provider.get_network_info())
            head = await self._call(self._provider.get_block_number())
        except WhalefeedError as e:
            self.retry_count += 1
            self._set_state(MonitorState.DISCONNECTED)
            max_retries = self._settings.max_retries
            if 0 <= max_retries < self.retry_count:
                raise UpstreamUnavailableError(
                    f"Gave up after {self.retry_count} failed connection attempts: {e}",
                    details={"retry_count": self.retry_count},
                ) from e
            logger.warning(
                "Failed to connect to Ethereum node: %s (attempt %d). Retrying in %.0fs",
                e,
                self.retry_count,
                self._settings.reconnect_delay,
            )
            return False

        self.retry_count = 0
        self.network = network
        self.head = head
        logger.info(
            "Connected to network: %s (chain id %d), current block %d",
            network.name,
            network.chain_id,
            head,
        )
        self._set_state(MonitorState.SUBSCRIBED)
        return True

    async def _follow_chain(self) -> None:
        """Consume block notifications until stop or subscription loss."""
        start = self.last_processed if self.last_processed is not None else self.head
        watcher = asyncio.create_task(self._watch_blocks(start or 0), name="whalefeed-heads")
        try:
            while not self._stopping.is_set():
                number = await self._next_block(watcher)
                if number is None:
                    return
                await self._handle_block(number)
        finally:
            watcher.cancel()
            await asyncio.gather(watcher, return_exceptions=True)
            # Undelivered notifications are replayed from last_processed on reconnect.
            while not self._blocks.empty():
                self._blocks.get_nowait()

    async def _watch_blocks(self, last: int) -> None:
        """Producer: poll the head and queue every new block number."""
        failures = 0
        max_failures = max(1, self._settings.max_poll_failures)
        catchup = max(1, self._settings.max_catchup_blocks)
        while True:
            try:
                head = await self._call(self._provider.get_block_number())
            except WhalefeedError as e:
                failures += 1
                if failures >= max_failures:
                    raise
                logger.warning("Head poll failed (%d/%d): %s", failures, max_failures, e)
                await asyncio.sleep(self._poll_interval)
                continue

            failures = 0
            self.head = head
            if head > last:
                first = last + 1
                if head - last > catchup:
                    first = head - catchup + 1
                    logger.warning(
                        "Skipping blocks %d-%d (catch-up limit %d)", last + 1, first - 1, catchup
                    )
                for number in range(first, head + 1):
                    logger.debug("New block: %d", number)
                    await self._blocks.put(number)
                last = head
            await asyncio.sleep(self._poll_interval)

    async def _next_block(self, watcher: asyncio.Task) -> int | None:
        """Next notified block number, or None on stop / subscription loss."""
        if not self._blocks.empty():
            return self._blocks.get_nowait()

        getter = asyncio.ensure_future(self._blocks.get())
        stopper = asyncio.ensure_future(self._stopping.wait())
        try:
            done, _ = await asyncio.wait(
                {getter, stopper, watcher}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            for fut in (getter, stopper):
                if not fut.done():
                    fut.cancel()

        if getter in done:
            return getter.result()
        if watcher in done and not watcher.cancelled():
            logger.warning("Block subscription lost: %s", watcher.exception())
        return None

    async def _handle_block(self, number: int) -> None:
        self._set_state(MonitorState.PROCESSING_BLOCK)
        try:
            await self.process_block(number)
        except WhalefeedError as e:
            logger.warning("Error processing block %d: %s", number, e)
        except Exception:
            logger.exception("Unexpected error processing block %d", number)
        finally:
            self.last_processed = number
            if self.state is MonitorState.PROCESSING_BLOCK:
                self._set_state(MonitorState.SUBSCRIBED)

    # ── Helpers ──────────────────────────────────────────────────────────────

    async def _call(self, call: Awaitable[T]) -> T:
        """Per-call deadline on every upstream request."""
        try:
            return await asyncio.wait_for(call, self._timeout)
        except asyncio.TimeoutError as e:
            raise NetworkTimeoutError(
                f"Upstream call timed out after {self._timeout}s"
            ) from e

    async def _backoff(self) -> None:
        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(self._stopping.wait(), self._settings.reconnect_delay)

    def _set_state(self, state: MonitorState) -> None:
        if state is not self.state:
            logger.debug("Monitor %s → %s", self.state.value, state.value)
            self.state = state

    def status(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "retry_count": self.retry_count,
            "head": self.head,
            "last_processed": self.last_processed,
            "blocks_processed": self.blocks_processed,
            "events_emitted": self.events_emitted,
        }
