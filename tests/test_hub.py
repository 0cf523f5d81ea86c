"""Tests for whalefeed/hub.py — subscriber fan-out."""

from __future__ import annotations

from typing import Callable

import pytest

from whalefeed.hub import INITIAL_DATA, WHALE_TRANSACTION, DistributionHub
from whalefeed.models import WhaleEvent
from whalefeed.store import EventStore


def publish(store: EventStore, hub: DistributionHub, event: WhaleEvent) -> int:
    """Store before hub, as the monitor does."""
    store.append(event)
    return hub.broadcast(event)


@pytest.mark.asyncio
async def test_initial_data_is_first_message(make_event: Callable[..., WhaleEvent]) -> None:
    """A new subscriber first receives the store snapshot, newest first."""
    store = EventStore(10)
    store.append(make_event(1))
    store.append(make_event(2))
    hub = DistributionHub(store)

    sub = hub.subscribe()
    message = await sub.get()
    assert message is not None
    assert message["type"] == INITIAL_DATA
    assert [e["blockNumber"] for e in message["data"]] == [2, 1]


@pytest.mark.asyncio
async def test_initial_data_empty_store() -> None:
    hub = DistributionHub(EventStore(10))
    message = await hub.subscribe().get()
    assert message == {"type": INITIAL_DATA, "data": []}


@pytest.mark.asyncio
async def test_live_events_follow_snapshot_without_gaps(
    make_event: Callable[..., WhaleEvent],
) -> None:
    """Every event is either in the snapshot or delivered live, exactly once."""
    store = EventStore(10)
    hub = DistributionHub(store)
    publish(store, hub, make_event(1))

    sub = hub.subscribe()
    for n in (2, 3, 4):
        assert publish(store, hub, make_event(n)) == 1

    initial = await sub.get()
    assert initial is not None
    assert [e["blockNumber"] for e in initial["data"]] == [1]

    live = [await sub.get() for _ in range(3)]
    assert all(m is not None and m["type"] == WHALE_TRANSACTION for m in live)
    assert [m["data"]["blockNumber"] for m in live if m] == [2, 3, 4]
    assert sub.pending == 0


@pytest.mark.asyncio
async def test_broadcast_to_every_subscriber(make_event: Callable[..., WhaleEvent]) -> None:
    store = EventStore(10)
    hub = DistributionHub(store)
    subs = [hub.subscribe() for _ in range(3)]

    assert publish(store, hub, make_event(7)) == 3
    assert hub.broadcast_count == 1
    for sub in subs:
        await sub.get()  # initial_data
        message = await sub.get()
        assert message is not None
        assert message["data"]["blockNumber"] == 7


def test_broadcast_without_subscribers(make_event: Callable[..., WhaleEvent]) -> None:
    hub = DistributionHub(EventStore(10))
    assert hub.broadcast(make_event(1)) == 0
    assert hub.broadcast_count == 1


@pytest.mark.asyncio
async def test_slow_subscriber_is_dropped(make_event: Callable[..., WhaleEvent]) -> None:
    """A full outbound queue drops that subscriber and nobody else."""
    store = EventStore(10)
    hub = DistributionHub(store, queue_size=2)
    slow = hub.subscribe()
    fast = hub.subscribe()

    await fast.get()  # initial_data
    for n in (1, 2):
        publish(store, hub, make_event(n))
        await fast.get()
    # slow still holds initial_data + 2 events; the third overflows it
    delivered = publish(store, hub, make_event(3))

    assert delivered == 1
    assert slow.dropped
    assert slow.closed
    assert not fast.dropped
    assert hub.subscriber_count == 1
    assert hub.dropped_count == 1
    assert await slow.get() is None

    message = await fast.get()
    assert message is not None
    assert message["data"]["blockNumber"] == 3


@pytest.mark.asyncio
async def test_unsubscribe_is_idempotent() -> None:
    hub = DistributionHub(EventStore(10))
    sub = hub.subscribe()
    assert hub.subscriber_count == 1

    hub.unsubscribe(sub)
    hub.unsubscribe(sub)

    assert hub.subscriber_count == 0
    assert sub.closed
    assert await sub.get() is None


@pytest.mark.asyncio
async def test_unsubscribed_receives_nothing(make_event: Callable[..., WhaleEvent]) -> None:
    store = EventStore(10)
    hub = DistributionHub(store)
    sub = hub.subscribe()
    hub.unsubscribe(sub)
    assert publish(store, hub, make_event(1)) == 0
    assert await sub.get() is None


@pytest.mark.asyncio
async def test_close_ends_async_iteration(make_event: Callable[..., WhaleEvent]) -> None:
    store = EventStore(10)
    hub = DistributionHub(store)
    sub = hub.subscribe()
    received = []

    first = await sub.__anext__()
    received.append(first["type"])
    hub.close()
    async for message in sub:
        received.append(message["type"])

    assert received == [INITIAL_DATA]
    assert hub.subscriber_count == 0
