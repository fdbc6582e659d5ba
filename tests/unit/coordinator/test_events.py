"""
Unit tests for SpoolEventBus and spool events.
"""

import pytest

from telemetry_spool.coordinator.events import (
    SpoolEvent,
    SpoolEventBus,
    SpoolEventKind,
    spool_events,
)


@pytest.fixture
def fresh_bus():
    """Fresh SpoolEventBus for each test."""
    return SpoolEventBus()


@pytest.fixture
def event():
    return SpoolEvent(
        kind=SpoolEventKind.DATA_LOSS,
        source="traces-exporter",
        reason="queue_full",
        size_bytes=512,
    )


def test_event_immutable(event):
    with pytest.raises(Exception):  # dataclass frozen raises on assignment
        event.reason = "other"  # type: ignore


def test_is_loss(event):
    assert event.is_loss
    assert not SpoolEvent(SpoolEventKind.SPILLED, "x").is_loss


@pytest.mark.asyncio
async def test_subscribe_and_publish(fresh_bus, event):
    received = []

    async def subscriber(evt: SpoolEvent):
        received.append(evt)

    fresh_bus.subscribe(subscriber)
    await fresh_bus.publish(event)

    assert received == [event]


@pytest.mark.asyncio
async def test_duplicate_subscribe_ignored(fresh_bus, event):
    received = []

    async def subscriber(evt):
        received.append(evt)

    fresh_bus.subscribe(subscriber)
    fresh_bus.subscribe(subscriber)
    assert fresh_bus.subscriber_count == 1

    await fresh_bus.publish(event)
    assert len(received) == 1


@pytest.mark.asyncio
async def test_unsubscribe(fresh_bus, event):
    received = []

    async def subscriber(evt):
        received.append(evt)

    fresh_bus.subscribe(subscriber)
    fresh_bus.unsubscribe(subscriber)
    fresh_bus.unsubscribe(subscriber)  # safe twice

    await fresh_bus.publish(event)
    assert received == []


@pytest.mark.asyncio
async def test_failing_subscriber_isolated(fresh_bus, event):
    """One subscriber's failure doesn't affect others."""
    received = []

    async def broken(evt):
        raise RuntimeError("boom")

    async def healthy(evt):
        received.append(evt)

    fresh_bus.subscribe(broken)
    fresh_bus.subscribe(healthy)

    await fresh_bus.publish(event)
    assert received == [event]


@pytest.mark.asyncio
async def test_publish_without_subscribers(fresh_bus, event):
    await fresh_bus.publish(event)


def test_singleton_accessor():
    assert spool_events() is spool_events()
