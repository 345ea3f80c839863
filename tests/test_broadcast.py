"""Tests for the broadcast channel."""

import asyncio

import pytest

from mynotes.backend.broadcast import Broadcast


def test_late_subscriber_gets_no_history():
    channel = Broadcast("test")
    channel.publish(1)

    subscription = channel.subscribe()
    channel.publish(2)

    assert subscription.drain() == [2]


def test_every_subscriber_gets_every_value():
    channel = Broadcast("test")
    first = channel.subscribe()
    second = channel.subscribe()

    assert channel.publish("a") == 2
    channel.publish("b")

    assert first.drain() == ["a", "b"]
    assert second.drain() == ["a", "b"]


def test_closed_subscription_stops_receiving():
    channel = Broadcast("test")
    subscription = channel.subscribe()
    channel.publish(1)

    subscription.close()
    channel.publish(2)

    assert channel.subscriber_count == 0
    assert subscription.drain() == [1]


def test_get_nowait_on_empty_subscription():
    subscription = Broadcast("test").subscribe()

    with pytest.raises(asyncio.QueueEmpty):
        subscription.get_nowait()


@pytest.mark.asyncio
async def test_async_iteration_ends_on_close():
    channel = Broadcast("test")
    subscription = channel.subscribe()
    received = []

    async def consume():
        async for value in subscription:
            received.append(value)

    consumer = asyncio.create_task(consume())
    channel.publish(1)
    channel.publish(2)
    await asyncio.sleep(0)
    channel.close()
    await asyncio.wait_for(consumer, timeout=1)

    assert received == [1, 2]
