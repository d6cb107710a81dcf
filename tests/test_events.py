from __future__ import annotations

import logging

import pytest

from periphctl.core.events import EventChannel


def test_every_subscriber_receives_items() -> None:
    channel: EventChannel[str] = EventChannel("scans")
    first = channel.subscribe()
    second = channel.subscribe()

    channel.publish("4006381333931")

    assert first.get_nowait() == "4006381333931"
    assert second.get_nowait() == "4006381333931"


def test_full_subscriber_drops_oldest(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.WARNING, logger="periphctl.core.events")
    channel: EventChannel[int] = EventChannel("scans")
    subscriber = channel.subscribe(maxsize=2)

    for item in (1, 2, 3):
        channel.publish(item)

    assert [subscriber.get_nowait(), subscriber.get_nowait()] == [2, 3]
    assert "dropped oldest" in caplog.text


def test_unsubscribe_stops_delivery() -> None:
    channel: EventChannel[int] = EventChannel()
    subscriber = channel.subscribe()
    channel.unsubscribe(subscriber)
    channel.publish(1)

    assert subscriber.empty()
    assert channel.subscriber_count == 0


def test_subscribe_requires_bounded_queue() -> None:
    with pytest.raises(ValueError):
        EventChannel().subscribe(maxsize=0)
