"""Typed broadcast channel for delivering scan and device events."""

from __future__ import annotations

import logging
import queue
import threading
from typing import Generic, TypeVar

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


class EventChannel(Generic[T]):
    """Fan-out of published items into bounded per-subscriber queues.

    ``publish`` never blocks: when a subscriber falls behind, its oldest item
    is dropped to make room.
    """

    def __init__(self, name: str = "events") -> None:
        self.name = name
        self._subscribers: list[queue.Queue[T]] = []
        self._lock = threading.Lock()

    def subscribe(self, maxsize: int = 64) -> queue.Queue[T]:
        if maxsize <= 0:
            raise ValueError("maxsize must be positive")
        subscriber: queue.Queue[T] = queue.Queue(maxsize=maxsize)
        with self._lock:
            self._subscribers.append(subscriber)
        return subscriber

    def unsubscribe(self, subscriber: queue.Queue[T]) -> None:
        with self._lock:
            if subscriber in self._subscribers:
                self._subscribers.remove(subscriber)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def publish(self, item: T) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        for subscriber in subscribers:
            while True:
                try:
                    subscriber.put_nowait(item)
                    break
                except queue.Full:
                    try:
                        subscriber.get_nowait()
                    except queue.Empty:
                        continue
                    LOGGER.warning("%s: subscriber queue full, dropped oldest item", self.name)
