"""Bounded connect lifecycle for opaque vendor SDK capabilities."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from types import TracebackType
from typing import Protocol

from periphctl.core.errors import CapabilityError

LOGGER = logging.getLogger(__name__)

POLL_INTERVAL_S = 0.5
MAX_ATTEMPTS = 6


class ExternalCapability(Protocol):
    name: str

    def connect(self) -> None:
        """Begin binding to the vendor service; may complete asynchronously."""

    def disconnect(self) -> None:
        """Release the vendor service binding."""

    @property
    def is_connected(self) -> bool:
        """Whether the vendor service is ready for calls."""


def wait_for_connection(
    capability: ExternalCapability,
    *,
    poll_interval_s: float = POLL_INTERVAL_S,
    attempts: int = MAX_ATTEMPTS,
    sleep: Callable[[float], None] = time.sleep,
) -> bool:
    for attempt in range(1, attempts + 1):
        if capability.is_connected:
            return True
        LOGGER.debug(
            "Waiting for %s (attempt %d/%d)",
            getattr(capability, "name", "capability"),
            attempt,
            attempts,
        )
        sleep(poll_interval_s)
    return capability.is_connected


class CapabilitySession:
    """Context manager that connects, waits a bounded time, and always disconnects."""

    def __init__(
        self,
        capability: ExternalCapability,
        *,
        poll_interval_s: float = POLL_INTERVAL_S,
        attempts: int = MAX_ATTEMPTS,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.capability = capability
        self._poll_interval_s = poll_interval_s
        self._attempts = attempts
        self._sleep = sleep

    def __enter__(self) -> ExternalCapability:
        self.capability.connect()
        ready = wait_for_connection(
            self.capability,
            poll_interval_s=self._poll_interval_s,
            attempts=self._attempts,
            sleep=self._sleep,
        )
        if not ready:
            self.capability.disconnect()
            waited = self._poll_interval_s * self._attempts
            raise CapabilityError(
                f"{getattr(self.capability, 'name', 'Capability')} did not connect within {waited:.1f}s"
            )
        return self.capability

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.capability.disconnect()
