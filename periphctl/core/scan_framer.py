"""Keystroke-to-barcode framing for HID keyboard-wedge scanners."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from typing import Any, Protocol

from periphctl.core.keymap import char_for_key, is_enter
from periphctl.core.model import ScanEvent, Symbology

LOGGER = logging.getLogger(__name__)

GAP_TIMEOUT_S = 0.1
FLUSH_DELAY_S = 0.15


class TimerHandle(Protocol):
    def cancel(self) -> Any:
        """Prevent the scheduled callback from running."""


class Scheduler(Protocol):
    def call_later(self, delay: float, callback: Callable[[], Any]) -> TimerHandle:
        """Run ``callback`` after ``delay`` seconds on the keystroke thread."""


def classify_symbology(content: str) -> Symbology:
    digits = content.isdigit() and content.isascii()
    if digits and len(content) == 13:
        return Symbology.EAN_13
    if digits and len(content) == 8:
        return Symbology.EAN_8
    if digits and len(content) == 12:
        return Symbology.UPC_A
    if content.startswith(("http://", "https://")):
        return Symbology.QR_URL
    if ":" in content or ";" in content:
        return Symbology.QR
    if digits:
        return Symbology.NUMERIC
    return Symbology.CODE_128


class FlushTimer:
    """The single pending auto-flush owned by one framer."""

    def __init__(self, callback: Callable[[], None], scheduler: Scheduler | None = None) -> None:
        self._callback = callback
        self._scheduler = scheduler
        self._bound: Scheduler | None = scheduler
        self._handle: TimerHandle | None = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def bind(self) -> None:
        """Resolve the scheduler, defaulting to the running event loop."""
        if self._scheduler is not None:
            self._bound = self._scheduler
            return
        try:
            self._bound = asyncio.get_running_loop()
        except RuntimeError as exc:
            raise RuntimeError(
                "Scan framing needs a scheduler or a running asyncio event loop"
            ) from exc

    def reschedule(self, delay: float) -> None:
        self.cancel()
        if self._bound is None:
            self.bind()
        self._handle = self._bound.call_later(delay, self._fire)

    def _fire(self) -> None:
        self._handle = None
        self._callback()


class ScanFramer:
    """Turns key-down events into ``ScanEvent`` frames.

    Frames end on Enter, on a keystroke gap longer than ``gap_timeout_s``, or
    when no key arrives for ``flush_delay_s``. Timer callbacks must run on the
    same thread that calls ``on_key_down``.
    """

    def __init__(
        self,
        sink: Callable[[ScanEvent], Any],
        scheduler: Scheduler | None = None,
        *,
        gap_timeout_s: float = GAP_TIMEOUT_S,
        flush_delay_s: float = FLUSH_DELAY_S,
        now: Callable[[], float] = time.time,
    ) -> None:
        self._sink = sink
        self._gap_timeout_s = gap_timeout_s
        self._flush_delay_s = flush_delay_s
        self._now = now
        self._timer = FlushTimer(self._on_timer, scheduler)
        self._buffer: list[str] = []
        self._last_key_at: float | None = None
        self._listening = False

    @property
    def listening(self) -> bool:
        return self._listening

    @property
    def buffer(self) -> str:
        return "".join(self._buffer)

    @property
    def flush_pending(self) -> bool:
        return self._timer.pending

    def start(self) -> None:
        self._timer.cancel()
        self._timer.bind()
        self._buffer.clear()
        self._last_key_at = None
        self._listening = True

    def stop(self) -> None:
        self._timer.cancel()
        if self._buffer:
            LOGGER.debug("Discarding partial scan of %d characters", len(self._buffer))
        self._buffer.clear()
        self._last_key_at = None
        self._listening = False

    def on_key_down(self, key_code: int, timestamp: float | None = None) -> bool:
        """Feed one key-down event; returns True if the key was consumed."""
        if not self._listening:
            return False

        enter = is_enter(key_code)
        char = None if enter else char_for_key(key_code)
        if not enter and char is None:
            return False

        at = self._now() if timestamp is None else timestamp
        if (
            self._last_key_at is not None
            and at - self._last_key_at > self._gap_timeout_s
            and self._buffer
        ):
            self._flush()
        self._last_key_at = at

        if enter:
            self._timer.cancel()
            self._flush()
            return True

        self._timer.reschedule(self._flush_delay_s)
        self._buffer.append(char)
        return True

    def _on_timer(self) -> None:
        if self._buffer:
            LOGGER.debug("Auto-flushing scan after %.0f ms idle", self._flush_delay_s * 1000)
            self._flush()

    def _flush(self) -> None:
        content = "".join(self._buffer).strip()
        self._buffer.clear()
        if not content:
            return
        event = ScanEvent(
            content=content,
            length=len(content),
            symbology=classify_symbology(content),
            timestamp=self._now(),
        )
        LOGGER.debug("Scanned %r as %s", content, event.symbology.value)
        self._sink(event)
