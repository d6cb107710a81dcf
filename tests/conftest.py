from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import pytest

from periphctl.core.model import DeviceIdentity, InterfaceDescriptor


@pytest.fixture(autouse=True)
def isolated_xdg(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "cfg"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    return tmp_path


KEYBOARD_DESCRIPTOR = bytes.fromhex("05010906a101050719e029e71500250175019508810295017508810395057501")
MOUSE_DESCRIPTOR = bytes.fromhex("05010902a1010901a100050919012903")
SCANNER_DESCRIPTOR = bytes.fromhex("068c000902a101")


def make_device(
    vendor_id: int,
    product: str | None = None,
    *,
    manufacturer: str | None = None,
    product_id: int = 0x0001,
    interfaces: tuple[tuple[int, int, int], ...] = ((3, 0, 0),),
    device_class: int = 0,
    bus: int | None = 1,
    address: int | None = 4,
) -> DeviceIdentity:
    return DeviceIdentity(
        vendor_id=vendor_id,
        product_id=product_id,
        manufacturer=manufacturer,
        product=product,
        device_class=device_class,
        interfaces=tuple(
            InterfaceDescriptor(number=n, interface_class=c, interface_subclass=s, interface_protocol=p, endpoint_count=1)
            for n, (c, s, p) in enumerate(interfaces)
        ),
        bus=bus,
        address=address,
    )


class FakeBackend:
    def __init__(
        self,
        devices: list[DeviceIdentity] | None = None,
        descriptors: dict[tuple[str, int], bytes | None] | None = None,
    ) -> None:
        self.devices = devices or []
        self.descriptors = descriptors or {}
        self.descriptor_reads: list[tuple[str, int]] = []
        self.writes: list[tuple[str, bytes, float]] = []
        self.write_error: Exception | None = None

    def list_devices(self) -> list[DeviceIdentity]:
        return list(self.devices)

    def read_report_descriptor(self, identity: DeviceIdentity, interface_number: int) -> bytes | None:
        self.descriptor_reads.append((identity.device_id, interface_number))
        return self.descriptors.get((identity.device_id, interface_number))

    def bulk_write(self, identity: DeviceIdentity, payload: bytes, *, timeout_s: float = 5.0) -> int:
        if self.write_error is not None:
            raise self.write_error
        self.writes.append((identity.device_id, payload, timeout_s))
        return len(payload)


class ManualHandle:
    def __init__(self, when: float, callback: Callable[[], None]) -> None:
        self.when = when
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Deterministic stand-in for an event loop's ``call_later``."""

    def __init__(self) -> None:
        self.now = 0.0
        self.handles: list[ManualHandle] = []

    def call_later(self, delay: float, callback: Callable[[], None]) -> ManualHandle:
        handle = ManualHandle(self.now + delay, callback)
        self.handles.append(handle)
        return handle

    def pending(self) -> list[ManualHandle]:
        return [h for h in self.handles if not h.cancelled]

    def advance(self, seconds: float) -> None:
        self.now += seconds
        due = sorted((h for h in self.pending() if h.when <= self.now), key=lambda h: h.when)
        for handle in due:
            self.handles.remove(handle)
            if not handle.cancelled:
                handle.callback()
