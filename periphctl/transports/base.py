"""Transport interfaces."""

from __future__ import annotations

from typing import Protocol

from periphctl.core.model import DeviceIdentity


class UsbBackend(Protocol):
    def list_devices(self) -> list[DeviceIdentity]:
        """Snapshot every attached USB device."""

    def read_report_descriptor(self, identity: DeviceIdentity, interface_number: int) -> bytes | None:
        """Return the raw HID Report Descriptor, or None when it cannot be read."""

    def bulk_write(self, identity: DeviceIdentity, payload: bytes, *, timeout_s: float = 5.0) -> int:
        """Send payload to the device's bulk OUT endpoint and return bytes written."""
