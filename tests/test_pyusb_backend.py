from __future__ import annotations

from array import array
from typing import Any

import pytest
import usb.core
import usb.util

from periphctl.core.errors import (
    DeviceDiscoveryError,
    TransportConnectError,
    TransportSendError,
    TransportTimeoutError,
)
from periphctl.core.model import DeviceIdentity
from periphctl.transports.pyusb_backend import PyUSBBackend

from conftest import KEYBOARD_DESCRIPTOR


class FakeEndpoint:
    def __init__(self, address: int, error: Exception | None = None) -> None:
        self.bEndpointAddress = address
        self.error = error
        self.written: list[tuple[bytes, int]] = []

    def write(self, data: bytes, timeout: int) -> int:
        if self.error is not None:
            raise self.error
        self.written.append((data, timeout))
        return len(data)


class FakeInterface:
    def __init__(
        self,
        number: int,
        cls: int,
        subclass: int = 0,
        protocol: int = 0,
        *,
        alternate: int = 0,
        endpoints: tuple[FakeEndpoint, ...] = (),
    ) -> None:
        self.bInterfaceNumber = number
        self.bInterfaceClass = cls
        self.bInterfaceSubClass = subclass
        self.bInterfaceProtocol = protocol
        self.bAlternateSetting = alternate
        self.bNumEndpoints = len(endpoints)
        self.endpoints = endpoints

    def __iter__(self):
        return iter(self.endpoints)


class FakeConfiguration:
    def __init__(self, interfaces: list[FakeInterface]) -> None:
        self.interfaces = interfaces

    def __iter__(self):
        return iter(self.interfaces)

    def __getitem__(self, key: tuple[int, int]) -> FakeInterface:
        number, alternate = key
        for interface in self.interfaces:
            if (interface.bInterfaceNumber, interface.bAlternateSetting) == (number, alternate):
                return interface
        raise IndexError(key)


class FakeUsbDevice:
    def __init__(
        self,
        vendor_id: int,
        product_id: int,
        interfaces: list[FakeInterface],
        *,
        manufacturer: str | None = "Honeywell",
        product: str | None = "Voyager",
        bus: int = 1,
        address: int = 4,
        descriptor: bytes | Exception = b"",
        kernel_driver: bool = True,
    ) -> None:
        self.kernel_driver = kernel_driver
        self.idVendor = vendor_id
        self.idProduct = product_id
        self.bDeviceClass = 0
        self.bDeviceSubClass = 0
        self.bDeviceProtocol = 0
        self.bus = bus
        self.address = address
        self._manufacturer = manufacturer
        self._product = product
        self.configuration = FakeConfiguration(interfaces)
        self.descriptor = descriptor
        self.ctrl_calls: list[tuple[Any, ...]] = []
        self.detached: list[int] = []
        self.attached: list[int] = []
        self.released: list[int] = []

    @property
    def manufacturer(self) -> str | None:
        if self._manufacturer is None:
            raise ValueError("The device has no langid (permission issue, no string descriptors supported or device error)")
        return self._manufacturer

    @property
    def product(self) -> str | None:
        return self._product

    def __getitem__(self, index: int) -> FakeConfiguration:
        if index != 0:
            raise IndexError(index)
        return self.configuration

    def ctrl_transfer(self, *args: Any, timeout: int) -> array:
        self.ctrl_calls.append((*args, timeout))
        if isinstance(self.descriptor, Exception):
            raise self.descriptor
        return array("B", self.descriptor)

    def get_active_configuration(self) -> FakeConfiguration:
        return self.configuration

    def is_kernel_driver_active(self, interface: int) -> bool:
        return self.kernel_driver

    def detach_kernel_driver(self, interface: int) -> None:
        self.detached.append(interface)

    def attach_kernel_driver(self, interface: int) -> None:
        if interface in self.released:
            self.attached.append(interface)


@pytest.fixture
def usb_bus(monkeypatch: pytest.MonkeyPatch):
    devices: list[FakeUsbDevice] = []
    disposed: list[FakeUsbDevice] = []
    claimed: list[tuple[FakeUsbDevice, int]] = []

    def fake_find(find_all: bool = False, **kwargs: Any):
        matches = [d for d in devices if all(getattr(d, key) == value for key, value in kwargs.items())]
        if find_all:
            return iter(matches)
        return matches[0] if matches else None

    monkeypatch.setattr(usb.core, "find", fake_find)
    monkeypatch.setattr(usb.util, "dispose_resources", disposed.append)
    monkeypatch.setattr(usb.util, "claim_interface", lambda device, number: claimed.append((device, number)))
    monkeypatch.setattr(usb.util, "release_interface", lambda device, number: device.released.append(number))
    return devices, disposed, claimed


def _identity(device: FakeUsbDevice) -> DeviceIdentity:
    return DeviceIdentity(
        vendor_id=device.idVendor,
        product_id=device.idProduct,
        manufacturer=None,
        product=None,
        bus=device.bus,
        address=device.address,
    )


def test_list_devices_snapshots_descriptors(usb_bus) -> None:
    devices, disposed, _ = usb_bus
    devices.append(
        FakeUsbDevice(
            0x0C2E,
            0x0B61,
            [FakeInterface(0, 3, 1, 1), FakeInterface(0, 3, 1, 1, alternate=1), FakeInterface(1, 3, 0, 0)],
            manufacturer=None,
        )
    )

    (identity,) = PyUSBBackend().list_devices()

    assert identity.vendor_id == 0x0C2E
    assert identity.manufacturer is None
    assert identity.product == "Voyager"
    assert [(i.number, i.interface_subclass, i.interface_protocol) for i in identity.interfaces] == [(0, 1, 1), (1, 0, 0)]
    assert identity.device_id == "001:004"
    assert disposed == devices


def test_list_devices_without_backend(monkeypatch: pytest.MonkeyPatch) -> None:
    def no_backend(**kwargs: Any):
        raise usb.core.NoBackendError("No backend available")

    monkeypatch.setattr(usb.core, "find", no_backend)
    with pytest.raises(DeviceDiscoveryError):
        PyUSBBackend().list_devices()


def test_read_report_descriptor(usb_bus) -> None:
    devices, disposed, _ = usb_bus
    device = FakeUsbDevice(0x046D, 0xC31C, [FakeInterface(0, 3, 1, 1)], descriptor=KEYBOARD_DESCRIPTOR)
    devices.append(device)

    data = PyUSBBackend().read_report_descriptor(_identity(device), 0)

    assert data == KEYBOARD_DESCRIPTOR
    assert device.ctrl_calls == [(0x81, 0x06, 0x2200, 0, 1024, 1000)]
    assert disposed == [device]


def test_read_report_descriptor_failure_releases_handle(usb_bus) -> None:
    devices, disposed, _ = usb_bus
    device = FakeUsbDevice(
        0x046D,
        0xC31C,
        [FakeInterface(0, 3, 1, 1)],
        descriptor=usb.core.USBError("Access denied (insufficient permissions)"),
    )
    devices.append(device)

    assert PyUSBBackend().read_report_descriptor(_identity(device), 0) is None
    assert disposed == [device]


def test_read_report_descriptor_detached_device(usb_bus) -> None:
    identity = DeviceIdentity(vendor_id=0x046D, product_id=0xC31C, manufacturer=None, product=None, bus=3, address=9)
    assert PyUSBBackend().read_report_descriptor(identity, 0) is None


def test_bulk_write_to_printer_out_endpoint(usb_bus) -> None:
    devices, disposed, claimed = usb_bus
    out_endpoint = FakeEndpoint(0x02)
    device = FakeUsbDevice(
        0x04B8,
        0x0E15,
        [FakeInterface(0, 7, 1, 2, endpoints=(FakeEndpoint(0x81), out_endpoint))],
    )
    devices.append(device)

    written = PyUSBBackend().bulk_write(_identity(device), b"\x1b\x40hi", timeout_s=2.5)

    assert written == 4
    assert out_endpoint.written == [(b"\x1b\x40hi", 2500)]
    assert device.detached == [0]
    assert claimed == [(device, 0)]
    assert disposed == [device]
    assert device.attached == [0]


def test_bulk_write_leaves_unbound_interface_alone(usb_bus) -> None:
    devices, _, _ = usb_bus
    device = FakeUsbDevice(
        0x0416,
        0x5011,
        [FakeInterface(0, 7, 1, 2, endpoints=(FakeEndpoint(0x01),))],
        kernel_driver=False,
    )
    devices.append(device)

    PyUSBBackend().bulk_write(_identity(device), b"data")

    assert device.detached == []
    assert device.released == []
    assert device.attached == []


def test_bulk_write_timeout(usb_bus) -> None:
    devices, disposed, _ = usb_bus
    endpoint = FakeEndpoint(0x01, error=usb.core.USBTimeoutError("Operation timed out"))
    device = FakeUsbDevice(0x04B8, 0x0E15, [FakeInterface(0, 7, 1, 2, endpoints=(endpoint,))])
    devices.append(device)

    with pytest.raises(TransportTimeoutError):
        PyUSBBackend().bulk_write(_identity(device), b"data")
    assert disposed == [device]
    assert device.attached == [0]


def test_bulk_write_io_error(usb_bus) -> None:
    devices, _, _ = usb_bus
    endpoint = FakeEndpoint(0x01, error=usb.core.USBError("Pipe error"))
    device = FakeUsbDevice(0x04B8, 0x0E15, [FakeInterface(0, 7, 1, 2, endpoints=(endpoint,))])
    devices.append(device)

    with pytest.raises(TransportSendError, match="Pipe error"):
        PyUSBBackend().bulk_write(_identity(device), b"data")


def test_bulk_write_without_out_endpoint(usb_bus) -> None:
    devices, disposed, _ = usb_bus
    device = FakeUsbDevice(0x04B8, 0x0E15, [FakeInterface(0, 7, 1, 2, endpoints=(FakeEndpoint(0x81),))])
    devices.append(device)

    with pytest.raises(TransportConnectError):
        PyUSBBackend().bulk_write(_identity(device), b"data")
    assert disposed == [device]


def test_bulk_write_to_missing_device(usb_bus) -> None:
    identity = DeviceIdentity(vendor_id=0x04B8, product_id=0x0E15, manufacturer=None, product=None, bus=2, address=2)
    with pytest.raises(TransportConnectError):
        PyUSBBackend().bulk_write(identity, b"data")
