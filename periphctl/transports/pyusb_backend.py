"""USB enumeration, descriptor reads and bulk writes using PyUSB."""

from __future__ import annotations

import logging
from typing import Any

import usb.core
import usb.util

from periphctl.core.errors import (
    DeviceDiscoveryError,
    TransportConnectError,
    TransportSendError,
    TransportTimeoutError,
)
from periphctl.core.model import DeviceIdentity, InterfaceDescriptor

LOGGER = logging.getLogger(__name__)

USB_CLASS_PRINTER = 0x07

# GET_DESCRIPTOR(Report) addressed to an interface.
REPORT_REQUEST_TYPE = 0x81
REPORT_REQUEST = 0x06
REPORT_DESCRIPTOR_VALUE = 0x22 << 8
REPORT_MAX_LENGTH = 1024
REPORT_TIMEOUT_MS = 1000

_STRING_ERRORS = (ValueError, NotImplementedError, usb.core.USBError)


def _read_string(device: Any, attribute: str) -> str | None:
    try:
        value = getattr(device, attribute)
    except _STRING_ERRORS as exc:
        LOGGER.debug("Could not read %s of %04x:%04x: %s", attribute, device.idVendor, device.idProduct, exc)
        return None
    return value or None


def _interfaces(device: Any) -> tuple[InterfaceDescriptor, ...]:
    interfaces: list[InterfaceDescriptor] = []
    try:
        configuration = device[0]
        for interface in configuration:
            if interface.bAlternateSetting != 0:
                continue
            interfaces.append(
                InterfaceDescriptor(
                    number=interface.bInterfaceNumber,
                    interface_class=interface.bInterfaceClass,
                    interface_subclass=interface.bInterfaceSubClass,
                    interface_protocol=interface.bInterfaceProtocol,
                    endpoint_count=interface.bNumEndpoints,
                )
            )
    except (IndexError, usb.core.USBError) as exc:
        LOGGER.debug("Could not read configuration of %04x:%04x: %s", device.idVendor, device.idProduct, exc)
    return tuple(interfaces)


def snapshot(device: Any) -> DeviceIdentity:
    return DeviceIdentity(
        vendor_id=device.idVendor,
        product_id=device.idProduct,
        manufacturer=_read_string(device, "manufacturer"),
        product=_read_string(device, "product"),
        device_class=device.bDeviceClass,
        device_subclass=device.bDeviceSubClass,
        device_protocol=device.bDeviceProtocol,
        interfaces=_interfaces(device),
        bus=getattr(device, "bus", None),
        address=getattr(device, "address", None),
    )


class PyUSBBackend:
    def list_devices(self) -> list[DeviceIdentity]:
        try:
            devices = list(usb.core.find(find_all=True))
        except (usb.core.NoBackendError, usb.core.USBError) as exc:
            raise DeviceDiscoveryError(f"USB enumeration failed: {exc}") from exc
        identities = []
        for device in devices:
            try:
                identities.append(snapshot(device))
            finally:
                # String descriptor reads open a handle.
                usb.util.dispose_resources(device)
        return identities

    def read_report_descriptor(self, identity: DeviceIdentity, interface_number: int) -> bytes | None:
        try:
            device = self._find(identity)
        except TransportConnectError as exc:
            LOGGER.debug("%s", exc)
            return None
        if device is None:
            LOGGER.debug("Device %s is no longer attached", identity.device_id)
            return None
        try:
            data = device.ctrl_transfer(
                REPORT_REQUEST_TYPE,
                REPORT_REQUEST,
                REPORT_DESCRIPTOR_VALUE,
                interface_number,
                REPORT_MAX_LENGTH,
                timeout=REPORT_TIMEOUT_MS,
            )
        except (usb.core.USBError, ValueError, NotImplementedError) as exc:
            LOGGER.debug(
                "Report descriptor read failed for %s interface %d: %s",
                identity.device_id,
                interface_number,
                exc,
            )
            return None
        finally:
            usb.util.dispose_resources(device)
        return bytes(data)

    def bulk_write(self, identity: DeviceIdentity, payload: bytes, *, timeout_s: float = 5.0) -> int:
        device = self._find(identity)
        if device is None:
            raise TransportConnectError(f"Device {identity.device_id} is not attached")
        interface = None
        detached = False
        try:
            interface = self._printer_interface(device)
            detached = self._detach_kernel_driver(device, interface.bInterfaceNumber)
            endpoint = usb.util.find_descriptor(
                interface,
                custom_match=lambda ep: usb.util.endpoint_direction(ep.bEndpointAddress) == usb.util.ENDPOINT_OUT,
            )
            if endpoint is None:
                raise TransportConnectError(
                    f"Interface {interface.bInterfaceNumber} of {identity.device_id} has no OUT endpoint"
                )
            try:
                usb.util.claim_interface(device, interface.bInterfaceNumber)
            except usb.core.USBError as exc:
                raise TransportConnectError(
                    f"Could not claim interface {interface.bInterfaceNumber} of {identity.device_id}: {exc}"
                ) from exc

            try:
                written = endpoint.write(payload, timeout=int(timeout_s * 1000))
            except usb.core.USBTimeoutError as exc:
                LOGGER.error("Bulk write to %s timed out after %.1fs", identity.device_id, timeout_s)
                raise TransportTimeoutError(
                    f"Bulk write to {identity.device_id} timed out after {timeout_s:.1f}s"
                ) from exc
            except usb.core.USBError as exc:
                LOGGER.error("Bulk write to %s failed: %s", identity.device_id, exc)
                raise TransportSendError(f"Bulk write to {identity.device_id} failed: {exc}") from exc
        finally:
            if detached:
                self._reattach_kernel_driver(device, interface.bInterfaceNumber)
            usb.util.dispose_resources(device)

        LOGGER.debug("Wrote %d/%d bytes to %s", written, len(payload), identity.device_id)
        return written

    def _find(self, identity: DeviceIdentity) -> Any:
        try:
            if identity.bus is not None and identity.address is not None:
                return usb.core.find(bus=identity.bus, address=identity.address)
            return usb.core.find(idVendor=identity.vendor_id, idProduct=identity.product_id)
        except (usb.core.NoBackendError, usb.core.USBError) as exc:
            raise TransportConnectError(f"Could not open {identity.device_id}: {exc}") from exc

    def _printer_interface(self, device: Any) -> Any:
        try:
            try:
                configuration = device.get_active_configuration()
            except usb.core.USBError:
                device.set_configuration()
                configuration = device.get_active_configuration()
        except usb.core.USBError as exc:
            raise TransportConnectError(f"Could not configure device: {exc}") from exc

        interface = usb.util.find_descriptor(configuration, bInterfaceClass=USB_CLASS_PRINTER)
        if interface is None:
            interface = configuration[(0, 0)]
        return interface

    def _detach_kernel_driver(self, device: Any, interface_number: int) -> bool:
        try:
            if device.is_kernel_driver_active(interface_number):
                device.detach_kernel_driver(interface_number)
                LOGGER.debug("Detached kernel driver from interface %d", interface_number)
                return True
        except (NotImplementedError, usb.core.USBError) as exc:
            LOGGER.debug("Kernel driver detach skipped: %s", exc)
        return False

    def _reattach_kernel_driver(self, device: Any, interface_number: int) -> None:
        try:
            usb.util.release_interface(device, interface_number)
            device.attach_kernel_driver(interface_number)
            LOGGER.debug("Reattached kernel driver to interface %d", interface_number)
        except (NotImplementedError, usb.core.USBError) as exc:
            LOGGER.warning("Could not reattach kernel driver to interface %d: %s", interface_number, exc)
