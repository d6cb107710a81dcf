"""Stable public API for building tooling on top of periphctl.

This module is the supported integration surface for third-party callers.
Avoid importing from private/internal modules unless intentionally depending on
non-stable internals.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import Any

from periphctl.core.capability import CapabilitySession, ExternalCapability, wait_for_connection
from periphctl.core.errors import (
    CapabilityError,
    DeviceDiscoveryError,
    DeviceRoleError,
    DeviceSelectionError,
    PeriphctlError,
    RoleRulesLoadError,
    RoleRulesValidationError,
    TransportConnectError,
    TransportError,
    TransportSendError,
    TransportTimeoutError,
)
from periphctl.core.events import EventChannel
from periphctl.core.hid_usage import parse_usage
from periphctl.core.markup import transpile
from periphctl.core.model import (
    Classification,
    Confidence,
    DeviceChanges,
    DeviceIdentity,
    InterfaceDescriptor,
    KeyboardType,
    PrintResult,
    Role,
    RoleDecision,
    RoleRules,
    ScanEvent,
    Symbology,
    UsagePair,
)
from periphctl.core.scan_framer import ScanFramer, Scheduler, classify_symbology
from periphctl.core.service import PeripheralService, diff_devices
from periphctl.transports.base import UsbBackend

__all__ = [
    "PeriphctlError",
    "CapabilityError",
    "DeviceDiscoveryError",
    "DeviceRoleError",
    "DeviceSelectionError",
    "RoleRulesLoadError",
    "RoleRulesValidationError",
    "TransportError",
    "TransportConnectError",
    "TransportSendError",
    "TransportTimeoutError",
    "Classification",
    "Confidence",
    "DeviceChanges",
    "DeviceIdentity",
    "InterfaceDescriptor",
    "KeyboardType",
    "PrintResult",
    "Role",
    "RoleDecision",
    "RoleRules",
    "ScanEvent",
    "Symbology",
    "UsagePair",
    "CapabilitySession",
    "EventChannel",
    "ExternalCapability",
    "ScanFramer",
    "UsbBackend",
    "classify_symbology",
    "parse_usage",
    "transpile",
    "wait_for_connection",
    "Client",
]


class Client:
    """Public client for interacting with periphctl core capabilities.

    A `Client` instance wraps role table loading, USB enumeration, device
    classification, scan framing and receipt printing behind a stable API
    intended for third-party tools (POS frontends/services/scripts).
    """

    def __init__(self, *, backend: UsbBackend | None = None) -> None:
        self._service = PeripheralService(backend=backend)

    @property
    def load_warnings(self) -> tuple[str, ...]:
        return self._service.load_warnings

    def list_roles(self) -> list[RoleRules]:
        return self._service.list_roles()

    def list_devices(self) -> list[DeviceIdentity]:
        return self._service.list_devices()

    def resolve_device(self, device_hint: str) -> DeviceIdentity:
        return self._service.resolve_device(device_hint)

    def read_usage(self, identity: DeviceIdentity) -> UsagePair | None:
        return self._service.read_usage(identity)

    def parse_usage(self, descriptor: bytes) -> UsagePair | None:
        return parse_usage(descriptor)

    def classify(
        self,
        identity: DeviceIdentity,
        role: Role,
        *,
        usage: UsagePair | None = None,
    ) -> RoleDecision:
        return self._service.classify(identity, role, usage)

    def identify(self, identity: DeviceIdentity, *, read_descriptor: bool = True) -> Classification:
        return self._service.identify(identity, read_descriptor=read_descriptor)

    def confirm_input_device(self, identity: DeviceIdentity, role: Role = Role.SCANNER) -> RoleDecision:
        return self._service.confirm_input_device(identity, role)

    def start_scan_session(
        self,
        identity: DeviceIdentity,
        sink: Callable[[ScanEvent], Any],
        scheduler: Scheduler | None = None,
        *,
        role: Role = Role.SCANNER,
    ) -> ScanFramer:
        return self._service.start_scan_session(identity, sink, scheduler, role=role)

    def transpile(self, text: str) -> bytes:
        return self._service.transpile(text)

    def print_markup(
        self,
        identity: DeviceIdentity,
        text: str,
        *,
        timeout_s: float = 5.0,
    ) -> PrintResult:
        return self._service.print_markup(identity, text, timeout_s=timeout_s)

    def diff_devices(
        self,
        previous: Iterable[DeviceIdentity],
        current: Iterable[DeviceIdentity],
    ) -> DeviceChanges:
        return diff_devices(previous, current)
