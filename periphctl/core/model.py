"""Core data models used across role tables, classifier, service, and CLI."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from periphctl.core.vendors import vendor_name

USB_CLASS_HID = 0x03


class Role(str, Enum):
    SCANNER = "scanner"
    KEYBOARD = "keyboard"
    PRINTER = "printer"
    CARD_READER = "card_reader"
    UNKNOWN = "unknown"


class Confidence(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return {"high": 3, "medium": 2, "low": 1}[self.value]


class Symbology(str, Enum):
    EAN_13 = "EAN-13"
    EAN_8 = "EAN-8"
    UPC_A = "UPC-A"
    QR_URL = "QR Code (URL)"
    QR = "QR Code"
    NUMERIC = "Numeric Barcode"
    CODE_128 = "Code 128 / Code 39"


class KeyboardType(str, Enum):
    NUMERIC = "numeric"
    FULL = "full"

    @property
    def key_count(self) -> int:
        return 17 if self is KeyboardType.NUMERIC else 104


class VendorDefinedPolicy(str, Enum):
    """Which vendors may be accepted on a HID subclass 0 / protocol 0 interface."""

    ANY = "any"
    ALLOW_LISTED = "allow_listed"
    NEVER = "never"


@dataclass(frozen=True)
class InterfaceDescriptor:
    number: int
    interface_class: int
    interface_subclass: int
    interface_protocol: int
    endpoint_count: int = 0

    @property
    def is_hid(self) -> bool:
        return self.interface_class == USB_CLASS_HID


@dataclass(frozen=True)
class DeviceIdentity:
    """Snapshot of a device's static descriptors taken at enumeration time."""

    vendor_id: int
    product_id: int
    manufacturer: str | None
    product: str | None
    device_class: int = 0
    device_subclass: int = 0
    device_protocol: int = 0
    interfaces: tuple[InterfaceDescriptor, ...] = ()
    bus: int | None = None
    address: int | None = None

    @property
    def device_id(self) -> str:
        if self.bus is not None and self.address is not None:
            return f"{self.bus:03d}:{self.address:03d}"
        return f"{self.vendor_id:04x}:{self.product_id:04x}"

    @property
    def manufacturer_name(self) -> str | None:
        """String descriptor, else the name registered for the vendor id."""
        return self.manufacturer or vendor_name(self.vendor_id)

    @property
    def display_name(self) -> str:
        return self.product or self.manufacturer_name or "<unnamed-device>"

    @property
    def keyboard_type(self) -> KeyboardType:
        product = (self.product or "").lower()
        if "num" in product or "keypad" in product:
            return KeyboardType.NUMERIC
        return KeyboardType.FULL

    def hid_interfaces(self) -> tuple[InterfaceDescriptor, ...]:
        return tuple(i for i in self.interfaces if i.is_hid)


@dataclass(frozen=True)
class UsagePair:
    usage_page: int
    usage: int


@dataclass(frozen=True)
class RoleDecision:
    is_match: bool
    confidence: Confidence | None
    rule: str


@dataclass(frozen=True)
class Classification:
    role: Role
    confidence: Confidence | None
    rule: str | None = None


@dataclass(frozen=True)
class RoleRules:
    role: Role
    name: str
    allow_vendors: frozenset[int]
    deny_vendors: frozenset[int]
    conflict_keywords: tuple[str, ...] = ()
    role_keywords: tuple[str, ...] = ()
    exclusion_keywords: tuple[str, ...] = ()
    exclusion_brands: tuple[str, ...] = ()
    adjacent_keywords: tuple[str, ...] = ()
    usage_pages: frozenset[int] = frozenset()
    usage_pairs: frozenset[UsagePair] = frozenset()
    conflicting_usage_pages: frozenset[int] = frozenset()
    conflicting_usage_pairs: frozenset[UsagePair] = frozenset()
    class_codes: frozenset[int] = frozenset()
    accept_boot_protocols: frozenset[int] = frozenset()
    reject_boot_protocols: frozenset[int] = frozenset()
    vendor_defined: VendorDefinedPolicy = VendorDefinedPolicy.NEVER
    trust_allow_listed_hid: bool = False


@dataclass(frozen=True)
class ScanEvent:
    content: str
    length: int
    symbology: Symbology
    timestamp: float


@dataclass(frozen=True)
class PrintResult:
    device: DeviceIdentity
    bytes_sent: int
    payload_size: int


@dataclass(frozen=True)
class DeviceChanges:
    attached: tuple[DeviceIdentity, ...]
    detached: tuple[DeviceIdentity, ...]
