"""Service layer used by the CLI and the public API."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from typing import Any

from periphctl.core.classifier import classify, identify
from periphctl.core.errors import DeviceRoleError, DeviceSelectionError
from periphctl.core.hid_usage import parse_usage
from periphctl.core.markup import transpile
from periphctl.core.model import (
    Classification,
    DeviceChanges,
    DeviceIdentity,
    PrintResult,
    Role,
    RoleDecision,
    RoleRules,
    ScanEvent,
    UsagePair,
)
from periphctl.core.role_rules import load_role_rules
from periphctl.core.scan_framer import ScanFramer, Scheduler
from periphctl.transports.base import UsbBackend
from periphctl.transports.pyusb_backend import PyUSBBackend

LOGGER = logging.getLogger(__name__)

INPUT_ROLES = (Role.SCANNER, Role.KEYBOARD)
PRINT_TIMEOUT_S = 5.0


class PeripheralService:
    def __init__(self, *, backend: UsbBackend | None = None) -> None:
        loaded = load_role_rules()
        self.role_rules = loaded.rules
        self.load_warnings = loaded.warnings
        self.backend = backend or PyUSBBackend()

    def list_roles(self) -> list[RoleRules]:
        return list(self.role_rules.values())

    def rules_for(self, role: Role) -> RoleRules:
        rules = self.role_rules.get(role)
        if rules is None:
            raise DeviceRoleError(f"No role table loaded for '{role.value}'")
        return rules

    def list_devices(self) -> list[DeviceIdentity]:
        return self.backend.list_devices()

    def read_descriptor(self, identity: DeviceIdentity) -> tuple[int, bytes] | None:
        """Return ``(interface_number, descriptor)`` for the first readable HID interface."""
        for interface in identity.hid_interfaces():
            descriptor = self.backend.read_report_descriptor(identity, interface.number)
            if descriptor:
                return interface.number, descriptor
        return None

    def read_usage(self, identity: DeviceIdentity) -> UsagePair | None:
        for interface in identity.hid_interfaces():
            descriptor = self.backend.read_report_descriptor(identity, interface.number)
            if not descriptor:
                continue
            usage = parse_usage(descriptor)
            if usage is not None:
                return usage
        return None

    def classify(
        self,
        identity: DeviceIdentity,
        role: Role,
        usage: UsagePair | None = None,
    ) -> RoleDecision:
        return classify(identity, usage, self.rules_for(role))

    def classify_all(
        self,
        identity: DeviceIdentity,
        usage: UsagePair | None = None,
    ) -> dict[Role, RoleDecision]:
        return {role: classify(identity, usage, rules) for role, rules in self.role_rules.items()}

    def identify(self, identity: DeviceIdentity, *, read_descriptor: bool = True) -> Classification:
        usage = self.read_usage(identity) if read_descriptor else None
        return identify(identity, usage, self.role_rules)

    def resolve_device(self, device_hint: str) -> DeviceIdentity:
        devices = self.list_devices()
        if not devices:
            raise DeviceSelectionError("No USB devices found.")

        hint = device_hint.strip().lower()
        exact = [
            d
            for d in devices
            if hint == d.device_id or hint == f"{d.vendor_id:04x}:{d.product_id:04x}"
        ]
        candidates = exact or [
            d
            for d in devices
            if hint in (d.product or "").lower() or hint in (d.manufacturer or "").lower()
        ]

        if not candidates:
            raise DeviceSelectionError(f"No device found matching '{device_hint}'")
        if len(candidates) > 1:
            candidate_desc = ", ".join(f"{d.device_id} ({d.display_name})" for d in candidates)
            raise DeviceSelectionError(
                f"Multiple devices match '{device_hint}': {candidate_desc}. Use bus:address to choose one."
            )
        return candidates[0]

    def confirm_input_device(self, identity: DeviceIdentity, role: Role = Role.SCANNER) -> RoleDecision:
        """Re-run classification with a fresh descriptor read.

        The result replaces any earlier decision for ``identity``, including
        one that previously accepted it.
        """
        if role not in INPUT_ROLES:
            raise DeviceRoleError(f"Role '{role.value}' does not produce keystrokes")
        usage = self.read_usage(identity)
        decision = classify(identity, usage, self.rules_for(role))
        if not decision.is_match:
            raise DeviceRoleError(
                f"Device {identity.device_id} ({identity.display_name}) is not a {role.value} "
                f"(rejected by {decision.rule})"
            )

        # Scanner and keyboard are mutually exclusive; the identify ranking decides.
        input_tables = {r: rules for r, rules in self.role_rules.items() if r in INPUT_ROLES}
        winner = identify(identity, usage, input_tables)
        if winner.role is not role:
            raise DeviceRoleError(
                f"Device {identity.device_id} ({identity.display_name}) is not a {role.value} "
                f"(claimed by {winner.role.value} via {winner.rule})"
            )
        LOGGER.info(
            "Confirmed %s as %s (%s, %s)",
            identity.device_id,
            role.value,
            decision.confidence.value if decision.confidence else "-",
            decision.rule,
        )
        return decision

    def start_scan_session(
        self,
        identity: DeviceIdentity,
        sink: Callable[[ScanEvent], Any],
        scheduler: Scheduler | None = None,
        *,
        role: Role = Role.SCANNER,
    ) -> ScanFramer:
        self.confirm_input_device(identity, role)
        framer = ScanFramer(sink, scheduler)
        framer.start()
        return framer

    def transpile(self, text: str) -> bytes:
        return transpile(text)

    def print_markup(
        self,
        identity: DeviceIdentity,
        text: str,
        *,
        timeout_s: float = PRINT_TIMEOUT_S,
    ) -> PrintResult:
        payload = transpile(text)
        written = self.backend.bulk_write(identity, payload, timeout_s=timeout_s)
        if written < len(payload):
            LOGGER.warning("Short write to %s: %d/%d bytes", identity.device_id, written, len(payload))
        return PrintResult(device=identity, bytes_sent=written, payload_size=len(payload))


def diff_devices(
    previous: Iterable[DeviceIdentity],
    current: Iterable[DeviceIdentity],
) -> DeviceChanges:
    before = {d.device_id: d for d in previous}
    after = {d.device_id: d for d in current}
    return DeviceChanges(
        attached=tuple(d for key, d in after.items() if key not in before),
        detached=tuple(d for key, d in before.items() if key not in after),
    )
