"""Layered role classification over static USB identity and HID usage."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping

from periphctl.core.model import (
    Classification,
    Confidence,
    DeviceIdentity,
    Role,
    RoleDecision,
    RoleRules,
    UsagePair,
    VendorDefinedPolicy,
)

LOGGER = logging.getLogger(__name__)

BOOT_SUBCLASS = 1


def _texts(identity: DeviceIdentity) -> tuple[str, str]:
    return (identity.manufacturer or "").lower(), (identity.product or "").lower()


def name_contains_any(identity: DeviceIdentity, keywords: Iterable[str]) -> bool:
    manufacturer, product = _texts(identity)
    return any(k in product or k in manufacturer for k in keywords)


def _manufacturer_contains_any(identity: DeviceIdentity, keywords: Iterable[str]) -> bool:
    manufacturer, _ = _texts(identity)
    return any(k in manufacturer for k in keywords)


def _accept(rules: RoleRules, identity: DeviceIdentity, confidence: Confidence, rule: str) -> RoleDecision:
    LOGGER.debug(
        "%s: accepted 0x%04x (%s) via %s at %s",
        rules.role.value,
        identity.vendor_id,
        identity.display_name,
        rule,
        confidence.value,
    )
    return RoleDecision(is_match=True, confidence=confidence, rule=rule)


def _reject(rules: RoleRules, identity: DeviceIdentity, rule: str) -> RoleDecision:
    LOGGER.debug(
        "%s: rejected 0x%04x (%s) via %s",
        rules.role.value,
        identity.vendor_id,
        identity.display_name,
        rule,
    )
    return RoleDecision(is_match=False, confidence=None, rule=rule)


def _usage_decision(usage: UsagePair, rules: RoleRules) -> bool | None:
    if usage.usage_page in rules.usage_pages or usage in rules.usage_pairs:
        return True
    if usage.usage_page in rules.conflicting_usage_pages or usage in rules.conflicting_usage_pairs:
        return False
    return None


def _has_class_code(identity: DeviceIdentity, rules: RoleRules) -> bool:
    if not rules.class_codes:
        return False
    if identity.device_class in rules.class_codes:
        return True
    return any(i.interface_class in rules.class_codes for i in identity.interfaces)


def _protocol_decision(identity: DeviceIdentity, rules: RoleRules, allow_listed: bool) -> bool | None:
    for interface in identity.hid_interfaces():
        if allow_listed and rules.trust_allow_listed_hid:
            return True
        subclass = interface.interface_subclass
        protocol = interface.interface_protocol
        if subclass == BOOT_SUBCLASS and protocol in rules.reject_boot_protocols:
            return False
        if subclass == BOOT_SUBCLASS and protocol in rules.accept_boot_protocols:
            return True
        if subclass == 0 and protocol == 0:
            if rules.vendor_defined is VendorDefinedPolicy.ANY:
                return True
            if rules.vendor_defined is VendorDefinedPolicy.ALLOW_LISTED and allow_listed:
                return True
    return None


def classify(identity: DeviceIdentity, usage: UsagePair | None, rules: RoleRules) -> RoleDecision:
    """Decide whether ``identity`` plays the role described by ``rules``.

    Rules are evaluated in a fixed order and the first decisive one wins:
    allow-list fast path, deny-list, name exclusion, adjacent-class exclusion,
    HID usage and class codes, boot/vendor-defined protocol triples, same-role
    name keywords, then the allow-list safety net.
    """
    allow_listed = identity.vendor_id in rules.allow_vendors

    if allow_listed:
        if not name_contains_any(identity, rules.conflict_keywords):
            return _accept(rules, identity, Confidence.HIGH, "allow_list")
        LOGGER.debug(
            "%s: 0x%04x is allow-listed but its name carries a conflict keyword",
            rules.role.value,
            identity.vendor_id,
        )

    if identity.vendor_id in rules.deny_vendors:
        return _reject(rules, identity, "deny_list")

    same_role = name_contains_any(identity, rules.role_keywords)

    if not same_role and (
        name_contains_any(identity, rules.exclusion_keywords)
        or _manufacturer_contains_any(identity, rules.exclusion_brands)
    ):
        return _reject(rules, identity, "name_exclusion")

    if not same_role and name_contains_any(identity, rules.adjacent_keywords):
        return _reject(rules, identity, "adjacent_exclusion")

    if usage is not None:
        decision = _usage_decision(usage, rules)
        if decision is True:
            return _accept(rules, identity, Confidence.HIGH, "usage")
        if decision is False:
            return _reject(rules, identity, "usage")

    if _has_class_code(identity, rules):
        return _accept(rules, identity, Confidence.HIGH, "class_code")

    decision = _protocol_decision(identity, rules, allow_listed)
    if decision is True:
        return _accept(rules, identity, Confidence.MEDIUM, "protocol")
    if decision is False:
        return _reject(rules, identity, "protocol")

    if same_role:
        return _accept(rules, identity, Confidence.LOW, "name_keyword")

    if allow_listed:
        if identity.interfaces:
            return _accept(rules, identity, Confidence.MEDIUM, "safety_net")
        return _reject(rules, identity, "safety_net")

    return _reject(rules, identity, "no_match")


def identify(
    identity: DeviceIdentity,
    usage: UsagePair | None,
    rule_tables: Mapping[Role, RoleRules],
) -> Classification:
    """Run every role table and keep the strongest acceptance.

    Ties keep the table that comes first in ``rule_tables``.
    """
    best: Classification | None = None
    for role, rules in rule_tables.items():
        decision = classify(identity, usage, rules)
        if not decision.is_match or decision.confidence is None:
            continue
        if best is None or decision.confidence.rank > best.confidence.rank:
            best = Classification(role=role, confidence=decision.confidence, rule=decision.rule)

    if best is None:
        return Classification(role=Role.UNKNOWN, confidence=None)
    return best
