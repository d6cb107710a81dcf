"""Loading and validation of YAML-based per-role classification tables."""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass
from importlib import resources
from importlib.resources.abc import Traversable
from pathlib import Path
from types import MappingProxyType
from typing import Any

import yaml
from jsonschema import ValidationError, validators

from periphctl.core.errors import RoleRulesLoadError, RoleRulesValidationError
from periphctl.core.model import Role, RoleRules, UsagePair, VendorDefinedPolicy

LOGGER = logging.getLogger(__name__)

# Tie-break order when several roles accept a device with equal confidence.
ROLE_ORDER = (Role.SCANNER, Role.KEYBOARD, Role.PRINTER, Role.CARD_READER)


class UniqueKeyLoader(yaml.SafeLoader):
    """YAML loader that rejects duplicate mapping keys."""


UniqueKeyLoader.yaml_implicit_resolvers = {
    key: [(tag, regexp) for tag, regexp in value if tag != "tag:yaml.org,2002:bool"]
    for key, value in yaml.SafeLoader.yaml_implicit_resolvers.items()
}


def _construct_mapping(loader: UniqueKeyLoader, node: yaml.Node, deep: bool = False) -> dict[str, Any]:
    mapping: dict[str, Any] = {}
    for key_node, value_node in node.value:
        key = loader.construct_object(key_node, deep=deep)
        if key in mapping:
            raise RoleRulesValidationError(f"Duplicate key '{key}' in YAML document")
        mapping[key] = loader.construct_object(value_node, deep=deep)
    return mapping


UniqueKeyLoader.add_constructor(
    yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG,
    _construct_mapping,
)


@dataclass(frozen=True)
class LoadedRoleRules:
    rules: Mapping[Role, RoleRules]
    warnings: tuple[str, ...]


def _load_schema_validator() -> Any:
    schema_text = resources.files("periphctl.schemas").joinpath("role.schema.json").read_text(
        encoding="utf-8"
    )
    schema = json.loads(schema_text)
    validator_cls = validators.validator_for(schema)
    validator_cls.check_schema(schema)
    return validator_cls(schema)


def _role_dirs() -> tuple[Path, Path]:
    xdg_config = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    xdg_data = Path(os.environ.get("XDG_DATA_HOME", Path.home() / ".local/share"))
    return xdg_config / "periphctl/roles", xdg_data / "periphctl/roles"


def _read_yaml(path: Path | Traversable) -> dict[str, Any]:
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise RoleRulesLoadError(f"Could not read role table {path}: {exc}") from exc

    try:
        loaded = yaml.load(content, Loader=UniqueKeyLoader)
    except yaml.YAMLError as exc:
        raise RoleRulesValidationError(f"Invalid YAML in {path}: {exc}") from exc

    if not isinstance(loaded, dict):
        raise RoleRulesValidationError(f"Role table {path} must contain a mapping at root")
    return loaded


def _normalize_keywords(values: list[str]) -> tuple[str, ...]:
    return tuple(value.strip().lower() for value in values if value.strip())


def _normalize_bool(value: Any, *, context: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered == "true":
            return True
        if lowered == "false":
            return False
    raise RoleRulesValidationError(f"{context} must be boolean true/false")


def _pairs(values: list[dict[str, int]]) -> frozenset[UsagePair]:
    return frozenset(UsagePair(usage_page=v["page"], usage=v["usage"]) for v in values)


def _build_rules(doc: dict[str, Any], source: Path | Traversable) -> RoleRules:
    validator = _load_schema_validator()
    try:
        validator.validate(doc)
    except ValidationError as exc:
        path = ".".join(str(p) for p in exc.path)
        where = f" ({path})" if path else ""
        raise RoleRulesValidationError(f"Schema validation failed for {source}{where}: {exc.message}") from exc

    vendors = doc["vendors"]
    allow = frozenset(vendors.get("allow", []))
    deny = frozenset(vendors.get("deny", []))
    overlap = allow & deny
    if overlap:
        listed = ", ".join(f"0x{v:04x}" for v in sorted(overlap))
        raise RoleRulesValidationError(
            f"Role '{doc['role']}' in {source} lists vendors on both allow and deny lists: {listed}"
        )

    keywords = doc.get("keywords", {})
    usage = doc.get("usage", {})
    protocol = doc.get("protocol", {})

    return RoleRules(
        role=Role(doc["role"]),
        name=doc["name"],
        allow_vendors=allow,
        deny_vendors=deny,
        conflict_keywords=_normalize_keywords(keywords.get("conflict", [])),
        role_keywords=_normalize_keywords(keywords.get("role", [])),
        exclusion_keywords=_normalize_keywords(keywords.get("exclusion", [])),
        exclusion_brands=_normalize_keywords(keywords.get("brands", [])),
        adjacent_keywords=_normalize_keywords(keywords.get("adjacent", [])),
        usage_pages=frozenset(usage.get("pages", [])),
        usage_pairs=_pairs(usage.get("pairs", [])),
        conflicting_usage_pages=frozenset(usage.get("conflicting_pages", [])),
        conflicting_usage_pairs=_pairs(usage.get("conflicting_pairs", [])),
        class_codes=frozenset(doc.get("class_codes", [])),
        accept_boot_protocols=frozenset(protocol.get("accept_boot", [])),
        reject_boot_protocols=frozenset(protocol.get("reject_boot", [])),
        vendor_defined=VendorDefinedPolicy(protocol.get("vendor_defined", "never")),
        trust_allow_listed_hid=_normalize_bool(
            protocol.get("trust_allow_listed_hid", False),
            context=f"{doc['role']}.protocol.trust_allow_listed_hid",
        ),
    )


def _iter_packaged_role_paths() -> list[Traversable]:
    role_root = resources.files("periphctl.roles")
    return [item for item in role_root.iterdir() if item.name.endswith((".yml", ".yaml"))]


def _iter_user_role_paths() -> list[Path]:
    paths: list[Path] = []
    for directory in _role_dirs():
        if not directory.exists() or not directory.is_dir():
            continue
        paths.extend(sorted(p for p in directory.iterdir() if p.suffix in {".yml", ".yaml"}))
    return paths


def _ordered(rules: dict[Role, RoleRules]) -> MappingProxyType[Role, RoleRules]:
    return MappingProxyType({role: rules[role] for role in ROLE_ORDER if role in rules})


def load_role_rules() -> LoadedRoleRules:
    rules: dict[Role, RoleRules] = {}
    warnings: list[str] = []

    for path in sorted(_iter_packaged_role_paths(), key=lambda p: p.name):
        doc = _read_yaml(path)
        table = _build_rules(doc, path)
        rules[table.role] = table

    for path in _iter_user_role_paths():
        doc = _read_yaml(path)
        table = _build_rules(doc, path)
        if table.role in rules:
            warning = f"User role table '{table.role.value}' overrides packaged table"
            LOGGER.warning(warning)
            warnings.append(warning)
        rules[table.role] = table

    return LoadedRoleRules(rules=_ordered(rules), warnings=tuple(warnings))
