"""Loading and validation of the YAML chip table.

Each chip definition maps the exact string returned by the bootloader's
identify command to its feature set, flash geometry, and wire format. The
packaged definitions live in ``sambactl/chips``; users may add or override
entries under ``$XDG_CONFIG_HOME/sambactl/chips`` or
``$XDG_DATA_HOME/sambactl/chips``.
"""

from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import dataclass
from functools import lru_cache
from importlib import resources
from importlib.resources.abc import Traversable
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping

import yaml
from jsonschema import ValidationError, validators

from sambactl.core.errors import ChipTableLoadError, ChipTableValidationError
from sambactl.core.model import ChipSpec, Features, FlashGeometry, WireFormat

_HEX_RE = re.compile(r"^(0x)?[0-9a-f]+$")
LOGGER = logging.getLogger(__name__)


class UniqueKeyLoader(yaml.SafeLoader):
    """YAML loader that rejects duplicate mapping keys."""


def _construct_mapping(loader: UniqueKeyLoader, node: yaml.Node, deep: bool = False) -> dict[str, Any]:
    mapping: dict[str, Any] = {}
    for key_node, value_node in node.value:
        key = loader.construct_object(key_node, deep=deep)
        if key in mapping:
            raise ChipTableValidationError(f"Duplicate key '{key}' in YAML document")
        mapping[key] = loader.construct_object(value_node, deep=deep)
    return mapping


UniqueKeyLoader.add_constructor(
    yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG,
    _construct_mapping,
)


@dataclass(frozen=True)
class ChipTable:
    chips: Mapping[str, ChipSpec]
    warnings: tuple[str, ...] = ()

    def lookup(self, name: str) -> ChipSpec | None:
        return self.chips.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self.chips

    def __len__(self) -> int:
        return len(self.chips)


def _load_schema_validator() -> Any:
    schema_text = resources.files("sambactl.schemas").joinpath("chip.schema.json").read_text(
        encoding="utf-8"
    )
    schema = json.loads(schema_text)
    validator_cls = validators.validator_for(schema)
    validator_cls.check_schema(schema)
    return validator_cls(schema)


def _chip_dirs() -> tuple[Path, Path]:
    xdg_config = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    xdg_data = Path(os.environ.get("XDG_DATA_HOME", Path.home() / ".local/share"))
    return xdg_config / "sambactl/chips", xdg_data / "sambactl/chips"


def _read_yaml(path: Path | Traversable) -> dict[str, Any]:
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ChipTableLoadError(f"Could not read chip file {path}: {exc}") from exc

    try:
        loaded = yaml.load(content, Loader=UniqueKeyLoader)
    except yaml.YAMLError as exc:
        raise ChipTableValidationError(f"Invalid YAML in {path}: {exc}") from exc

    if not isinstance(loaded, dict):
        raise ChipTableValidationError(f"Chip file {path} must contain a mapping at root")
    return loaded


def _normalize_int(value: int | str, *, context: str) -> int:
    if isinstance(value, int):
        return value
    normalized = value.strip().lower()
    if not _HEX_RE.match(normalized):
        raise ChipTableValidationError(f"{context} must be an integer or hex string")
    return int(normalized, 16)


def _build_chip(doc: dict[str, Any], source: Path | Traversable, validator: Any) -> ChipSpec:
    try:
        validator.validate(doc)
    except ValidationError as exc:
        path = ".".join(str(p) for p in exc.path)
        where = f" ({path})" if path else ""
        raise ChipTableValidationError(f"Schema validation failed for {source}{where}: {exc.message}") from exc

    name = doc["name"]
    flash_doc = doc["flash"]
    flash = FlashGeometry(
        addr=_normalize_int(flash_doc["addr"], context=f"{name}.flash.addr"),
        pages=int(flash_doc["pages"]),
        size=int(flash_doc["size"]),
        planes=int(flash_doc.get("planes", 1)),
        lock_regions=int(flash_doc.get("lock_regions", 0)),
        user=_normalize_int(flash_doc.get("user", 0), context=f"{name}.flash.user"),
        stack=_normalize_int(flash_doc.get("stack", 0), context=f"{name}.flash.stack"),
    )
    if flash.size % 4 != 0:
        raise ChipTableValidationError(f"{name}.flash.size must be a multiple of 4 bytes")

    wire_doc = doc.get("wire", {})
    defaults = WireFormat()
    fill_byte = _normalize_int(wire_doc.get("fill_byte", defaults.fill_byte), context=f"{name}.wire.fill_byte")
    if fill_byte > 0xFF:
        raise ChipTableValidationError(f"{name}.wire.fill_byte must fit in one byte")
    wire = WireFormat(
        address_digits=int(wire_doc.get("address_digits", defaults.address_digits)),
        length_digits=int(wire_doc.get("length_digits", defaults.length_digits)),
        checksum_digits=int(wire_doc.get("checksum_digits", defaults.checksum_digits)),
        status_token=str(wire_doc.get("status_token", defaults.status_token)),
        erase_token=str(wire_doc.get("erase_token", defaults.erase_token)),
        fill_byte=fill_byte,
        pad_final_page=bool(wire_doc.get("pad_final_page", defaults.pad_final_page)),
    )
    if flash.addr + flash.total_size > 16**wire.address_digits:
        raise ChipTableValidationError(
            f"{name}: flash region does not fit in {wire.address_digits} address digits"
        )
    if flash.size >= 16**wire.length_digits:
        raise ChipTableValidationError(
            f"{name}: page size {flash.size} does not fit in {wire.length_digits} length digits"
        )

    features = Features(**{feature: True for feature in doc["features"]})
    return ChipSpec(name=name, features=features, flash=flash, wire=wire)


def _iter_packaged_chip_paths() -> list[Traversable]:
    chip_root = resources.files("sambactl.chips")
    return [item for item in chip_root.iterdir() if item.name.endswith((".yml", ".yaml"))]


def _iter_user_chip_paths() -> list[Path]:
    paths: list[Path] = []
    for directory in _chip_dirs():
        if not directory.exists() or not directory.is_dir():
            continue
        paths.extend(sorted(p for p in directory.iterdir() if p.suffix in {".yml", ".yaml"}))
    return paths


def load_chip_table() -> ChipTable:
    validator = _load_schema_validator()
    chips: dict[str, ChipSpec] = {}
    warnings: list[str] = []

    for path in sorted(_iter_packaged_chip_paths(), key=lambda p: p.name):
        chip = _build_chip(_read_yaml(path), path, validator)
        if chip.name in chips:
            raise ChipTableValidationError(f"Chip '{chip.name}' is defined more than once in the packaged table")
        chips[chip.name] = chip

    for path in _iter_user_chip_paths():
        chip = _build_chip(_read_yaml(path), path, validator)
        if chip.name in chips:
            warning = f"User chip definition '{chip.name}' from {path} overrides existing entry"
            LOGGER.warning(warning)
            warnings.append(warning)
        chips[chip.name] = chip

    return ChipTable(chips=MappingProxyType(chips), warnings=tuple(warnings))


@lru_cache(maxsize=1)
def default_chip_table() -> ChipTable:
    """Chip table loaded once per process."""
    return load_chip_table()
