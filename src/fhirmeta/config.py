# Copyright 2026 FhirMeta Contributors
# SPDX-License-Identifier: Apache-2.0

"""Data model and YAML parser for the engine configuration file."""

from __future__ import annotations

from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path

import yaml

from fhirmeta.registry.loader import default_registry, load_registry
from fhirmeta.registry.registry import TypeRegistry

# ###############
# Public Interface
# ###############

DEFAULT_MAX_DEPTH = 64
DEFAULT_MAX_REPEAT = 10_000


class EngineConfigError(Exception):
    """Raised when an engine configuration file is invalid or cannot be loaded."""


@dataclass
class EngineConfig:
    """Limits and options applied by the codecs.

    Attributes:
        max_depth: Deepest nesting of structures accepted on decode.
        max_repeat: Most items accepted for a single repeated field on decode,
            including fields whose declared maximum is unbounded.
        preserve_unknown: Keep unmatched wire keys on decoded instances.
        schema_paths: Extra schema files or directories loaded on top of the
            bundled definitions. Relative paths are resolved against the
            directory of the configuration file.
    """

    max_depth: int = DEFAULT_MAX_DEPTH
    max_repeat: int = DEFAULT_MAX_REPEAT
    preserve_unknown: bool = True
    schema_paths: list[Path] = field(default_factory=list)


def load_engine_config(path: Path) -> EngineConfig:
    """Load and parse an engine configuration file.

    Args:
        path: Path to the YAML configuration file.

    Returns:
        An EngineConfig populated from the file; absent keys keep their defaults.

    Raises:
        EngineConfigError: If the file cannot be read or the configuration is invalid.
    """
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise EngineConfigError(f"Engine config file not found: {path}") from None
    except OSError as exc:
        raise EngineConfigError(f"Cannot read engine config file: {exc}") from exc

    return _parse_engine_config(text, source_label=str(path), base_dir=path.parent)


def build_registry(config: EngineConfig) -> TypeRegistry:
    """Return the registry described by *config*.

    Without extra schema paths this is the shared bundled registry. Otherwise
    the registry is built once per distinct set of resolved schema paths and
    reused by later calls; schema files changed after that are not reread.
    """
    if not config.schema_paths:
        return default_registry()
    return _registry_for(tuple(path.resolve() for path in config.schema_paths))


# ################
# Implementation
# ################

_KNOWN_KEYS = frozenset({"max-depth", "max-repeat", "preserve-unknown", "schema-paths"})


@lru_cache(maxsize=None)
def _registry_for(schema_paths: tuple[Path, ...]) -> TypeRegistry:
    return load_registry(schema_paths)


def _parse_engine_config(text: str, source_label: str = "<string>", base_dir: Path | None = None) -> EngineConfig:
    """Parse engine config YAML text into an EngineConfig.

    Args:
        text: Raw YAML content.
        source_label: Human-readable label used in error messages (e.g. the file path).
        base_dir: Directory that relative schema paths are resolved against.

    Raises:
        EngineConfigError: If the YAML is invalid or a value has the wrong type.
    """
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise EngineConfigError(f"Invalid YAML in {source_label}: {exc}") from exc

    if data is None:
        return EngineConfig()
    if not isinstance(data, dict):
        raise EngineConfigError(f"{source_label}: engine config must be a YAML mapping")

    unknown = sorted(str(key) for key in data if key not in _KNOWN_KEYS)
    if unknown:
        raise EngineConfigError(f"{source_label}: unknown field(s) {', '.join(repr(k) for k in unknown)}")

    config = EngineConfig()
    if "max-depth" in data:
        config.max_depth = _require_positive_int(data, "max-depth", source_label)
    if "max-repeat" in data:
        config.max_repeat = _require_positive_int(data, "max-repeat", source_label)
    if "preserve-unknown" in data:
        value = data["preserve-unknown"]
        if not isinstance(value, bool):
            raise EngineConfigError(f"{source_label}: 'preserve-unknown' must be a boolean")
        config.preserve_unknown = value
    if "schema-paths" in data:
        raw_paths = data["schema-paths"]
        if not isinstance(raw_paths, list):
            raise EngineConfigError(f"{source_label}: 'schema-paths' must be a list")
        for index, entry in enumerate(raw_paths):
            if not isinstance(entry, str):
                raise EngineConfigError(f"{source_label}: schema-paths[{index}] must be a string")
            schema_path = Path(entry)
            if base_dir is not None and not schema_path.is_absolute():
                schema_path = base_dir / schema_path
            config.schema_paths.append(schema_path)
    return config


def _require_positive_int(mapping: dict[str, object], key: str, source_label: str) -> int:
    """Extract a positive integer field from a mapping, raising EngineConfigError otherwise."""
    value = mapping[key]
    if isinstance(value, bool) or not isinstance(value, int):
        raise EngineConfigError(f"{source_label}: '{key}' must be an integer")
    if value < 1:
        raise EngineConfigError(f"{source_label}: '{key}' must be at least 1")
    return value
