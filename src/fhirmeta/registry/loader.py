# Copyright 2026 FhirMeta Contributors
# SPDX-License-Identifier: Apache-2.0

"""YAML schema definitions and registry construction.

A schema file lists resource types, each with its fields and nested
backbone types::

    types:
      - name: Task
        kind: resource
        fields:
          - name: status
            type: code
            min: 1
            binding: {strength: required, uri: http://hl7.org/fhir/ValueSet/task-status}
            valid-codes:
              http://hl7.org/fhir/task-status: ["draft", "in-progress"]
          - name: input
            type: Task.Input
            max: "*"
        types:
          - name: Input
            fields:
              - name: value
                choice: [string, integer]
                min: 1

Nested types get dotted qualified names (``Task.Input``). Standard element
members (``id``, ``extension``, ``modifierExtension`` and the resource
header fields) are added according to ``kind`` unless a file declares them.
"""

from __future__ import annotations

import keyword
import logging
from collections.abc import Iterable
from functools import lru_cache
from importlib import resources
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from fhirmeta.model.types import Binding, BindingStrength, FieldDescriptor, ResourceType, StructureKind
from fhirmeta.registry.registry import RegistryError, TypeRegistry, UnknownTypeError

logger = logging.getLogger(__name__)

# ###############
# Public Interface
# ###############

SCHEMA_SUFFIXES = (".yaml", ".yml")

# Wire names that cannot serve as logical names; they are exposed as ``local_<name>``.
RESERVED_WORDS: frozenset[str] = frozenset(keyword.kwlist) | frozenset(
    {"alias", "begin", "case", "def", "defined", "do", "end", "ensure", "method", "module",
     "next", "redo", "rescue", "retry", "self", "super", "then", "undef", "unless", "until", "when", "yield"}
)


class SchemaConfigError(Exception):
    """Raised when a schema definition file cannot be read or is invalid."""


def load_schema_text(text: str, source_label: str = "<string>") -> list[ResourceType]:
    """Parse schema YAML into resource types, nested types flattened after their owner.

    Raises:
        SchemaConfigError: If the YAML is malformed or a definition is invalid.
    """
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise SchemaConfigError(f"Invalid YAML in {source_label}: {exc}") from exc

    if data is None:
        return []
    try:
        document = _SchemaDocument.model_validate(data)
    except ValidationError as exc:
        raise SchemaConfigError(f"Invalid schema definition in {source_label}: {exc}") from exc

    result: list[ResourceType] = []
    for spec in document.types:
        _build_types(spec, None, source_label, result)
    logger.debug("Loaded %d types from %s", len(result), source_label)
    return result


def load_schema_file(path: Path) -> list[ResourceType]:
    """Read and parse one schema YAML file."""
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise SchemaConfigError(f"Cannot read schema file '{path}': {exc}") from exc
    return load_schema_text(text, source_label=str(path))


def load_registry(paths: Iterable[Path] = (), *, include_bundled: bool = True) -> TypeRegistry:
    """Build and seal a registry from schema files and directories.

    All types from all sources are declared before any is defined, so files
    may reference each other in any order.

    Args:
        paths: Schema files, or directories whose ``*.yaml`` files are loaded
            in name order.
        include_bundled: Whether to load the definitions shipped with the package.

    Raises:
        SchemaConfigError: If a file is invalid or a type is defined twice.
        UnknownTypeError: If a definition references a type nobody defines.
    """
    types: list[ResourceType] = []
    if include_bundled:
        types.extend(_bundled_types())
    for path in paths:
        for schema_file in _expand(path):
            types.extend(load_schema_file(schema_file))

    registry = TypeRegistry()
    for resource_type in types:
        registry.declare(resource_type.name)
    for resource_type in types:
        try:
            registry.define(resource_type.name, resource_type)
        except RegistryError as exc:
            raise SchemaConfigError(str(exc)) from exc
    registry.seal()
    return registry


@lru_cache(maxsize=1)
def default_registry() -> TypeRegistry:
    """Return the sealed registry of bundled definitions, built once per process."""
    return load_registry()


__all__ = [
    "RESERVED_WORDS",
    "SchemaConfigError",
    "UnknownTypeError",
    "default_registry",
    "load_registry",
    "load_schema_file",
    "load_schema_text",
]


# ################
# Implementation
# ################


class _BindingSpec(BaseModel):
    model_config = ConfigDict(extra="forbid")

    strength: BindingStrength
    uri: str
    version: str | None = None


class _FieldSpec(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    name: str
    local_name: str | None = Field(alias="local-name", default=None)
    path: str | None = None
    min: int = 0
    max: int | str = 1
    type: str | None = None
    choice: list[str] = Field(default_factory=list)
    valid_codes: dict[str, list[str]] = Field(alias="valid-codes", default_factory=dict)
    binding: _BindingSpec | None = None
    type_profiles: list[str] = Field(alias="type-profiles", default_factory=list)
    description: str | None = None


class _TypeSpec(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    name: str
    kind: StructureKind = StructureKind.BACKBONE
    base: str | None = None
    description: str | None = None
    search_params: list[str] = Field(alias="search-params", default_factory=list)
    fields: list[_FieldSpec] = Field(default_factory=list)
    types: list[_TypeSpec] = Field(default_factory=list)


_TypeSpec.model_rebuild()


class _SchemaDocument(BaseModel):
    model_config = ConfigDict(extra="forbid")

    types: list[_TypeSpec] = Field(default_factory=list)


_LANGUAGE_CODES = [
    "ar", "bn", "cs", "da", "de", "de-AT", "de-CH", "de-DE", "el", "en", "en-AU", "en-CA", "en-GB",
    "en-IN", "en-NZ", "en-SG", "en-US", "es", "es-AR", "es-ES", "es-UY", "fi", "fr", "fr-BE", "fr-CH",
    "fr-FR", "fy", "fy-NL", "hi", "hr", "it", "it-CH", "it-IT", "ja", "ko", "nl", "nl-BE", "nl-NL",
    "no", "no-NO", "pa", "pl", "pt", "pt-BR", "ru", "ru-RU", "sr", "sr-RS", "sv", "sv-SE", "te", "zh",
    "zh-CN", "zh-HK", "zh-SG", "zh-TW",
]

_ELEMENT_ID = _FieldSpec(name="id", type="string")
_EXTENSION = _FieldSpec(name="extension", type="Extension", max="*")
_MODIFIER_EXTENSION = _FieldSpec(name="modifierExtension", type="Extension", max="*")
_RESOURCE_HEADER = [
    _FieldSpec(name="id", type="id"),
    _FieldSpec(name="meta", type="Meta"),
    _FieldSpec(name="implicitRules", type="uri"),
    _FieldSpec(
        name="language",
        type="code",
        binding=_BindingSpec(strength=BindingStrength.PREFERRED, uri="http://hl7.org/fhir/ValueSet/languages"),
        valid_codes={"urn:ietf:bcp:47": _LANGUAGE_CODES},
    ),
]
_DOMAIN_RESOURCE_HEADER = [
    _FieldSpec(name="text", type="Narrative"),
    _FieldSpec(name="contained", type="Resource", max="*"),
    _EXTENSION,
    _MODIFIER_EXTENSION,
]


def _standard_fields(kind: StructureKind) -> list[_FieldSpec]:
    if kind is StructureKind.RESOURCE:
        return _RESOURCE_HEADER + _DOMAIN_RESOURCE_HEADER
    if kind is StructureKind.ABSTRACT:
        return list(_RESOURCE_HEADER)
    if kind is StructureKind.BACKBONE:
        return [_ELEMENT_ID, _EXTENSION, _MODIFIER_EXTENSION]
    return [_ELEMENT_ID, _EXTENSION]


def _build_types(spec: _TypeSpec, parent: str | None, source_label: str, out: list[ResourceType]) -> None:
    qualified = spec.name if parent is None else f"{parent}.{spec.name}"
    declared = {f.name for f in spec.fields}
    field_specs = [f for f in _standard_fields(spec.kind) if f.name not in declared] + spec.fields
    try:
        descriptors = tuple(_build_field(f, qualified) for f in field_specs)
        resource_type = ResourceType(
            name=qualified,
            kind=spec.kind,
            fields=descriptors,
            parent=parent,
            base=spec.base,
            description=spec.description,
            search_params=tuple(spec.search_params),
        )
    except (ValidationError, ValueError) as exc:
        raise SchemaConfigError(f"{source_label}: invalid type '{qualified}': {exc}") from exc
    out.append(resource_type)
    for nested in spec.types:
        _build_types(nested, qualified, source_label, out)


def _build_field(spec: _FieldSpec, owner: str) -> FieldDescriptor:
    if spec.max == "*":
        upper: int | None = None
    elif isinstance(spec.max, int):
        upper = spec.max
    else:
        raise ValueError(f"field '{spec.name}': max must be an integer or '*', got {spec.max!r}")

    local_name = spec.local_name
    if local_name is None:
        local_name = f"local_{spec.name}" if spec.name in RESERVED_WORDS else spec.name

    suffix = "[x]" if spec.choice else ""
    binding = None
    if spec.binding is not None:
        binding = Binding(strength=spec.binding.strength, uri=spec.binding.uri, version=spec.binding.version)

    return FieldDescriptor(
        name=local_name,
        wire_name=spec.name,
        path=spec.path or f"{owner}.{spec.name}{suffix}",
        min=spec.min,
        max=upper,
        value_type=spec.type,
        choice_variants=tuple(spec.choice),
        allowed_codes={system: tuple(codes) for system, codes in spec.valid_codes.items()},
        binding=binding,
        type_profiles=tuple(spec.type_profiles),
        description=spec.description,
    )


def _expand(path: Path) -> list[Path]:
    if path.is_dir():
        return sorted(p for p in path.iterdir() if p.suffix in SCHEMA_SUFFIXES)
    return [path]


def _bundled_types() -> list[ResourceType]:
    types: list[ResourceType] = []
    definitions = resources.files("fhirmeta.registry") / "definitions"
    for entry in sorted(definitions.iterdir(), key=lambda e: e.name):
        if entry.name.endswith(SCHEMA_SUFFIXES):
            types.extend(load_schema_text(entry.read_text(encoding="utf-8"), source_label=f"<bundled {entry.name}>"))
    return types
