# Copyright 2026 FhirMeta Contributors
# SPDX-License-Identifier: Apache-2.0

"""The format-neutral encode and decode walk.

Both codecs convert between a :class:`ModelInstance` and a *wire tree*: nested
dicts keyed by wire names whose leaves are primitives and whose repeated
fields are lists. JSON maps onto this tree directly; the XML codec converts
elements to and from it. Everything that depends on field descriptors
(renamed fields, choice variants, cardinality, contained resources, unknown
keys) happens here once.

Decoding is permissive: problems in the data are collected as
:class:`DecodeError` records on the :class:`DecodeResult` and the walk carries
on with whatever could be read.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from fhirmeta.config import EngineConfig, build_registry
from fhirmeta.model import primitives
from fhirmeta.model.errors import TypeMismatchError
from fhirmeta.model.instance import ModelInstance
from fhirmeta.model.types import FieldDescriptor, ResourceType, StructureKind
from fhirmeta.registry.registry import TypeRegistry, UnknownTypeError

logger = logging.getLogger(__name__)

# ###############
# Public Interface
# ###############

RESOURCE_TYPE_KEY = "resourceType"


class DecodeError(Exception):
    """A problem found while decoding, located by a field path.

    Decode functions return these on a :class:`DecodeResult` rather than
    raising them; :meth:`DecodeResult.raise_on_error` raises the first one.

    Attributes:
        path: Where the problem is, e.g. ``Task.input[1].valueInteger``.
        reason: What is wrong there.
    """

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"{path}: {reason}")
        self.path = path
        self.reason = reason


@dataclass
class DecodeResult:
    """The outcome of a decode call.

    Attributes:
        instance: The decoded instance, or None if nothing usable could be
            read (malformed document, wrong root type).
        errors: Every problem found, in document order.
    """

    instance: ModelInstance | None
    errors: list[DecodeError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.instance is not None and not self.errors

    def raise_on_error(self) -> ModelInstance:
        """Return the instance, or raise the first error if there were any."""
        if self.errors:
            raise self.errors[0]
        assert self.instance is not None
        return self.instance


def encode_tree(instance: ModelInstance, resource_type: ResourceType | None = None) -> dict[str, Any]:
    """Return the wire tree for *instance*.

    Raises:
        TypeMismatchError: If *resource_type* is given and is not the instance's type.
    """
    if resource_type is not None and resource_type.name != instance.resource_type.name:
        raise TypeMismatchError(
            f"Cannot encode a '{instance.resource_type.name}' instance as '{resource_type.name}'"
        )
    return instance.to_plain_structure()


def decode_tree(
    tree: Any,
    type_name: str | None = None,
    registry: TypeRegistry | None = None,
    *,
    config: EngineConfig | None = None,
    text_primitives: bool = False,
) -> DecodeResult:
    """Build an instance from a wire tree.

    Args:
        tree: The wire tree, normally a dict.
        type_name: Qualified name of the expected root type. When omitted the
            tree's ``resourceType`` decides.
        registry: Registry to resolve types in; defaults to the one described
            by *config*.
        config: Limits and options; defaults to :class:`EngineConfig`.
        text_primitives: Leaves are text (XML) and are parsed per primitive
            type; a single occurrence of a repeated field is accepted as-is.

    Returns:
        A :class:`DecodeResult`; data problems never raise.

    Raises:
        UnknownTypeError: If *type_name* is not a registered type.
    """
    config = config or EngineConfig()
    if registry is None:
        registry = build_registry(config)
    decoder = _Decoder(registry, config, text_primitives)

    if type_name is not None:
        root_type = registry.resolve(type_name)
    else:
        label = "<document>"
        declared = tree.get(RESOURCE_TYPE_KEY) if isinstance(tree, dict) else None
        if not isinstance(declared, str):
            return DecodeResult(None, [DecodeError(label, "missing 'resourceType'")])
        try:
            root_type = registry.resolve(declared)
        except UnknownTypeError:
            return DecodeResult(None, [DecodeError(label, f"unknown resource type '{declared}'")])

    instance = decoder.structure(tree, root_type, root_type.name, depth=1)
    return DecodeResult(instance, decoder.errors)


__all__ = [
    "RESOURCE_TYPE_KEY",
    "DecodeError",
    "DecodeResult",
    "decode_tree",
    "encode_tree",
]


# ################
# Implementation
# ################


class _Decoder:
    """Holds the registry, limits and collected errors for one decode call."""

    def __init__(self, registry: TypeRegistry, config: EngineConfig, text_primitives: bool) -> None:
        self.registry = registry
        self.config = config
        self.text_primitives = text_primitives
        self.errors: list[DecodeError] = []

    def error(self, path: str, reason: str) -> None:
        self.errors.append(DecodeError(path, reason))

    def structure(self, data: Any, resource_type: ResourceType, path: str, depth: int) -> ModelInstance | None:
        if depth > self.config.max_depth:
            logger.debug("Decode depth limit %d reached at %s", self.config.max_depth, path)
            self.error(path, f"nesting exceeds the maximum depth of {self.config.max_depth}")
            return None
        if not isinstance(data, dict):
            self.error(path, f"expected an object for {resource_type.name}, got {_describe(data)}")
            return None

        if resource_type.kind is StructureKind.RESOURCE:
            declared = data.get(RESOURCE_TYPE_KEY)
            if declared is None:
                self.error(path, "missing 'resourceType'")
            elif declared != resource_type.short_name:
                self.error(path, f"'resourceType' is '{declared}', expected '{resource_type.short_name}'")
                return None

        instance = ModelInstance(resource_type, self.registry)
        for key, raw in data.items():
            if key == RESOURCE_TYPE_KEY and resource_type.kind is StructureKind.RESOURCE:
                continue
            self.member(instance, data, key, raw, path, depth)
        return instance

    def member(
        self, instance: ModelInstance, data: dict[str, Any], key: str, raw: Any, location: str, depth: int
    ) -> None:
        resource_type = instance.resource_type
        path = f"{location}.{key}"
        descriptor = resource_type.field_by_wire_name(key)
        if descriptor is not None and not descriptor.is_choice:
            assert descriptor.value_type is not None
            self.load(instance, data, descriptor, descriptor.value_type, descriptor.name, key, raw, path, depth)
            return

        variant = resource_type.variant_by_wire_name(key)
        if variant is not None:
            slot, type_name = variant
            taken = [t for t in slot.choice_variants if t != type_name and instance._has(slot.variant_key(t))]
            if taken:
                self.error(
                    path,
                    f"'{slot.wire_name}[x]' already has a value as {slot.variant_wire_name(taken[0])}; ignoring {key}",
                )
                return
            self.load(instance, data, slot, type_name, slot.variant_key(type_name), key, raw, path, depth)
            return

        if key.startswith("_") and _names_primitive(resource_type, key[1:]):
            # Read together with its primitive when that is present.
            if key[1:] not in data:
                self.preserve(instance, key, raw, path, depth)
            return

        slot = descriptor if descriptor is not None else resource_type.choice_slot_for_wire_key(key)
        if slot is not None:
            self.error(path, f"cannot resolve a type for choice element '{slot.wire_name}[x]' from '{key}'")
        self.preserve(instance, key, raw, path, depth)

    def load(
        self,
        instance: ModelInstance,
        data: dict[str, Any],
        descriptor: FieldDescriptor,
        type_name: str,
        storage_key: str,
        key: str,
        raw: Any,
        path: str,
        depth: int,
    ) -> None:
        """Decode one declared member into *storage_key*, with its ``_`` companion for primitives."""
        if not primitives.is_primitive(type_name):
            value = self.field_value(descriptor, type_name, raw, path, depth)
            if value is not None:
                instance._load(storage_key, value)
            return
        companion_key = f"_{key}"
        value, companion = self.primitive_field(descriptor, type_name, raw, data.get(companion_key), path, depth)
        if value is not None:
            instance._load(storage_key, value)
        if companion is not None:
            self.preserve(instance, companion_key, companion, path, depth)

    def preserve(self, instance: ModelInstance, key: str, raw: Any, path: str, depth: int) -> None:
        if not self.config.preserve_unknown:
            logger.debug("Dropping unknown element '%s' of %s", key, instance.resource_type.name)
            return
        if depth + _nesting(raw) > self.config.max_depth:
            logger.debug("Decode depth limit %d reached in unknown element at %s", self.config.max_depth, path)
            self.error(path, f"nesting exceeds the maximum depth of {self.config.max_depth}; element dropped")
            return
        instance.unknown[key] = copy.deepcopy(raw)

    def field_value(self, descriptor: FieldDescriptor, type_name: str, raw: Any, path: str, depth: int) -> Any:
        """Decode the value of one field, repeated or single, returning None if nothing is usable."""
        if descriptor.is_repeated:
            items = self.sequence(descriptor, raw, path)
            values = [self.item(type_name, item, f"{path}[{index}]", depth) for index, item in enumerate(items)]
            kept = [value for value in values if value is not None]
            return kept or None
        found, raw = self.single(descriptor, raw, path)
        return self.item(type_name, raw, path, depth) if found else None

    def primitive_field(
        self, descriptor: FieldDescriptor, type_name: str, raw: Any, companion: Any, path: str, depth: int
    ) -> tuple[Any, Any]:
        """Decode a primitive field and its companion, returning both.

        A value may be missing where the companion has an entry: JSON writes
        ``null`` in the value array, XML an element without a ``value``
        attribute. Such a position holds ``None`` in a repeated field.
        """
        if not descriptor.is_repeated:
            found, raw = self.single(descriptor, raw, path)
            if not found:
                return None, companion
            if self.text_primitives and isinstance(raw, dict):
                return None, raw
            if raw is None and companion:
                return None, companion
            return self.item(type_name, raw, path, depth), companion

        listed = companion if isinstance(companion, list) else []
        values: list[Any] = []
        extras: list[Any] = []
        for index, item in enumerate(self.sequence(descriptor, raw, path)):
            extra = listed[index] if index < len(listed) else None
            if self.text_primitives and isinstance(item, dict):
                item, extra = None, item
            if item is None and extra:
                values.append(None)
                extras.append(extra)
                continue
            value = self.item(type_name, item, f"{path}[{index}]", depth)
            if value is not None:
                values.append(value)
                extras.append(extra)
        if companion is not None and not isinstance(companion, list):
            return values or None, companion
        return values or None, extras if any(extra is not None for extra in extras) else None

    def sequence(self, descriptor: FieldDescriptor, raw: Any, path: str) -> list[Any]:
        if isinstance(raw, list):
            items = raw
        else:
            if not self.text_primitives:
                self.error(path, f"expected an array ({descriptor.cardinality}), got {_describe(raw)}")
            items = [raw]
        if len(items) > self.config.max_repeat:
            logger.debug("Repeat limit %d reached at %s", self.config.max_repeat, path)
            self.error(
                path, f"{len(items)} values exceed the maximum of {self.config.max_repeat}; extra values dropped"
            )
            items = items[: self.config.max_repeat]
        return items

    def single(self, descriptor: FieldDescriptor, raw: Any, path: str) -> tuple[bool, Any]:
        if isinstance(raw, list):
            if not raw:
                self.error(path, f"expected a single value ({descriptor.cardinality}), got an empty array")
                return False, None
            if len(raw) > 1 or not self.text_primitives:
                self.error(path, f"expected a single value ({descriptor.cardinality}), got an array of {len(raw)}")
            raw = raw[0]
        return True, raw

    def item(self, type_name: str, raw: Any, path: str, depth: int) -> Any:
        if raw is None:
            self.error(path, "null is not a valid value")
            return None
        if primitives.is_primitive(type_name):
            return self.primitive(type_name, raw, path)

        target = self.registry.resolve(type_name)
        if target.kind is StructureKind.ABSTRACT:
            concrete = self.concrete_resource(target, raw, path)
            if concrete is None:
                return None
            target = concrete
        return self.structure(raw, target, path, depth + 1)

    def primitive(self, type_name: str, raw: Any, path: str) -> Any:
        value = raw
        if self.text_primitives and isinstance(raw, str):
            try:
                value = primitives.parse_text(type_name, raw)
            except ValueError:
                self.error(path, f"'{raw}' is not a valid {type_name}")
                return None
        if not primitives.accepts(type_name, value):
            self.error(path, f"expected {type_name}, got {_describe(raw)}")
            return None
        return value

    def concrete_resource(self, declared: ResourceType, raw: Any, path: str) -> ResourceType | None:
        """Pick the concrete resource type for a field declared as an abstract type."""
        name = raw.get(RESOURCE_TYPE_KEY) if isinstance(raw, dict) else None
        if not isinstance(name, str):
            self.error(path, f"a {declared.name} needs a 'resourceType'")
            return None
        if name not in self.registry or not self.registry.is_assignable(name, declared.name):
            self.error(path, f"unknown resource type '{name}'")
            return None
        return self.registry.resolve(name)


def _names_primitive(resource_type: ResourceType, wire_key: str) -> bool:
    descriptor = resource_type.field_by_wire_name(wire_key)
    if descriptor is not None and descriptor.value_type is not None:
        return primitives.is_primitive(descriptor.value_type)
    variant = resource_type.variant_by_wire_name(wire_key)
    return variant is not None and primitives.is_primitive(variant[1])


def _nesting(raw: Any) -> int:
    """Return how many levels of objects and arrays *raw* holds, walking without recursion."""
    deepest = 0
    pending: list[tuple[Any, int]] = [(raw, 1)]
    while pending:
        value, level = pending.pop()
        if isinstance(value, dict):
            children = list(value.values())
        elif isinstance(value, list):
            children = value
        else:
            continue
        deepest = max(deepest, level)
        pending.extend((child, level + 1) for child in children)
    return deepest


def _describe(raw: Any) -> str:
    if isinstance(raw, dict):
        return "an object"
    if isinstance(raw, list):
        return "an array"
    if isinstance(raw, bool):
        return "a boolean"
    if isinstance(raw, (int, float, Decimal)):
        return "a number"
    if isinstance(raw, str):
        return "a string"
    return type(raw).__name__
