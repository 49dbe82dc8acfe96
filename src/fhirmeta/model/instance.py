# Copyright 2026 FhirMeta Contributors
# SPDX-License-Identifier: Apache-2.0

"""Runtime model instances backed by field descriptors.

A :class:`ModelInstance` holds the values of one resource or sub-structure.
Values are primitives, nested instances, or lists of either. Every mutation
goes through :meth:`ModelInstance.set`, which checks cardinality, value type
and ownership before touching any state, so a failed call leaves the instance
unchanged.

Nested instances form a tree: each one is owned by exactly one containing
instance. References to other top-level resources are plain ``Reference``
structures holding identifier strings, never embedded instances.
"""

from __future__ import annotations

from collections.abc import Iterator
from typing import TYPE_CHECKING, Any

from fhirmeta.model import choice, primitives
from fhirmeta.model.errors import (
    CardinalityError,
    OwnershipError,
    TypeMismatchError,
    UnknownFieldError,
)
from fhirmeta.model.types import FieldDescriptor, ResourceType, StructureKind

if TYPE_CHECKING:
    from fhirmeta.registry.registry import TypeRegistry

# ###############
# Public Interface
# ###############


class ModelInstance:
    """A mutable container of field values for one :class:`ResourceType`.

    Fields are reachable by logical name through :meth:`get` and :meth:`set`
    or as attributes (``task.status``, ``plan.local_alias``). Choice variants
    are addressed by their variant key (``valueString``); reading the slot name
    itself (``value``) returns whichever variant is populated.

    Repeated fields are returned as fresh lists. Assign a new list to change
    them. A repeated primitive whose ``_`` companion is held in
    :attr:`unknown` may hold ``None`` at positions that carry only the
    companion's id or extensions.

    Instances are not thread-safe; share one across threads only under
    external synchronization.
    """

    def __init__(self, resource_type: ResourceType, registry: TypeRegistry, **values: Any) -> None:
        object.__setattr__(self, "_type", resource_type)
        object.__setattr__(self, "_registry", registry)
        object.__setattr__(self, "_values", {})
        object.__setattr__(self, "_unknown", {})
        object.__setattr__(self, "_parent", None)
        for name, value in values.items():
            self.set(name, value)

    # -------- introspection --------

    @property
    def resource_type(self) -> ResourceType:
        return self._type

    @property
    def registry(self) -> TypeRegistry:
        return self._registry

    @property
    def parent(self) -> ModelInstance | None:
        """The instance that owns this one, or None for a root."""
        return self._parent

    @property
    def unknown(self) -> dict[str, Any]:
        """Wire keys that matched no descriptor on decode, kept for re-encoding.

        The mapping is live: callers may delete entries to drop unknown data.
        """
        return self._unknown

    def items(self) -> Iterator[tuple[str, Any]]:
        """Yield ``(key, value)`` for every populated field in declaration order.

        Choice slots yield their variant key (``valueInteger``).
        """
        for descriptor in self._type.fields:
            for key in _storage_keys(descriptor):
                if key in self._values:
                    yield key, self._copy_out(self._values[key])

    def is_empty(self) -> bool:
        return not self._values and not self._unknown

    # -------- access --------

    def get(self, name: str) -> Any:
        """Return the value of a field, choice slot or choice variant.

        Returns ``None`` for an unpopulated field. Repeated fields return a new
        list.

        Raises:
            UnknownFieldError: If *name* is not a field of this type.
        """
        descriptor = self._type.field(name)
        if descriptor is not None:
            if descriptor.is_choice:
                for key in _storage_keys(descriptor):
                    if key in self._values:
                        return self._values[key]
                return None
            return self._copy_out(self._values.get(name))
        if self._type.variant(name) is not None:
            return self._values.get(name)
        raise UnknownFieldError(f"'{self._type.name}' has no field '{name}'")

    def set(self, name: str, value: Any) -> None:
        """Assign *value* to a field or choice variant; ``None`` clears it.

        Assigning a choice variant clears every other variant of its slot.
        Assigning a nested :class:`ModelInstance` to the slot name picks the
        variant from the instance's type.

        Raises:
            UnknownFieldError: If *name* is not a field of this type.
            CardinalityError: If a scalar is given for a repeated field, a
                sequence for a single-valued one, or too many values.
            TypeMismatchError: If a value is not assignable to the declared type.
            OwnershipError: If a nested instance already belongs elsewhere or
                is an ancestor of this instance.
        """
        descriptor = self._type.field(name)
        if descriptor is None:
            variant = self._type.variant(name)
            if variant is None:
                raise UnknownFieldError(f"'{self._type.name}' has no field '{name}'")
            slot, type_name = variant
            choice.set_variant(self, slot.name, type_name, value)
            return
        if descriptor.is_choice:
            if value is None:
                choice.clear_variant(self, descriptor.name)
                return
            choice.set_variant(self, descriptor.name, self._infer_variant(descriptor, value), value)
            return
        assert descriptor.value_type is not None
        prepared = self._prepare(descriptor, descriptor.value_type, name, value)
        self._store(name, prepared)

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)
        try:
            return self.get(name)
        except UnknownFieldError as exc:
            raise AttributeError(str(exc)) from None

    def __setattr__(self, name: str, value: Any) -> None:
        if name.startswith("_"):
            object.__setattr__(self, name, value)
            return
        if self._type.field(name) is None and self._type.variant(name) is None:
            if hasattr(type(self), name):
                object.__setattr__(self, name, value)
                return
            raise AttributeError(f"'{self._type.name}' has no field '{name}'")
        self.set(name, value)

    # -------- conversion --------

    def wire_items(self) -> Iterator[tuple[str, Any]]:
        """Yield ``(wire_key, value)`` in wire order.

        Declared fields come first in declaration order, renamed fields under
        their wire name and choice slots under the active variant's wire name
        (``valueString``). Preserved unknown keys follow. Nested values are
        yielded as instances, not converted.
        """
        for descriptor in self._type.fields:
            if descriptor.is_choice:
                for type_name in descriptor.choice_variants:
                    key = descriptor.variant_key(type_name)
                    if key in self._values:
                        yield descriptor.variant_wire_name(type_name), self._copy_out(self._values[key])
            elif descriptor.name in self._values:
                yield descriptor.wire_name, self._copy_out(self._values[descriptor.name])
        yield from self._unknown.items()

    def to_plain_structure(self) -> dict[str, Any]:
        """Return the instance as an ordered tree of wire names and plain values.

        This is the representation the JSON codec writes directly: the order
        of :meth:`wire_items`, nested instances converted recursively, and
        resources leading with ``resourceType``.
        """
        tree: dict[str, Any] = {}
        if self._type.kind is StructureKind.RESOURCE:
            tree["resourceType"] = self._type.short_name
        for key, value in self.wire_items():
            tree.setdefault(key, _plain(value))
        return tree

    # -------- comparison --------

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ModelInstance):
            return NotImplemented
        return (
            self._type.name == other._type.name
            and self._values == other._values
            and self._unknown == other._unknown
        )

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        inner = ", ".join(f"{key}={value!r}" for key, value in self.items())
        return f"{self._type.name}({inner})"

    # ################
    # Implementation
    # ################

    def _infer_variant(self, descriptor: FieldDescriptor, value: Any) -> str:
        """Pick the choice variant for a value assigned to the bare slot name."""
        if isinstance(value, ModelInstance):
            if value.resource_type.name in descriptor.choice_variants:
                return value.resource_type.name
            for type_name in descriptor.choice_variants:
                if self._registry.is_assignable(value.resource_type.name, type_name):
                    return type_name
        raise TypeMismatchError(
            f"'{self._type.name}.{descriptor.name}' is a choice slot; assign one of "
            f"{', '.join(descriptor.variant_key(t) for t in descriptor.choice_variants)}"
        )

    def _prepare(self, descriptor: FieldDescriptor, type_name: str, key: str, value: Any) -> Any:
        """Check a candidate value without mutating anything and return what to store."""
        label = f"{self._type.name}.{key}"
        if value is None:
            return None
        if descriptor.is_repeated:
            if not isinstance(value, (list, tuple)):
                raise CardinalityError(f"'{label}' is repeated ({descriptor.cardinality}); assign a list")
            items = list(value)
            if descriptor.max is not None and len(items) > descriptor.max:
                raise CardinalityError(f"'{label}' allows at most {descriptor.max} values, got {len(items)}")
            placeholders = primitives.is_primitive(type_name) and f"_{descriptor.wire_name}" in self._unknown
            for item in items:
                if item is None and placeholders:
                    continue
                self._check_item(label, type_name, key, item)
            nested = [item for item in items if isinstance(item, ModelInstance)]
            if len({id(item) for item in nested}) != len(nested):
                raise OwnershipError(f"'{label}': the same instance appears more than once")
            return items or None
        if isinstance(value, (list, tuple)):
            raise CardinalityError(f"'{label}' holds a single value ({descriptor.cardinality}); got a sequence")
        self._check_item(label, type_name, key, value)
        return value

    def _check_item(self, label: str, type_name: str, key: str, item: Any) -> None:
        if primitives.is_primitive(type_name):
            if not primitives.accepts(type_name, item):
                raise TypeMismatchError(f"'{label}' expects {type_name}, got {type(item).__name__}")
            return
        if not isinstance(item, ModelInstance):
            raise TypeMismatchError(f"'{label}' expects {type_name}, got {type(item).__name__}")
        if not self._registry.is_assignable(item.resource_type.name, type_name):
            raise TypeMismatchError(f"'{label}' expects {type_name}, got {item.resource_type.name}")
        if item._parent is not None and not (item._parent is self and _holds(self._values.get(key), item)):
            raise OwnershipError(f"'{label}': instance is already owned by another structure")
        node: ModelInstance | None = self
        while node is not None:
            if node is item:
                raise OwnershipError(f"'{label}': assignment would make an instance contain itself")
            node = node._parent

    def _store(self, key: str, prepared: Any) -> None:
        """Replace the value under *key*, moving ownership of nested instances."""
        self._release(self._values.get(key))
        if prepared is None:
            self._values.pop(key, None)
            return
        self._adopt(prepared)
        self._values[key] = prepared

    def _discard(self, key: str) -> None:
        if key in self._values:
            self._release(self._values.pop(key))

    def _load(self, key: str, value: Any) -> None:
        """Store a decoded value as-is; decode has already shaped and typed it."""
        self._adopt(value)
        self._values[key] = value

    def _has(self, key: str) -> bool:
        return key in self._values

    def _adopt(self, value: Any) -> None:
        for item in value if isinstance(value, list) else [value]:
            if isinstance(item, ModelInstance):
                object.__setattr__(item, "_parent", self)

    def _release(self, value: Any) -> None:
        for item in value if isinstance(value, list) else [value]:
            if isinstance(item, ModelInstance) and item._parent is self:
                object.__setattr__(item, "_parent", None)

    @staticmethod
    def _copy_out(value: Any) -> Any:
        return list(value) if isinstance(value, list) else value


def _storage_keys(descriptor: FieldDescriptor) -> list[str]:
    if descriptor.is_choice:
        return [descriptor.variant_key(t) for t in descriptor.choice_variants]
    return [descriptor.name]


def _holds(current: Any, item: ModelInstance) -> bool:
    if isinstance(current, list):
        return any(existing is item for existing in current)
    return current is item


def _plain(value: Any) -> Any:
    if isinstance(value, list):
        return [_plain(item) for item in value]
    if isinstance(value, ModelInstance):
        return value.to_plain_structure()
    return primitives.to_json_value(value)
