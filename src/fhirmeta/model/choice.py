# Copyright 2026 FhirMeta Contributors
# SPDX-License-Identifier: Apache-2.0

"""Choice-type resolution for polymorphic ``[x]`` fields.

A choice slot such as ``Task.Input.value[x]`` is one logical field that the
wire format spreads over one key per allowed type (``valueString``,
``valueInteger``, ...). At most one of those variants may be populated; the
functions here keep that true after every mutation by clearing the other
variants in the same step that assigns the new one.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from fhirmeta.model.errors import AmbiguousChoiceError, TypeMismatchError, UnknownFieldError
from fhirmeta.model.types import FieldDescriptor, ResourceType

if TYPE_CHECKING:
    from fhirmeta.model.instance import ModelInstance

# ###############
# Public Interface
# ###############


def set_variant(instance: ModelInstance, slot: str, type_name: str, value: Any) -> None:
    """Populate one variant of a choice slot, clearing any other variant.

    Passing ``None`` as *value* clears the whole slot. The new value is checked
    before anything is cleared, so a rejected value leaves the previous variant
    in place.

    Raises:
        UnknownFieldError: If *slot* is not a choice slot of the instance's type.
        TypeMismatchError: If *type_name* is not an allowed variant, *value*
            is not assignable to it, or *value* is a structure whose own type
            is another variant of the slot (an ``Age`` must go to ``valueAge``,
            not ``valueQuantity``).
    """
    descriptor = _slot(instance.resource_type, slot)
    if type_name not in descriptor.choice_variants:
        raise TypeMismatchError(
            f"'{instance.resource_type.name}.{slot}[x]' does not allow type '{type_name}'"
        )
    if value is None:
        clear_variant(instance, slot)
        return
    own_type = getattr(value, "resource_type", None)
    own_name = own_type.name if isinstance(own_type, ResourceType) else type_name
    if own_name != type_name and own_name in descriptor.choice_variants:
        raise TypeMismatchError(
            f"'{instance.resource_type.name}.{slot}[x]' holds a {own_name} as "
            f"{descriptor.variant_key(own_name)}, not {descriptor.variant_key(type_name)}"
        )
    key = descriptor.variant_key(type_name)
    prepared = instance._prepare(descriptor, type_name, key, value)
    for other in descriptor.choice_variants:
        if other != type_name:
            instance._discard(descriptor.variant_key(other))
    instance._store(key, prepared)


def clear_variant(instance: ModelInstance, slot: str) -> None:
    """Remove whichever variant of *slot* is populated."""
    descriptor = _slot(instance.resource_type, slot)
    for type_name in descriptor.choice_variants:
        instance._discard(descriptor.variant_key(type_name))


def active_variant(instance: ModelInstance, slot: str) -> tuple[str, Any] | None:
    """Return ``(type_name, value)`` for the populated variant of *slot*, or None.

    Raises:
        AmbiguousChoiceError: If more than one variant is populated.
    """
    populated = populated_variants(instance, slot)
    if len(populated) > 1:
        names = ", ".join(type_name for type_name, _ in populated)
        raise AmbiguousChoiceError(f"'{instance.resource_type.name}.{slot}[x]' has several variants set: {names}")
    return populated[0] if populated else None


def populated_variants(instance: ModelInstance, slot: str) -> list[tuple[str, Any]]:
    """Return every populated ``(type_name, value)`` pair of *slot*.

    Used as a self-check of the exclusivity invariant; through the resolver the
    result never holds more than one entry.
    """
    descriptor = _slot(instance.resource_type, slot)
    return [
        (type_name, instance.get(descriptor.variant_key(type_name)))
        for type_name in descriptor.choice_variants
        if instance._has(descriptor.variant_key(type_name))
    ]


def variant_wire_name(descriptor: FieldDescriptor, type_name: str) -> str:
    """Return the wire key for one variant, e.g. ``valueCodeableConcept``."""
    return descriptor.variant_wire_name(type_name)


def match_variant_key(resource_type: ResourceType, wire_key: str) -> tuple[FieldDescriptor, str] | None:
    """Resolve a wire key such as ``valueQuantity`` to its slot and variant type."""
    return resource_type.variant_by_wire_name(wire_key)


# ################
# Implementation
# ################


def _slot(resource_type: ResourceType, slot: str) -> FieldDescriptor:
    descriptor = resource_type.field(slot)
    if descriptor is None or not descriptor.is_choice:
        raise UnknownFieldError(f"'{resource_type.name}' has no choice slot '{slot}'")
    return descriptor
