# Copyright 2026 FhirMeta Contributors
# SPDX-License-Identifier: Apache-2.0

"""Schema representations: field descriptors and resource types."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, PrivateAttr, model_validator
from pydantic import Field as _Field

# ###############
# Public Interface
# ###############


class BindingStrength(Enum):
    """How strongly a coded field is tied to its value set."""

    REQUIRED = "required"
    EXTENSIBLE = "extensible"
    PREFERRED = "preferred"
    EXAMPLE = "example"


class StructureKind(Enum):
    """The role a resource type plays in the schema."""

    RESOURCE = "resource"
    DATATYPE = "datatype"
    BACKBONE = "backbone"
    ABSTRACT = "abstract"


class Binding(BaseModel):
    """A reference to an external value set, optionally versioned."""

    model_config = ConfigDict(frozen=True)

    strength: BindingStrength
    uri: str
    version: str | None = None


class FieldDescriptor(BaseModel):
    """Describes one field of a resource or sub-structure.

    ``name`` is the logical name used by Python code, ``wire_name`` the name
    used in JSON and XML. A field is a choice slot when ``choice_variants`` is
    non-empty; ``value_type`` is then ``None`` and the wire format expands the
    slot into one key per variant (``valueString``, ``valueInteger``, ...).
    ``max`` is ``None`` for unbounded cardinality.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    wire_name: str = ""
    path: str = ""
    min: int = 0
    max: int | None = 1
    value_type: str | None = None
    choice_variants: tuple[str, ...] = ()
    allowed_codes: dict[str, tuple[str, ...]] = _Field(default_factory=dict)
    binding: Binding | None = None
    type_profiles: tuple[str, ...] = ()
    description: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _default_wire_name(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("wire_name"):
            data = {**data, "wire_name": data.get("name", "")}
        return data

    @model_validator(mode="after")
    def _check_shape(self) -> FieldDescriptor:
        if self.min < 0:
            raise ValueError(f"Field '{self.name}': min must not be negative")
        if self.max is not None and (self.max < 1 or self.max < self.min):
            raise ValueError(f"Field '{self.name}': invalid cardinality {self.min}..{self.max}")
        if self.choice_variants and self.value_type is not None:
            raise ValueError(f"Field '{self.name}': a choice slot cannot also declare a value type")
        if not self.choice_variants and self.value_type is None:
            raise ValueError(f"Field '{self.name}': either a value type or choice variants are required")
        if len(set(self.choice_variants)) != len(self.choice_variants):
            raise ValueError(f"Field '{self.name}': duplicate choice variants")
        return self

    @property
    def is_choice(self) -> bool:
        """Return True if this field is a polymorphic ``[x]`` slot."""
        return bool(self.choice_variants)

    @property
    def is_repeated(self) -> bool:
        """Return True if the field holds a sequence rather than a scalar."""
        return self.max is None or self.max > 1

    @property
    def is_required(self) -> bool:
        return self.min >= 1

    @property
    def cardinality(self) -> str:
        """Return the cardinality in FHIR notation, e.g. ``0..*``."""
        upper = "*" if self.max is None else str(self.max)
        return f"{self.min}..{upper}"

    def variant_wire_name(self, type_name: str) -> str:
        """Return the wire key of one choice variant (``value`` + ``String``)."""
        return self.wire_name + type_name[0].upper() + type_name[1:]

    def variant_key(self, type_name: str) -> str:
        """Return the logical key under which a choice variant is stored."""
        return self.name + type_name[0].upper() + type_name[1:]


class ResourceType(BaseModel):
    """A named schema: an ordered set of field descriptors.

    Nested types are owned by their enclosing type and are registered under a
    dotted qualified name (``Measure.Group.Population``); ``parent`` holds the
    qualified name of the owner. ``base`` names the type this one profiles
    (``Age`` is based on ``Quantity``).
    """

    model_config = ConfigDict(frozen=True)

    name: str
    kind: StructureKind = StructureKind.BACKBONE
    fields: tuple[FieldDescriptor, ...] = ()
    parent: str | None = None
    base: str | None = None
    description: str | None = None
    search_params: tuple[str, ...] = ()

    _by_name: dict[str, FieldDescriptor] = PrivateAttr(default_factory=dict)
    _by_wire: dict[str, FieldDescriptor] = PrivateAttr(default_factory=dict)
    _by_variant: dict[str, tuple[FieldDescriptor, str]] = PrivateAttr(default_factory=dict)
    _by_variant_wire: dict[str, tuple[FieldDescriptor, str]] = PrivateAttr(default_factory=dict)

    @model_validator(mode="after")
    def _check_unique_names(self) -> ResourceType:
        seen_logical: set[str] = set()
        seen_wire: set[str] = set()
        for f in self.fields:
            logical = [f.name] + [f.variant_key(t) for t in f.choice_variants]
            wire = [f.wire_name] + [f.variant_wire_name(t) for t in f.choice_variants]
            for name in logical:
                if name in seen_logical:
                    raise ValueError(f"Type '{self.name}': duplicate field name '{name}'")
                seen_logical.add(name)
            for name in wire:
                if name in seen_wire:
                    raise ValueError(f"Type '{self.name}': duplicate wire name '{name}'")
                seen_wire.add(name)
        return self

    def model_post_init(self, __context: Any) -> None:
        for f in self.fields:
            self._by_name[f.name] = f
            self._by_wire[f.wire_name] = f
            for type_name in f.choice_variants:
                self._by_variant[f.variant_key(type_name)] = (f, type_name)
                self._by_variant_wire[f.variant_wire_name(type_name)] = (f, type_name)

    @property
    def short_name(self) -> str:
        """Return the last segment of the qualified name."""
        return self.name.rsplit(".", 1)[-1]

    def field(self, name: str) -> FieldDescriptor | None:
        """Return the descriptor with the given logical name, if any."""
        return self._by_name.get(name)

    def field_by_wire_name(self, wire_name: str) -> FieldDescriptor | None:
        return self._by_wire.get(wire_name)

    def variant(self, key: str) -> tuple[FieldDescriptor, str] | None:
        """Resolve a logical choice key such as ``valueString`` to its slot and type."""
        return self._by_variant.get(key)

    def variant_by_wire_name(self, wire_key: str) -> tuple[FieldDescriptor, str] | None:
        return self._by_variant_wire.get(wire_key)

    def choice_slot_for_wire_key(self, wire_key: str) -> FieldDescriptor | None:
        """Return the choice slot a wire key appears to address, even if the variant is unknown.

        ``valueFoo`` addresses the ``value`` slot whenever ``Foo`` starts with an
        uppercase letter, which is how unresolvable variant keys are detected.
        """
        for f in self.fields:
            if not f.is_choice:
                continue
            prefix = f.wire_name
            if wire_key.startswith(prefix) and len(wire_key) > len(prefix) and wire_key[len(prefix)].isupper():
                return f
        return None
