# Copyright 2026 FhirMeta Contributors
# SPDX-License-Identifier: Apache-2.0

"""Runtime model: schema descriptors, instances and choice-type resolution."""

from fhirmeta.model.choice import (
    active_variant,
    clear_variant,
    match_variant_key,
    populated_variants,
    set_variant,
    variant_wire_name,
)
from fhirmeta.model.errors import (
    AmbiguousChoiceError,
    CardinalityError,
    ModelError,
    OwnershipError,
    TypeMismatchError,
    UnknownFieldError,
)
from fhirmeta.model.instance import ModelInstance
from fhirmeta.model.types import Binding, BindingStrength, FieldDescriptor, ResourceType, StructureKind

__all__ = [
    # Schema
    "BindingStrength",
    "Binding",
    "StructureKind",
    "FieldDescriptor",
    "ResourceType",
    # Instances
    "ModelInstance",
    "set_variant",
    "clear_variant",
    "active_variant",
    "populated_variants",
    "match_variant_key",
    "variant_wire_name",
    # Errors
    "ModelError",
    "UnknownFieldError",
    "CardinalityError",
    "TypeMismatchError",
    "OwnershipError",
    "AmbiguousChoiceError",
]
