# Copyright 2026 FhirMeta Contributors
# SPDX-License-Identifier: Apache-2.0

"""Process-wide registry of resource types.

Types are registered in two phases so that definitions may reference types
that are defined later, including their own enclosing type
(``ExampleScenario.Process.Step`` holds ``ExampleScenario.Process``):

1. :meth:`TypeRegistry.declare` every name.
2. :meth:`TypeRegistry.define` each name with its :class:`ResourceType`.

:meth:`TypeRegistry.seal` then checks that every referenced type exists and
freezes the registry. A sealed registry is read-only and may be shared by any
number of concurrent encode, decode and validate calls without locking.
"""

from __future__ import annotations

import logging
from typing import Any

from fhirmeta.model import primitives
from fhirmeta.model.instance import ModelInstance
from fhirmeta.model.types import ResourceType, StructureKind

logger = logging.getLogger(__name__)

# ###############
# Public Interface
# ###############

RESOURCE_BASE = "Resource"


class UnknownTypeError(LookupError):
    """Raised when a type name is referenced but was never registered."""


class RegistryError(Exception):
    """Raised when the registry is used out of order (sealed, undeclared, duplicate)."""


class TypeRegistry:
    """Maps qualified type names to :class:`ResourceType` definitions."""

    def __init__(self) -> None:
        self._declared: set[str] = set()
        self._types: dict[str, ResourceType] = {}
        self._sealed = False

    @property
    def sealed(self) -> bool:
        return self._sealed

    def declare(self, type_name: str) -> None:
        """Announce a type name that will be defined later."""
        self._check_open()
        if primitives.is_primitive(type_name):
            raise RegistryError(f"'{type_name}' is a primitive type and cannot be declared")
        self._declared.add(type_name)

    def define(self, type_name: str, resource_type: ResourceType) -> None:
        """Attach the definition of a previously declared type.

        Raises:
            RegistryError: If the name was not declared, is already defined,
                or does not match ``resource_type.name``.
        """
        self._check_open()
        if type_name not in self._declared:
            raise RegistryError(f"Type '{type_name}' must be declared before it is defined")
        if type_name in self._types:
            raise RegistryError(f"Type '{type_name}' is already defined")
        if resource_type.name != type_name:
            raise RegistryError(f"Type '{type_name}' defined with mismatched name '{resource_type.name}'")
        self._types[type_name] = resource_type
        logger.debug("Defined type %s with %d fields", type_name, len(resource_type.fields))

    def register(self, type_name: str, resource_type: ResourceType) -> None:
        """Declare and define a type in one step."""
        self.declare(type_name)
        self.define(type_name, resource_type)

    def seal(self) -> None:
        """Verify every reference and make the registry read-only.

        Raises:
            UnknownTypeError: If any field, choice variant, base or parent
                names a type that is neither primitive nor defined.
        """
        undefined = sorted(self._declared - set(self._types))
        if undefined:
            raise UnknownTypeError(f"Declared but never defined: {', '.join(undefined)}")
        problems: list[str] = []
        for resource_type in self._types.values():
            for referenced in _referenced_types(resource_type):
                if not self.is_known(referenced):
                    problems.append(f"'{resource_type.name}' references unknown type '{referenced}'")
        if problems:
            raise UnknownTypeError("; ".join(problems))
        self._sealed = True
        logger.debug("Registry sealed with %d types", len(self._types))

    def resolve(self, type_name: str) -> ResourceType:
        """Return the definition registered under *type_name*.

        Raises:
            UnknownTypeError: If no such type is defined.
        """
        try:
            return self._types[type_name]
        except KeyError:
            raise UnknownTypeError(f"Unknown type '{type_name}'") from None

    def is_known(self, type_name: str) -> bool:
        """Return True for primitive names and defined types."""
        return primitives.is_primitive(type_name) or type_name in self._types

    def is_assignable(self, actual: str, declared: str) -> bool:
        """Return True if a structure of type *actual* may fill a field of type *declared*.

        A type is assignable to itself, to any type on its ``base`` chain, and
        every concrete resource is assignable to ``Resource``.
        """
        if actual == declared:
            return True
        current = self._types.get(actual)
        if current is None:
            return False
        if declared == RESOURCE_BASE and current.kind is StructureKind.RESOURCE:
            return True
        seen: set[str] = {actual}
        while current.base is not None and current.base not in seen:
            if current.base == declared:
                return True
            seen.add(current.base)
            next_type = self._types.get(current.base)
            if next_type is None:
                return False
            current = next_type
        return False

    def create(self, type_name: str, **values: Any) -> ModelInstance:
        """Create an empty instance of *type_name*, optionally populated with *values*."""
        return ModelInstance(self.resolve(type_name), self, **values)

    def type_names(self) -> list[str]:
        return sorted(self._types)

    def resource_names(self) -> list[str]:
        """Return the names of concrete top-level resources."""
        return sorted(name for name, t in self._types.items() if t.kind is StructureKind.RESOURCE)

    def __contains__(self, type_name: object) -> bool:
        return type_name in self._types

    # ################
    # Implementation
    # ################

    def _check_open(self) -> None:
        if self._sealed:
            raise RegistryError("The registry is sealed and cannot be modified")


def _referenced_types(resource_type: ResourceType) -> list[str]:
    names: list[str] = []
    for f in resource_type.fields:
        if f.value_type is not None:
            names.append(f.value_type)
        names.extend(f.choice_variants)
    if resource_type.base is not None:
        names.append(resource_type.base)
    if resource_type.parent is not None:
        names.append(resource_type.parent)
    return names
