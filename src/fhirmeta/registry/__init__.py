# Copyright 2026 FhirMeta Contributors
# SPDX-License-Identifier: Apache-2.0

"""Type registry and the YAML schema definitions that populate it."""

from fhirmeta.registry.loader import (
    SchemaConfigError,
    default_registry,
    load_registry,
    load_schema_file,
    load_schema_text,
)
from fhirmeta.registry.registry import RegistryError, TypeRegistry, UnknownTypeError

__all__ = [
    "TypeRegistry",
    "RegistryError",
    "UnknownTypeError",
    "SchemaConfigError",
    "default_registry",
    "load_registry",
    "load_schema_file",
    "load_schema_text",
]
