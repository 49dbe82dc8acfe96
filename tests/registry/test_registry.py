# Copyright 2026 FhirMeta Contributors
# SPDX-License-Identifier: Apache-2.0

"""Tests for the two-phase type registry."""

import pytest

from fhirmeta.model import FieldDescriptor, ResourceType, StructureKind
from fhirmeta.registry import RegistryError, TypeRegistry, UnknownTypeError

# ###############
# Test Helpers
# ###############


def _node_type() -> ResourceType:
    """A self-referencing backbone type."""
    return ResourceType(
        name="Tree.Node",
        parent="Tree",
        fields=(
            FieldDescriptor(name="label", value_type="string"),
            FieldDescriptor(name="child", value_type="Tree.Node", max=None),
        ),
    )


def _tree_type() -> ResourceType:
    return ResourceType(
        name="Tree",
        kind=StructureKind.RESOURCE,
        fields=(FieldDescriptor(name="root", value_type="Tree.Node"),),
    )


def _quantity_family() -> TypeRegistry:
    registry = TypeRegistry()
    registry.register("Resource", ResourceType(name="Resource", kind=StructureKind.ABSTRACT))
    registry.register(
        "Quantity",
        ResourceType(name="Quantity", kind=StructureKind.DATATYPE, fields=(FieldDescriptor(name="value", value_type="decimal"),)),
    )
    registry.register("Age", ResourceType(name="Age", kind=StructureKind.DATATYPE, base="Quantity"))
    registry.register("Tree", _tree_type())
    registry.register("Tree.Node", _node_type())
    registry.seal()
    return registry


# ###############
# Registration
# ###############


class TestRegistration:
    def test_forward_references_resolve_after_declare(self) -> None:
        registry = TypeRegistry()
        registry.declare("Tree")
        registry.declare("Tree.Node")
        registry.define("Tree", _tree_type())
        registry.define("Tree.Node", _node_type())
        registry.seal()
        assert registry.resolve("Tree.Node").field("child") is not None

    def test_define_requires_declare(self) -> None:
        registry = TypeRegistry()
        with pytest.raises(RegistryError):
            registry.define("Tree", _tree_type())

    def test_define_twice(self) -> None:
        registry = TypeRegistry()
        registry.register("Tree.Node", _node_type())
        with pytest.raises(RegistryError):
            registry.define("Tree.Node", _node_type())

    def test_define_with_mismatched_name(self) -> None:
        registry = TypeRegistry()
        registry.declare("Other")
        with pytest.raises(RegistryError):
            registry.define("Other", _tree_type())

    def test_primitive_names_cannot_be_declared(self) -> None:
        with pytest.raises(RegistryError):
            TypeRegistry().declare("string")

    def test_seal_reports_declared_but_undefined(self) -> None:
        registry = TypeRegistry()
        registry.declare("Tree")
        with pytest.raises(UnknownTypeError, match="Tree"):
            registry.seal()

    def test_seal_reports_unknown_reference(self) -> None:
        registry = TypeRegistry()
        registry.register("Tree", _tree_type())
        with pytest.raises(UnknownTypeError, match="Tree.Node"):
            registry.seal()
        assert not registry.sealed

    def test_sealed_registry_is_read_only(self) -> None:
        registry = _quantity_family()
        assert registry.sealed
        with pytest.raises(RegistryError):
            registry.declare("Later")
        with pytest.raises(RegistryError):
            registry.register("Later", ResourceType(name="Later"))


# ###############
# Lookup
# ###############


class TestLookup:
    def test_resolve_unknown(self) -> None:
        with pytest.raises(UnknownTypeError):
            _quantity_family().resolve("Patient")

    def test_unknown_type_is_a_lookup_error(self) -> None:
        with pytest.raises(LookupError):
            _quantity_family().resolve("Patient")

    def test_is_known(self) -> None:
        registry = _quantity_family()
        assert registry.is_known("dateTime")
        assert registry.is_known("Age")
        assert not registry.is_known("Patient")
        assert "Age" in registry
        assert "dateTime" not in registry

    def test_names(self) -> None:
        registry = _quantity_family()
        assert registry.type_names() == ["Age", "Quantity", "Resource", "Tree", "Tree.Node"]
        assert registry.resource_names() == ["Tree"]

    def test_create(self) -> None:
        node = _quantity_family().create("Tree.Node", label="top")
        assert node.resource_type.name == "Tree.Node"
        assert node.label == "top"


class TestAssignability:
    def test_same_type(self) -> None:
        assert _quantity_family().is_assignable("Quantity", "Quantity")

    def test_profile_to_base(self) -> None:
        registry = _quantity_family()
        assert registry.is_assignable("Age", "Quantity")
        assert not registry.is_assignable("Quantity", "Age")

    def test_concrete_resource_to_resource(self) -> None:
        registry = _quantity_family()
        assert registry.is_assignable("Tree", "Resource")
        assert not registry.is_assignable("Tree.Node", "Resource")
        assert not registry.is_assignable("Quantity", "Resource")

    def test_unrelated(self) -> None:
        assert not _quantity_family().is_assignable("Tree", "Quantity")
