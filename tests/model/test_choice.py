# Copyright 2026 FhirMeta Contributors
# SPDX-License-Identifier: Apache-2.0

"""Tests for choice-slot resolution."""

import pytest

from fhirmeta.model import (
    AmbiguousChoiceError,
    ModelInstance,
    TypeMismatchError,
    UnknownFieldError,
    active_variant,
    clear_variant,
    match_variant_key,
    populated_variants,
    set_variant,
)
from fhirmeta.registry import default_registry

# ###############
# Test Helpers
# ###############


def _task_input() -> ModelInstance:
    registry = default_registry()
    return registry.create("Task.Input", type=registry.create("CodeableConcept", text="param"))


# ###############
# Exclusivity
# ###############


class TestExclusivity:
    def test_later_variant_replaces_earlier(self) -> None:
        item = _task_input()
        item.valueString = "x"
        item.valueInteger = 5
        assert item.valueString is None
        assert item.valueInteger == 5
        assert populated_variants(item, "value") == [("integer", 5)]

    def test_every_assignment_sequence_leaves_at_most_one_variant(self) -> None:
        registry = default_registry()
        item = _task_input()
        assignments = [
            ("valueBoolean", True),
            ("valueString", "a"),
            ("valueCoding", registry.create("Coding", code="c")),
            ("valueInteger", 1),
            ("valueString", None),
            ("valuePeriod", registry.create("Period", start="2024-01-01")),
        ]
        for key, value in assignments:
            item.set(key, value)
            assert len(populated_variants(item, "value")) <= 1

    def test_set_variant_by_type_name(self) -> None:
        item = _task_input()
        set_variant(item, "value", "boolean", False)
        assert active_variant(item, "value") == ("boolean", False)
        assert item.value is False

    def test_clear_variant(self) -> None:
        item = _task_input()
        item.valueString = "x"
        clear_variant(item, "value")
        assert active_variant(item, "value") is None
        assert item.value is None

    def test_none_on_slot_clears(self) -> None:
        item = _task_input()
        item.valueDecimal = 1.5
        item.value = None
        assert populated_variants(item, "value") == []

    def test_rejected_value_keeps_previous_variant(self) -> None:
        item = _task_input()
        item.valueString = "kept"
        with pytest.raises(TypeMismatchError):
            item.valueInteger = "not an integer"
        assert item.valueString == "kept"

    def test_replaced_structure_variant_is_released(self) -> None:
        registry = default_registry()
        item = _task_input()
        coding = registry.create("Coding", code="c")
        item.valueCoding = coding
        item.valueString = "x"
        assert coding.parent is None


# ###############
# Variant Selection
# ###############


class TestVariantSelection:
    def test_slot_assignment_infers_variant_from_instance(self) -> None:
        registry = default_registry()
        item = _task_input()
        item.value = registry.create("Quantity", value=3)
        assert active_variant(item, "value")[0] == "Quantity"  # type: ignore[index]
        assert item.valueQuantity is not None

    def test_profile_instance_picks_its_own_variant(self) -> None:
        registry = default_registry()
        item = _task_input()
        item.value = registry.create("Age", value=30)
        assert item.valueAge is not None
        assert item.valueQuantity is None

    def test_profile_instance_is_rejected_under_base_variant(self) -> None:
        registry = default_registry()
        item = _task_input()
        item.valueString = "kept"
        with pytest.raises(TypeMismatchError, match="valueAge"):
            set_variant(item, "value", "Quantity", registry.create("Age", value=30))
        with pytest.raises(TypeMismatchError):
            item.valueQuantity = registry.create("Age", value=30)
        assert item.valueString == "kept"

    def test_slot_assignment_of_primitive_is_rejected(self) -> None:
        item = _task_input()
        with pytest.raises(TypeMismatchError):
            item.value = "ambiguous"

    def test_disallowed_variant_type(self) -> None:
        item = _task_input()
        with pytest.raises(TypeMismatchError):
            set_variant(item, "value", "Narrative", None)

    def test_unknown_slot(self) -> None:
        item = _task_input()
        with pytest.raises(UnknownFieldError):
            set_variant(item, "type", "string", "x")

    def test_match_variant_key(self) -> None:
        input_type = default_registry().resolve("Task.Input")
        match = match_variant_key(input_type, "valueCodeableConcept")
        assert match is not None
        slot, type_name = match
        assert slot.name == "value"
        assert type_name == "CodeableConcept"
        assert match_variant_key(input_type, "valueFoo") is None


# ###############
# Decoded Ambiguity
# ###############


class TestAmbiguity:
    def test_active_variant_rejects_several_populated(self) -> None:
        item = _task_input()
        # Bypass the resolver to simulate a corrupted instance.
        item._load("valueString", "a")
        item._load("valueInteger", 1)
        with pytest.raises(AmbiguousChoiceError):
            active_variant(item, "value")
