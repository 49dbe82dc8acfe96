# Copyright 2026 FhirMeta Contributors
# SPDX-License-Identifier: Apache-2.0

"""Tests for the JSON codec."""

import json
from decimal import Decimal
from pathlib import Path

import pytest

from fhirmeta.codec import decode_json, encode_json
from fhirmeta.config import EngineConfig
from fhirmeta.registry import default_registry

# ###############
# Test Helpers
# ###############

_PLAN = {
    "resourceType": "InsurancePlan",
    "id": "plan-1",
    "status": "active",
    "name": "Gold",
    "alias": ["Old Name"],
    "coverage": [
        {
            "type": {"text": "medical"},
            "benefit": [{"type": {"text": "surgery"}, "requirement": "referral"}],
        }
    ],
}


# ###############
# Encoding
# ###############


class TestEncodeJson:
    def test_compact_by_default(self) -> None:
        task = default_registry().create("Task", status="draft", intent="order")
        assert encode_json(task) == '{"resourceType": "Task", "status": "draft", "intent": "order"}'

    def test_indent(self) -> None:
        task = default_registry().create("Task", status="draft", intent="order")
        assert encode_json(task, indent=2).splitlines()[1] == '  "resourceType": "Task",'

    def test_non_ascii_is_kept(self) -> None:
        task = default_registry().create("Task", status="draft", intent="order", description="Überprüfung")
        assert "Überprüfung" in encode_json(task)

    def test_renamed_field_uses_wire_name(self) -> None:
        plan = default_registry().create("InsurancePlan", local_alias=["Old Name"])
        assert json.loads(encode_json(plan))["alias"] == ["Old Name"]


# ###############
# Decoding
# ###############


class TestDecodeJson:
    def test_round_trip(self) -> None:
        result = decode_json(json.dumps(_PLAN))
        assert result.ok, result.errors
        assert json.loads(encode_json(result.instance)) == _PLAN  # type: ignore[arg-type]

    def test_decode_bytes(self) -> None:
        result = decode_json(json.dumps(_PLAN).encode("utf-8"))
        assert result.ok

    def test_nested_backbone_types(self) -> None:
        plan = decode_json(json.dumps(_PLAN)).raise_on_error()
        benefit = plan.coverage[0].benefit[0]
        assert benefit.resource_type.name == "InsurancePlan.Coverage.Benefit"
        assert benefit.requirement == "referral"

    def test_malformed_json(self) -> None:
        result = decode_json('{"resourceType": "Task",')
        assert result.instance is None
        assert len(result.errors) == 1
        assert result.errors[0].path == "<document>"
        assert result.errors[0].reason.startswith("malformed JSON")

    def test_malformed_json_with_root_type(self) -> None:
        result = decode_json("[", "Task")
        assert result.errors[0].path == "Task"

    def test_decimal_values(self) -> None:
        text = json.dumps({"value": 12.5, "unit": "mg", "code": "mg"})
        quantity = decode_json(text, "Quantity").raise_on_error()
        assert quantity.value == Decimal("12.5")
        assert isinstance(quantity.value, Decimal)

    @pytest.mark.parametrize("value", [Decimal("0.1"), Decimal("1.50"), Decimal("-3.000"), Decimal("7")])
    def test_decimal_round_trip_keeps_digits(self, value: Decimal) -> None:
        quantity = default_registry().create("Quantity", value=value, unit="mg")
        text = encode_json(quantity)
        assert f'"value": {value}' in text
        decoded = decode_json(text, "Quantity").raise_on_error()
        assert decoded == quantity
        assert str(decoded.value) == str(value)

    def test_decimal_text_is_kept_from_document(self) -> None:
        quantity = decode_json('{"value": 1.50, "unit": "mg"}', "Quantity").raise_on_error()
        assert encode_json(quantity) == '{"value": 1.50, "unit": "mg"}'

    def test_deep_unknown_element_is_dropped(self) -> None:
        nested: object = "leaf"
        for _ in range(200):
            nested = {"foo": nested}
        text = json.dumps({"resourceType": "Task", "status": "draft", "intent": "order", "foo": nested})
        result = decode_json(text)
        assert [(e.path, e.reason) for e in result.errors] == [
            ("Task.foo", "nesting exceeds the maximum depth of 64; element dropped"),
        ]
        assert result.instance is not None
        assert result.instance.unknown == {}

    def test_repeated_primitive_placeholder_round_trip(self) -> None:
        document = {
            "resourceType": "InsurancePlan",
            "alias": [None, "B"],
            "_alias": [{"extension": [{"url": "http://example.org/e", "valueString": "x"}]}, None],
        }
        plan = decode_json(json.dumps(document)).raise_on_error()
        assert plan.local_alias == [None, "B"]
        assert json.loads(encode_json(plan)) == document

    def test_config_with_schema_paths(self, tmp_path: Path) -> None:
        (tmp_path / "gadget.yaml").write_text(
            "types:\n  - name: Gadget\n    kind: resource\n    fields:\n      - {name: label, type: string}\n",
            encoding="utf-8",
        )
        config = EngineConfig(schema_paths=[tmp_path])
        gadget = decode_json('{"resourceType": "Gadget", "label": "g"}', config=config).raise_on_error()
        assert gadget.label == "g"
