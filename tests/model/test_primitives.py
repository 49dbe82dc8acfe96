# Copyright 2026 FhirMeta Contributors
# SPDX-License-Identifier: Apache-2.0

"""Tests for the FHIR primitive type table."""

from decimal import Decimal

import pytest

from fhirmeta.model import primitives

# ###############
# Type Acceptance
# ###############


class TestAccepts:
    def test_boolean_accepts_only_bool(self) -> None:
        assert primitives.accepts("boolean", True)
        assert not primitives.accepts("boolean", 1)
        assert not primitives.accepts("boolean", "true")

    def test_integer_rejects_bool(self) -> None:
        assert primitives.accepts("integer", 5)
        assert not primitives.accepts("integer", True)
        assert not primitives.accepts("integer", 5.0)

    def test_decimal_accepts_int_float_and_decimal(self) -> None:
        assert primitives.accepts("decimal", 1)
        assert primitives.accepts("decimal", 1.5)
        assert primitives.accepts("decimal", Decimal("2.25"))
        assert not primitives.accepts("decimal", False)

    @pytest.mark.parametrize("value", [float("nan"), float("inf"), Decimal("NaN"), Decimal("-Infinity")])
    def test_decimal_rejects_non_finite(self, value: object) -> None:
        assert not primitives.accepts("decimal", value)

    @pytest.mark.parametrize("type_name", ["string", "code", "uri", "dateTime", "markdown", "xhtml"])
    def test_string_family_accepts_str(self, type_name: str) -> None:
        assert primitives.accepts(type_name, "x")
        assert not primitives.accepts(type_name, 3)

    def test_is_primitive(self) -> None:
        assert primitives.is_primitive("positiveInt")
        assert not primitives.is_primitive("Coding")


# ###############
# Lexical Rules
# ###############


class TestLexicalProblem:
    @pytest.mark.parametrize(
        ("type_name", "value"),
        [
            ("date", "2024"),
            ("date", "2024-02-29"),
            ("dateTime", "2024-02-29T10:15:00Z"),
            ("dateTime", "2024-02-29T10:15:00.123+05:30"),
            ("instant", "2015-02-07T13:28:17.239+02:00"),
            ("time", "23:59:60"),
            ("id", "abc-123.x"),
            ("code", "in-progress"),
            ("oid", "urn:oid:1.2.840.10008"),
            ("uuid", "urn:uuid:c757873d-ec9a-4326-a141-556f43239520"),
        ],
    )
    def test_valid_values_have_no_problem(self, type_name: str, value: str) -> None:
        assert primitives.lexical_problem(type_name, value) is None

    @pytest.mark.parametrize(
        ("type_name", "value"),
        [
            ("date", "2024-13-01"),
            ("dateTime", "2024-02-29T10:15"),
            ("instant", "2015-02-07"),
            ("id", "has space"),
            ("id", "x" * 65),
            ("code", " leading"),
            ("string", ""),
            ("oid", "1.2.3"),
        ],
    )
    def test_invalid_values_are_reported(self, type_name: str, value: str) -> None:
        assert primitives.lexical_problem(type_name, value) is not None

    def test_positive_int_must_be_at_least_one(self) -> None:
        assert primitives.lexical_problem("positiveInt", 0) is not None
        assert primitives.lexical_problem("positiveInt", 1) is None

    def test_unsigned_int_must_not_be_negative(self) -> None:
        assert primitives.lexical_problem("unsignedInt", -1) is not None
        assert primitives.lexical_problem("unsignedInt", 0) is None


# ###############
# Text Forms
# ###############


class TestTextForms:
    def test_parse_boolean(self) -> None:
        assert primitives.parse_text("boolean", "true") is True
        assert primitives.parse_text("boolean", "false") is False
        with pytest.raises(ValueError):
            primitives.parse_text("boolean", "yes")

    def test_parse_integer(self) -> None:
        assert primitives.parse_text("integer", "42") == 42
        assert primitives.parse_text("integer", "-7") == -7

    @pytest.mark.parametrize("text", ["4.2", " 5", "5 ", "1_000", "", "0x10"])
    def test_parse_integer_rejects_non_fhir_text(self, text: str) -> None:
        with pytest.raises(ValueError):
            primitives.parse_text("integer", text)

    def test_parse_decimal_keeps_exact_text(self) -> None:
        assert primitives.parse_text("decimal", "3") == Decimal("3")
        assert primitives.parse_text("decimal", "0.1") == Decimal("0.1")
        assert str(primitives.parse_text("decimal", "1.50")) == "1.50"
        assert primitives.parse_text("decimal", "1.2e3") == Decimal("1200")

    @pytest.mark.parametrize("text", ["nan", "inf", "-Infinity", " 1.5", "1_0.5", ".5", "1."])
    def test_parse_decimal_rejects_non_fhir_text(self, text: str) -> None:
        with pytest.raises(ValueError):
            primitives.parse_text("decimal", text)

    def test_parse_string_family_is_identity(self) -> None:
        assert primitives.parse_text("dateTime", "2024-01-01") == "2024-01-01"

    def test_format_text(self) -> None:
        assert primitives.format_text(True) == "true"
        assert primitives.format_text(False) == "false"
        assert primitives.format_text(7) == "7"
        assert primitives.format_text(0.5) == "0.5"
        assert primitives.format_text("abc") == "abc"
        assert primitives.format_text(Decimal("1.50")) == "1.50"

    def test_to_json_value_keeps_decimal(self) -> None:
        value = Decimal("2.50")
        assert primitives.to_json_value(value) is value
        assert primitives.to_json_value("x") == "x"
