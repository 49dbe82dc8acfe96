# Copyright 2026 FhirMeta Contributors
# SPDX-License-Identifier: Apache-2.0

"""FHIR R4 primitive types: accepted Python values, lexical rules and text forms.

JSON carries booleans and numbers natively; XML carries every primitive as the
text of a ``value`` attribute. The helpers here convert between the two so the
codecs only differ at the leaves.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

# ###############
# Public Interface
# ###############


@dataclass(frozen=True)
class PrimitiveSpec:
    """Describes one primitive type.

    Attributes:
        name: The FHIR type name (``dateTime``, ``positiveInt``).
        kind: The value family: ``string``, ``boolean``, ``integer`` or ``decimal``.
        pattern: Compiled lexical rule for string-valued primitives, if any.
    """

    name: str
    kind: str
    pattern: re.Pattern[str] | None = None


def _spec(name: str, kind: str, regex: str | None = None) -> PrimitiveSpec:
    return PrimitiveSpec(name=name, kind=kind, pattern=re.compile(regex) if regex is not None else None)


_DATE = r"([0-9]([0-9]([0-9][1-9]|[1-9]0)|[1-9]00)|[1-9]000)(-(0[1-9]|1[0-2])(-(0[1-9]|[1-2][0-9]|3[0-1]))?)?"
_DATETIME = (
    r"([0-9]([0-9]([0-9][1-9]|[1-9]0)|[1-9]00)|[1-9]000)(-(0[1-9]|1[0-2])(-(0[1-9]|[1-2][0-9]|3[0-1])"
    r"(T([01][0-9]|2[0-3]):[0-5][0-9]:([0-5][0-9]|60)(\.[0-9]+)?(Z|(\+|-)((0[0-9]|1[0-3]):[0-5][0-9]|14:00)))?)?)?"
)
_INSTANT = (
    r"([0-9]([0-9]([0-9][1-9]|[1-9]0)|[1-9]00)|[1-9]000)-(0[1-9]|1[0-2])-(0[1-9]|[1-2][0-9]|3[0-1])"
    r"T([01][0-9]|2[0-3]):[0-5][0-9]:([0-5][0-9]|60)(\.[0-9]+)?(Z|(\+|-)((0[0-9]|1[0-3]):[0-5][0-9]|14:00))"
)

PRIMITIVES: dict[str, PrimitiveSpec] = {
    spec.name: spec
    for spec in (
        _spec("base64Binary", "string", r"(\s*([0-9a-zA-Z\+/=]){4}\s*)+"),
        _spec("boolean", "boolean"),
        _spec("canonical", "string", r"\S*"),
        _spec("code", "string", r"[^\s]+(\s[^\s]+)*"),
        _spec("date", "string", _DATE),
        _spec("dateTime", "string", _DATETIME),
        _spec("decimal", "decimal"),
        _spec("id", "string", r"[A-Za-z0-9\-\.]{1,64}"),
        _spec("instant", "string", _INSTANT),
        _spec("integer", "integer"),
        _spec("markdown", "string", r"[ \r\n\t\S]+"),
        _spec("oid", "string", r"urn:oid:[0-2](\.(0|[1-9][0-9]*))+"),
        _spec("positiveInt", "integer"),
        _spec("string", "string", r"[ \r\n\t\S]+"),
        _spec("time", "string", r"([01][0-9]|2[0-3]):[0-5][0-9]:([0-5][0-9]|60)(\.[0-9]+)?"),
        _spec("unsignedInt", "integer"),
        _spec("uri", "string", r"\S*"),
        _spec("url", "string", r"\S*"),
        _spec("uuid", "string", r"urn:uuid:[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}"),
        _spec("xhtml", "string"),
    )
}


def is_primitive(type_name: str) -> bool:
    """Return True if *type_name* names a FHIR primitive type."""
    return type_name in PRIMITIVES


def accepts(type_name: str, value: Any) -> bool:
    """Return True if *value* has a Python type assignable to the primitive.

    Only the runtime type is checked here; lexical rules are a validation
    concern (see :func:`lexical_problem`). Decimals must be finite.
    """
    kind = PRIMITIVES[type_name].kind
    if kind == "boolean":
        return isinstance(value, bool)
    if kind == "integer":
        return isinstance(value, int) and not isinstance(value, bool)
    if kind == "decimal":
        if isinstance(value, bool) or not isinstance(value, (int, float, Decimal)):
            return False
        if isinstance(value, Decimal):
            return value.is_finite()
        return isinstance(value, int) or math.isfinite(value)
    return isinstance(value, str)


def lexical_problem(type_name: str, value: Any) -> str | None:
    """Return a description of why *value* is not a valid lexical form, or None."""
    spec = PRIMITIVES[type_name]
    if type_name == "positiveInt" and value < 1:
        return f"{value} is not a positive integer"
    if type_name == "unsignedInt" and value < 0:
        return f"{value} is not an unsigned integer"
    if spec.pattern is not None and isinstance(value, str) and spec.pattern.fullmatch(value) is None:
        return f"{value!r} does not match the {type_name} format"
    return None


def parse_text(type_name: str, text: str) -> Any:
    """Convert the XML text form of a primitive to its Python value.

    Raises:
        ValueError: If *text* cannot be read as the primitive's value family.
    """
    kind = PRIMITIVES[type_name].kind
    if kind == "boolean":
        if text == "true":
            return True
        if text == "false":
            return False
        raise ValueError(f"{text!r} is not a boolean")
    if kind == "integer":
        if _INTEGER_TEXT.fullmatch(text) is None:
            raise ValueError(f"{text!r} is not an integer")
        return int(text)
    if kind == "decimal":
        if _DECIMAL_TEXT.fullmatch(text) is None:
            raise ValueError(f"{text!r} is not a decimal")
        return Decimal(text)
    return text


def format_text(value: Any) -> str:
    """Convert a primitive Python value to its XML text form.

    ``Decimal`` values keep their exact text, trailing zeros included.
    """
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        return repr(value)
    return str(value)


def to_json_value(value: Any) -> Any:
    """Return the value the JSON codec writes for a primitive.

    ``Decimal`` values pass through unchanged so their text survives; the JSON
    codec writes them as numbers.
    """
    return value


# ################
# Implementation
# ################

_INTEGER_TEXT = re.compile(r"[+-]?(0|[1-9][0-9]*)")
_DECIMAL_TEXT = re.compile(r"-?(0|[1-9][0-9]*)(\.[0-9]+)?([eE][+-]?[0-9]+)?")
