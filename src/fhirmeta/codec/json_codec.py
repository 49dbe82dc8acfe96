# Copyright 2026 FhirMeta Contributors
# SPDX-License-Identifier: Apache-2.0

"""JSON serialization of model instances.

FHIR decimals are significant to the last written digit, so numbers with a
fraction or exponent are read as :class:`decimal.Decimal` and ``Decimal``
values are written back as numbers with their exact text.
"""

from __future__ import annotations

import simplejson

from fhirmeta.codec.tree import DecodeError, DecodeResult, decode_tree, encode_tree
from fhirmeta.config import EngineConfig
from fhirmeta.model.instance import ModelInstance
from fhirmeta.registry.registry import TypeRegistry

# ###############
# Public Interface
# ###############


def encode_json(instance: ModelInstance, *, indent: int | None = None) -> str:
    """Serialize an instance to a JSON document.

    Args:
        instance: The instance to serialize.
        indent: Indentation width for pretty-printing; compact when None.
    """
    return simplejson.dumps(encode_tree(instance), indent=indent, ensure_ascii=False, use_decimal=True)


def decode_json(
    text: str | bytes,
    type_name: str | None = None,
    registry: TypeRegistry | None = None,
    *,
    config: EngineConfig | None = None,
) -> DecodeResult:
    """Parse a JSON document into an instance.

    Malformed JSON does not raise; the result then has no instance and a
    single error at the document root. Neither does a document nested too
    deeply for the parser.

    Args:
        text: The JSON document.
        type_name: Expected root type; taken from ``resourceType`` when omitted.
        registry: Registry to resolve types in.
        config: Decode limits and options.
    """
    label = type_name or "<document>"
    try:
        tree = simplejson.loads(text, use_decimal=True)
    except (simplejson.JSONDecodeError, UnicodeDecodeError) as exc:
        return DecodeResult(None, [DecodeError(label, f"malformed JSON: {exc}")])
    except RecursionError:
        return DecodeResult(None, [DecodeError(label, "malformed JSON: nesting is too deep to parse")])
    return decode_tree(tree, type_name, registry, config=config)
