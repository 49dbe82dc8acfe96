# Copyright 2026 FhirMeta Contributors
# SPDX-License-Identifier: Apache-2.0

"""XML serialization of model instances.

FHIR XML differs from JSON only in placement:

* primitives are elements with a ``value`` attribute; a primitive's id and
  extensions become the element's ``id`` attribute and child elements;
* the ``id`` of a non-resource structure and the ``url`` of an extension are
  attributes;
* repeated fields are repeated elements;
* resources are elements named after their type, so contained resources sit
  one level below their ``contained`` element;
* narrative ``div`` is embedded XHTML.

Encoding walks :meth:`ModelInstance.wire_items`; decoding converts the element
tree to the wire tree and hands it to :func:`decode_tree` with text leaves.
"""

from __future__ import annotations

from itertools import zip_longest
from typing import Any

from lxml import etree

from fhirmeta.codec.tree import RESOURCE_TYPE_KEY, DecodeError, DecodeResult, decode_tree
from fhirmeta.config import EngineConfig, build_registry
from fhirmeta.model import primitives
from fhirmeta.model.instance import ModelInstance
from fhirmeta.model.types import StructureKind
from fhirmeta.registry.registry import TypeRegistry

# ###############
# Public Interface
# ###############

FHIR_NS = "http://hl7.org/fhir"
XHTML_NS = "http://www.w3.org/1999/xhtml"


def encode_xml(instance: ModelInstance, *, pretty_print: bool = False) -> str:
    """Serialize an instance to an XML document in the FHIR namespace.

    The root element is named after the instance's type (``Task``, or
    ``Variant`` for a ``MolecularSequence.Variant``).
    """
    root = etree.Element(_tag(instance.resource_type.short_name), nsmap={None: FHIR_NS})
    _fill(root, instance)
    return etree.tostring(root, encoding="unicode", pretty_print=pretty_print)


def decode_xml(
    text: str | bytes,
    type_name: str | None = None,
    registry: TypeRegistry | None = None,
    *,
    config: EngineConfig | None = None,
) -> DecodeResult:
    """Parse an XML document into an instance.

    Malformed XML does not raise; the result then has no instance and a
    single error at the document root. Entity expansion and network access
    are disabled.

    Args:
        text: The XML document.
        type_name: Expected root type; taken from the root element name when omitted.
        registry: Registry to resolve types in.
        config: Decode limits and options.
    """
    config = config or EngineConfig()
    if registry is None:
        registry = build_registry(config)
    data = text.encode("utf-8") if isinstance(text, str) else text
    try:
        root = etree.fromstring(data, _parser())
    except etree.XMLSyntaxError as exc:
        return DecodeResult(None, [DecodeError(type_name or "<document>", f"malformed XML: {exc}")])

    is_resource = type_name is None or registry.resolve(type_name).kind is StructureKind.RESOURCE
    tree = _element_to_tree(root, resource=is_resource)
    return decode_tree(tree, type_name, registry, config=config, text_primitives=True)


# ################
# Implementation
# ################

_EXTENSION_ELEMENTS = frozenset({"extension", "modifierExtension"})


def _parser() -> etree.XMLParser:
    return etree.XMLParser(resolve_entities=False, no_network=True, remove_comments=True, remove_pis=True)


def _tag(name: str) -> str:
    return f"{{{FHIR_NS}}}{name}"


# -------- encoding --------


def _fill(element: etree._Element, source: ModelInstance | dict[str, Any], element_name: str = "") -> None:
    """Write the members of an instance or of a preserved raw mapping into *element*."""
    if isinstance(source, ModelInstance):
        is_resource = source.resource_type.kind is StructureKind.RESOURCE
        is_extension = source.resource_type.name == "Extension"
        entries = dict(source.wire_items())
    else:
        is_resource = isinstance(source.get(RESOURCE_TYPE_KEY), str)
        is_extension = element_name in _EXTENSION_ELEMENTS
        entries = source

    for key, value in entries.items():
        if key == RESOURCE_TYPE_KEY and is_resource:
            continue
        if key == "id" and not is_resource and isinstance(value, str):
            element.set("id", value)
            continue
        if key == "url" and is_extension and isinstance(value, str):
            element.set("url", value)
            continue
        if key.startswith("_"):
            if key[1:] not in entries:
                _append(element, key[1:], None, value)
            continue
        _append(element, key, value, entries.get(f"_{key}"))


def _append(parent: etree._Element, name: str, value: Any, companion: Any) -> None:
    if isinstance(value, list) or isinstance(companion, list):
        values = value if isinstance(value, list) else [value] * len(companion)
        companions = companion if isinstance(companion, list) else []
        for item, item_companion in zip_longest(values, companions):
            _append_one(parent, name, item, item_companion)
        return
    _append_one(parent, name, value, companion)


def _append_one(parent: etree._Element, name: str, value: Any, companion: Any) -> None:
    if name == "div" and isinstance(value, str):
        parent.append(_xhtml(value))
        return
    child = etree.SubElement(parent, _tag(name))
    if isinstance(value, ModelInstance):
        if value.resource_type.kind is StructureKind.RESOURCE:
            _fill(etree.SubElement(child, _tag(value.resource_type.short_name)), value)
        else:
            _fill(child, value)
    elif isinstance(value, dict):
        declared = value.get(RESOURCE_TYPE_KEY)
        if isinstance(declared, str):
            _fill(etree.SubElement(child, _tag(declared)), value, declared)
        else:
            _fill(child, value, name)
    elif value is not None:
        child.set("value", primitives.format_text(value))
    if isinstance(companion, dict):
        _fill(child, companion, name)


def _xhtml(markup: str) -> etree._Element:
    """Parse narrative markup, wrapping plain text in an XHTML div."""
    try:
        div = etree.fromstring(markup, _parser())
    except etree.XMLSyntaxError:
        div = etree.Element(f"{{{XHTML_NS}}}div", nsmap={None: XHTML_NS})
        div.text = markup
    return div


# -------- decoding --------


def _element_to_tree(element: etree._Element, *, resource: bool) -> dict[str, Any]:
    tree: dict[str, Any] = {}
    if resource:
        tree[RESOURCE_TYPE_KEY] = etree.QName(element).localname
    else:
        for attribute in ("id", "url"):
            if attribute in element.attrib:
                tree[attribute] = element.get(attribute)

    groups: dict[str, tuple[list[Any], list[Any]]] = {}
    for child in element:
        if not isinstance(child.tag, str):
            continue
        qname = etree.QName(child)
        companion: dict[str, Any] | None = None
        if qname.localname == "div" and qname.namespace != FHIR_NS:
            value: Any = etree.tostring(child, encoding="unicode", with_tail=False)
        elif "value" in child.attrib:
            value = child.get("value")
            companion = _element_to_tree(child, resource=False) or None
        elif _wraps_resource(child):
            value = _element_to_tree(_child_elements(child)[0], resource=True)
        else:
            value = _element_to_tree(child, resource=False)
        values, companions = groups.setdefault(qname.localname, ([], []))
        values.append(value)
        companions.append(companion)

    for name, (values, companions) in groups.items():
        tree[name] = values[0] if len(values) == 1 and name not in _EXTENSION_ELEMENTS else values
        if any(c is not None for c in companions):
            tree[f"_{name}"] = companions[0] if len(companions) == 1 else companions
    return tree


def _child_elements(element: etree._Element) -> list[etree._Element]:
    return [child for child in element if isinstance(child.tag, str)]


def _wraps_resource(element: etree._Element) -> bool:
    """Element names start lowercase; resource names start uppercase."""
    if element.attrib:
        return False
    children = _child_elements(element)
    return len(children) == 1 and etree.QName(children[0]).localname[:1].isupper()
