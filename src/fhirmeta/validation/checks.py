# Copyright 2026 FhirMeta Contributors
# SPDX-License-Identifier: Apache-2.0

"""Conformance checks for model instances.

Validation walks an instance tree against its field descriptors and reports
every problem it finds instead of stopping at the first one. It never mutates
the instance and never raises for data problems; callers decide whether an
issue is fatal by looking at its severity.
"""

from __future__ import annotations

import re
from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from fhirmeta.model import choice, primitives
from fhirmeta.model.errors import TypeMismatchError
from fhirmeta.model.instance import ModelInstance
from fhirmeta.model.types import BindingStrength, FieldDescriptor, ResourceType

# ###############
# Public Interface
# ###############


class Severity(Enum):
    ERROR = "error"
    WARNING = "warning"
    INFORMATION = "information"


class IssueCode(Enum):
    """Kinds of problems reported by :func:`validate`."""

    MISSING_REQUIRED_FIELD = "missing-required-field"
    TOO_MANY_VALUES = "too-many-values"
    INVALID_CODE = "invalid-code"
    AMBIGUOUS_CHOICE_VALUE = "ambiguous-choice-value"
    INVALID_FORMAT = "invalid-format"
    INVALID_REFERENCE_TARGET = "invalid-reference-target"
    UNKNOWN_ELEMENT = "unknown-element"


@dataclass(frozen=True)
class ValidationIssue:
    """One problem found in an instance.

    Attributes:
        code: What kind of problem this is.
        severity: ERROR for conformance failures, WARNING for weak-binding
            mismatches and suspicious references, INFORMATION for preserved
            unknown elements.
        path: Location of the offending value in the instance tree using wire
            names, e.g. ``Task.input[1].type``.
        element: The descriptor path of the field, e.g. ``Task.Input.type``.
        message: Human-readable description.
    """

    code: IssueCode
    severity: Severity
    path: str
    element: str
    message: str


@dataclass
class ValidationResult:
    """All issues found by one :func:`validate` call, in document order."""

    issues: list[ValidationIssue] = field(default_factory=list)

    @property
    def errors(self) -> list[ValidationIssue]:
        return [i for i in self.issues if i.severity is Severity.ERROR]

    @property
    def warnings(self) -> list[ValidationIssue]:
        return [i for i in self.issues if i.severity is Severity.WARNING]

    @property
    def has_errors(self) -> bool:
        """Return True if any issue has ERROR severity."""
        return any(i.severity is Severity.ERROR for i in self.issues)

    def with_code(self, code: IssueCode) -> list[ValidationIssue]:
        return [i for i in self.issues if i.code is code]

    def __iter__(self) -> Iterator[ValidationIssue]:
        return iter(self.issues)

    def __len__(self) -> int:
        return len(self.issues)


def validate(instance: ModelInstance, resource_type: ResourceType | None = None) -> ValidationResult:
    """Check an instance and everything nested in it.

    Checks performed for every field of every structure:

    1. **Cardinality** (error): a field with ``min >= 1`` that is absent or
       empty yields ``missing-required-field``; a sequence longer than a
       finite ``max`` yields ``too-many-values``.

    2. **Choice exclusivity** (error): more than one populated variant of a
       choice slot yields ``ambiguous-choice-value``. The model API never
       produces this state, so seeing it means something bypassed the API.

    3. **Coded values**: ``code`` primitives, ``Coding``,
       ``CodeableConcept`` and ``Quantity`` (its ``system`` and unit ``code``)
       values of a field with embedded allowed codes are checked against
       them. A miss is an error for ``required`` bindings and a warning for
       ``extensible``, ``preferred`` and ``example``.

    4. **Primitive formats** (error): string primitives must fully match
       their lexical pattern; ``positiveInt`` and ``unsignedInt`` must be in
       range.

    5. **Reference targets** (warning): a literal reference such as
       ``Patient/123`` in a field restricted to other resource types.

    6. **Unknown elements** (information): wire keys preserved on decode that
       match no field. A ``_name`` companion carrying a primitive's id and
       extensions is not unknown, and counts as presence of a required
       primitive.

    Args:
        instance: The instance to check.
        resource_type: The type to check against. Defaults to the instance's
            own type; passing a different type is a programming error.

    Returns:
        A :class:`ValidationResult`; an empty result means the instance conforms.

    Raises:
        TypeMismatchError: If *resource_type* is not the instance's type.
    """
    if resource_type is not None and resource_type.name != instance.resource_type.name:
        raise TypeMismatchError(
            f"Cannot validate a '{instance.resource_type.name}' instance as '{resource_type.name}'"
        )
    issues: list[ValidationIssue] = []
    _check_instance(instance, instance.resource_type.name, issues)
    return ValidationResult(issues=issues)


# ################
# Implementation
# ################

_RELATIVE_REFERENCE = re.compile(r"(?:.*/)?([A-Z][A-Za-z]+)/[A-Za-z0-9\-\.]{1,64}(?:/_history/[A-Za-z0-9\-\.]{1,64})?")


def _check_instance(instance: ModelInstance, location: str, issues: list[ValidationIssue]) -> None:
    for descriptor in instance.resource_type.fields:
        if descriptor.is_choice:
            _check_choice(instance, descriptor, location, issues)
        else:
            _check_field(instance, descriptor, location, issues)
    for key in instance.unknown:
        if _is_primitive_companion(instance.resource_type, key):
            continue
        issues.append(
            ValidationIssue(
                code=IssueCode.UNKNOWN_ELEMENT,
                severity=Severity.INFORMATION,
                path=f"{location}.{key}",
                element=f"{instance.resource_type.name}.{key}",
                message=f"'{key}' is not an element of {instance.resource_type.name}",
            )
        )


def _check_field(
    instance: ModelInstance, descriptor: FieldDescriptor, location: str, issues: list[ValidationIssue]
) -> None:
    assert descriptor.value_type is not None
    value = instance.get(descriptor.name)
    items = value if isinstance(value, list) else ([] if value is None else [value])
    path = f"{location}.{descriptor.wire_name}"

    if descriptor.is_required and not items and f"_{descriptor.wire_name}" not in instance.unknown:
        issues.append(_issue(IssueCode.MISSING_REQUIRED_FIELD, Severity.ERROR, path, descriptor,
                             f"'{descriptor.path}' is required ({descriptor.cardinality}) but absent"))
        return
    if descriptor.max is not None and len(items) > descriptor.max:
        issues.append(_issue(IssueCode.TOO_MANY_VALUES, Severity.ERROR, path, descriptor,
                             f"'{descriptor.path}' allows at most {descriptor.max} values, found {len(items)}"))

    repeated = isinstance(value, list)
    for index, item in enumerate(items):
        if item is None:
            continue
        item_path = f"{path}[{index}]" if repeated else path
        _check_value(descriptor, descriptor.value_type, item, item_path, issues)


def _check_choice(
    instance: ModelInstance, descriptor: FieldDescriptor, location: str, issues: list[ValidationIssue]
) -> None:
    populated = choice.populated_variants(instance, descriptor.name)
    if not populated:
        extended = any(f"_{descriptor.variant_wire_name(t)}" in instance.unknown for t in descriptor.choice_variants)
        if descriptor.is_required and not extended:
            path = f"{location}.{descriptor.wire_name}[x]"
            issues.append(_issue(IssueCode.MISSING_REQUIRED_FIELD, Severity.ERROR, path, descriptor,
                                 f"'{descriptor.path}' is required ({descriptor.cardinality}) but absent"))
        return
    if len(populated) > 1:
        names = ", ".join(descriptor.variant_wire_name(type_name) for type_name, _ in populated)
        issues.append(_issue(IssueCode.AMBIGUOUS_CHOICE_VALUE, Severity.ERROR,
                             f"{location}.{descriptor.wire_name}[x]", descriptor,
                             f"'{descriptor.path}' has more than one value: {names}"))
    for type_name, value in populated:
        path = f"{location}.{descriptor.variant_wire_name(type_name)}"
        _check_value(descriptor, type_name, value, path, issues)


def _check_value(
    descriptor: FieldDescriptor, type_name: str, value: Any, path: str, issues: list[ValidationIssue]
) -> None:
    if primitives.is_primitive(type_name):
        problem = primitives.lexical_problem(type_name, value)
        if problem is not None:
            issues.append(_issue(IssueCode.INVALID_FORMAT, Severity.ERROR, path, descriptor, problem))
            return
    if descriptor.allowed_codes:
        _check_binding(descriptor, type_name, value, path, issues)
    if type_name == "Reference" and descriptor.type_profiles and isinstance(value, ModelInstance):
        _check_reference_target(descriptor, value, path, issues)
    if isinstance(value, ModelInstance):
        _check_instance(value, path, issues)


def _check_binding(
    descriptor: FieldDescriptor, type_name: str, value: Any, path: str, issues: list[ValidationIssue]
) -> None:
    strength = descriptor.binding.strength if descriptor.binding is not None else BindingStrength.REQUIRED
    severity = Severity.ERROR if strength is BindingStrength.REQUIRED else Severity.WARNING

    if isinstance(value, str):
        if not _code_allowed(descriptor, None, value):
            issues.append(_issue(IssueCode.INVALID_CODE, severity, path, descriptor,
                                 f"Code '{value}' is not allowed for '{descriptor.path}' ({strength.value} binding)"))
        return
    if not isinstance(value, ModelInstance):
        return
    if type_name == "Coding" or value.registry.is_assignable(value.resource_type.name, "Quantity"):
        codings = [value]
    elif type_name == "CodeableConcept":
        codings = value.get("coding") or []
        if not codings:
            if strength is BindingStrength.REQUIRED:
                issues.append(_issue(IssueCode.INVALID_CODE, severity, path, descriptor,
                                     f"'{descriptor.path}' has no coding from its required value set"))
            return
    else:
        return
    if not any(_code_allowed(descriptor, c.get("system"), c.get("code")) for c in codings):
        shown = ", ".join(f"{c.get('system') or ''}|{c.get('code') or ''}" for c in codings)
        issues.append(_issue(IssueCode.INVALID_CODE, severity, path, descriptor,
                             f"None of the codings ({shown}) is allowed for '{descriptor.path}' "
                             f"({strength.value} binding)"))


def _is_primitive_companion(resource_type: ResourceType, key: str) -> bool:
    """Return True for a preserved ``_name`` key that holds a primitive's id and extensions."""
    if not key.startswith("_"):
        return False
    descriptor = resource_type.field_by_wire_name(key[1:])
    if descriptor is not None and descriptor.value_type is not None:
        return primitives.is_primitive(descriptor.value_type)
    variant = resource_type.variant_by_wire_name(key[1:])
    return variant is not None and primitives.is_primitive(variant[1])


def _code_allowed(descriptor: FieldDescriptor, system: str | None, code: str | None) -> bool:
    if code is None:
        return False
    if system is None:
        return any(code in codes for codes in descriptor.allowed_codes.values())
    return code in descriptor.allowed_codes.get(system, ())


def _check_reference_target(
    descriptor: FieldDescriptor, reference: ModelInstance, path: str, issues: list[ValidationIssue]
) -> None:
    allowed = {profile.rsplit("/", 1)[-1] for profile in descriptor.type_profiles}
    if "Resource" in allowed:
        return
    targets: list[str] = []
    literal = reference.get("reference")
    if isinstance(literal, str):
        match = _RELATIVE_REFERENCE.fullmatch(literal)
        if match is not None:
            targets.append(match.group(1))
    declared = reference.get("type")
    if isinstance(declared, str):
        targets.append(declared.rsplit("/", 1)[-1])
    for target in targets:
        if target not in allowed:
            issues.append(_issue(IssueCode.INVALID_REFERENCE_TARGET, Severity.WARNING, path, descriptor,
                                 f"'{descriptor.path}' may reference {', '.join(sorted(allowed))}, not {target}"))


def _issue(code: IssueCode, severity: Severity, path: str, descriptor: FieldDescriptor, message: str) -> ValidationIssue:
    return ValidationIssue(code=code, severity=severity, path=path, element=descriptor.path, message=message)
