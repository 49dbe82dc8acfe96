# Copyright 2026 FhirMeta Contributors
# SPDX-License-Identifier: Apache-2.0

"""Conformance checks for model instances (cardinality, bindings, formats)."""

from fhirmeta.validation.checks import (
    IssueCode,
    Severity,
    ValidationIssue,
    ValidationResult,
    validate,
)

__all__ = [
    "IssueCode",
    "Severity",
    "ValidationIssue",
    "ValidationResult",
    "validate",
]
