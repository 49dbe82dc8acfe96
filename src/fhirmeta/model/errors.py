# Copyright 2026 FhirMeta Contributors
# SPDX-License-Identifier: Apache-2.0

"""Exceptions raised by model instances and the choice-type resolver."""

# ###############
# Public Interface
# ###############


class ModelError(Exception):
    """Base class for programmer errors raised while mutating an instance."""


class UnknownFieldError(ModelError):
    """Raised when a field name does not exist on the instance's type."""


class CardinalityError(ModelError):
    """Raised when a scalar is assigned to a repeated field or vice versa."""


class TypeMismatchError(ModelError):
    """Raised when a value's runtime type is not assignable to the declared type."""


class OwnershipError(ModelError):
    """Raised when an assignment would share a nested instance or create a cycle."""


class AmbiguousChoiceError(ModelError):
    """Raised when more than one variant of a choice slot is populated.

    The resolver never produces this state; seeing it means the instance was
    modified behind the engine's back.
    """
