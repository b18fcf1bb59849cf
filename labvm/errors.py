"""Project-specific exception types."""

from __future__ import annotations


class LabVMError(RuntimeError):
    """Base error for domain-level labvm failures."""


class FatalPreconditionError(LabVMError):
    """Raised when a workflow cannot proceed because a precondition is missing."""


class CustomizationError(LabVMError):
    """Raised when guest image customization does not complete."""


class InvalidSpecError(LabVMError):
    """Raised when VM or network specs violate addressing invariants."""
