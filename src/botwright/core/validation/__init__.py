"""Structural validation of bot artifacts."""

from botwright.core.validation.fallback import resolve_fallback
from botwright.core.validation.validator import StructuralValidator, ValidationReport

__all__ = ["StructuralValidator", "ValidationReport", "resolve_fallback"]
