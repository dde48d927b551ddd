"""
Configuration package.

This package contains environment settings loading and position intent
validation.
"""

from ocobot.config.config import Settings
from ocobot.config.intent_validator import (
    IntentValidator,
    ValidationIssue,
    ValidationResult,
    ValidationSeverity,
    validate_intent,
)

__all__ = [
    "Settings",
    "IntentValidator",
    "ValidationIssue",
    "ValidationResult",
    "ValidationSeverity",
    "validate_intent",
]
