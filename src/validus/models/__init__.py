"""Data models for rules and validation results."""

from validus.models.results import RuleResult, TargetResult, ValidationResult
from validus.models.rule import RuleDescriptor, normalize_targets

__all__ = [
    "RuleDescriptor",
    "RuleResult",
    "TargetResult",
    "ValidationResult",
    "normalize_targets",
]
