"""Result types produced by rule evaluation."""

from collections.abc import Hashable, Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any


@dataclass(frozen=True)
class RuleResult:
    """Outcome of a single rule evaluation: valid, or invalid with messages."""
    errors: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        # Accept any iterable of messages, store as a tuple
        object.__setattr__(self, "errors", tuple(self.errors))

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def __bool__(self) -> bool:
        return self.is_valid

    @classmethod
    def valid(cls) -> "RuleResult":
        """Create a passing result."""
        return _VALID

    @classmethod
    def invalid(cls, *messages: str) -> "RuleResult":
        """Create a failing result carrying one or more messages."""
        if not messages:
            raise ValueError("an invalid RuleResult needs at least one message")
        return cls(errors=tuple(str(message) for message in messages))

    @classmethod
    def assert_that(cls, condition: bool, message: str) -> "RuleResult":
        """Valid if condition holds, otherwise invalid with message."""
        return cls.valid() if condition else cls.invalid(message)

    @classmethod
    def combine_all(cls, results: Iterable["RuleResult"]) -> "RuleResult":
        """Fold results left to right with :meth:`combine`."""
        combined = cls.valid()
        for result in results:
            combined = combined.combine(result)
        return combined

    def combine(self, other: "RuleResult") -> "RuleResult":
        """Combine two results, concatenating messages in order."""
        if other.is_valid:
            return self
        if self.is_valid:
            return other
        return RuleResult(errors=self.errors + other.errors)

    def __add__(self, other: "RuleResult") -> "RuleResult":
        if not isinstance(other, RuleResult):
            return NotImplemented
        return self.combine(other)

    def __str__(self) -> str:
        return "valid" if self.is_valid else "; ".join(self.errors)


_VALID = RuleResult()


@dataclass(frozen=True)
class TargetResult:
    """Combined outcome of every rule bound to one target."""
    target: Hashable
    errors: tuple[str, ...] = ()
    pending: bool = False  # an async rule on this target is still running

    def __post_init__(self) -> None:
        object.__setattr__(self, "errors", tuple(self.errors))

    @property
    def is_valid(self) -> bool:
        return not self.errors and not self.pending

    @classmethod
    def empty(cls, target: Hashable) -> "TargetResult":
        """Result for a target with no rules or no evaluation yet."""
        return cls(target=target)

    def to_dict(self) -> dict[str, Any]:
        return {
            "target": str(self.target),
            "is_valid": self.is_valid,
            "pending": self.pending,
            "errors": list(self.errors),
        }


@dataclass(frozen=True, eq=False)
class ValidationResult:
    """Immutable snapshot of the validation state of a whole object.

    Only targets that have at least one registered and evaluated rule appear
    in ``target_results``; any other target is implicitly valid. The result is
    falsy when invalid, so callers can write::

        if not engine.validate_all():
            show(engine.get_result().errors)
    """
    target_results: Mapping[Hashable, TargetResult] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "target_results", MappingProxyType(dict(self.target_results))
        )

    @property
    def is_valid(self) -> bool:
        return all(result.is_valid for result in self.target_results.values())

    @property
    def is_pending(self) -> bool:
        return any(result.pending for result in self.target_results.values())

    @property
    def targets(self) -> list[Hashable]:
        return list(self.target_results)

    @property
    def errors(self) -> list[str]:
        """All messages, target by target in insertion order."""
        return [
            message
            for result in self.target_results.values()
            for message in result.errors
        ]

    def result_for(self, target: Hashable) -> TargetResult:
        """TargetResult for target; unknown targets are valid with no errors."""
        return self.target_results.get(target) or TargetResult.empty(target)

    def errors_for(self, target: Hashable) -> tuple[str, ...]:
        return self.result_for(target).errors

    def changed_targets(self, other: "ValidationResult") -> list[Hashable]:
        """Targets whose TargetResult differs between self and other."""
        changed = []
        for target in list(self.target_results) + [
            t for t in other.target_results if t not in self.target_results
        ]:
            if self.result_for(target) != other.result_for(target):
                changed.append(target)
        return changed

    def __eq__(self, other: object) -> bool:
        """Observable equality: a missing target equals a valid, empty one."""
        if not isinstance(other, ValidationResult):
            return NotImplemented
        return not self.changed_targets(other)

    __hash__ = None

    def __bool__(self) -> bool:
        return self.is_valid

    def __str__(self) -> str:
        return "\n".join(self.errors)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON output."""
        return {
            "is_valid": self.is_valid,
            "is_pending": self.is_pending,
            "targets": {
                str(target): result.to_dict()
                for target, result in self.target_results.items()
            },
        }
