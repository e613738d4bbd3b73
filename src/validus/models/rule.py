"""Rule descriptor model."""

import inspect
import itertools
from collections.abc import Callable, Hashable, Iterable
from dataclasses import dataclass, field
from typing import Any

_rule_ids = itertools.count(1)


def normalize_targets(targets: Hashable | Iterable[Hashable]) -> tuple[Hashable, ...]:
    """Turn a single key or an iterable of keys into an ordered, de-duplicated tuple.

    Strings are treated as a single key, not as an iterable of characters.
    """
    if isinstance(targets, (str, bytes)) or not isinstance(targets, Iterable):
        keys = (targets,)
    else:
        keys = tuple(targets)
    return tuple(dict.fromkeys(keys))


@dataclass(frozen=True, eq=False)
class RuleDescriptor:
    """A registered unit of validation logic bound to one or more targets.

    Descriptors compare and hash by identity: a rule bound to several targets
    is one object, however many index entries point at it.
    """
    target_keys: tuple[Hashable, ...]
    evaluate: Callable[[], Any]
    is_async: bool = False
    name: str | None = None
    rule_id: str = field(default_factory=lambda: f"rule-{next(_rule_ids)}")

    def __post_init__(self) -> None:
        keys = normalize_targets(self.target_keys)
        if not keys:
            raise ValueError("a rule must declare at least one target")
        if not callable(self.evaluate):
            raise TypeError(f"evaluate must be callable, got {type(self.evaluate).__name__}")
        object.__setattr__(self, "target_keys", keys)
        if not self.is_async and inspect.iscoroutinefunction(self.evaluate):
            object.__setattr__(self, "is_async", True)

    @property
    def display_name(self) -> str:
        return self.name or self.rule_id

    def covers(self, target: Hashable) -> bool:
        return target in self.target_keys

    def __repr__(self) -> str:
        targets = ", ".join(str(key) for key in self.target_keys)
        return f"RuleDescriptor({self.display_name!r}, targets=[{targets}], async={self.is_async})"
