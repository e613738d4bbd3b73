"""Rule registry indexing rule descriptors by target key."""

import logging
from collections.abc import Hashable

from validus.models import RuleDescriptor

logger = logging.getLogger(__name__)


class RuleRegistry:
    """Stores rule descriptors in registration order, indexed by target key."""

    def __init__(self):
        self._rules: list[RuleDescriptor] = []
        self._by_target: dict[Hashable, list[RuleDescriptor]] = {}

    def register(self, descriptor: RuleDescriptor) -> RuleDescriptor:
        """Append a descriptor and index it under every target it declares."""
        self._rules.append(descriptor)
        for target in descriptor.target_keys:
            self._by_target.setdefault(target, []).append(descriptor)

        logger.debug(f"Registered {descriptor!r}")
        return descriptor

    def rules_for(self, target: Hashable) -> tuple[RuleDescriptor, ...]:
        """All descriptors declaring target, in registration order."""
        return tuple(self._by_target.get(target, ()))

    def all_rules(self) -> tuple[RuleDescriptor, ...]:
        """Every registered descriptor exactly once, in registration order."""
        seen: set[int] = set()
        rules = []
        for descriptor in self._rules:
            if id(descriptor) not in seen:
                seen.add(id(descriptor))
                rules.append(descriptor)
        return tuple(rules)

    def targets(self) -> list[Hashable]:
        """Every target key with at least one rule."""
        return list(self._by_target)

    def has_rules(self, target: Hashable) -> bool:
        return target in self._by_target

    def remove(self, descriptor: RuleDescriptor) -> bool:
        """Remove every registration of descriptor, purging empty index entries.

        Returns:
            True if the descriptor was registered
        """
        if not any(rule is descriptor for rule in self._rules):
            return False

        self._rules = [rule for rule in self._rules if rule is not descriptor]
        for target in descriptor.target_keys:
            remaining = [rule for rule in self._by_target.get(target, []) if rule is not descriptor]
            if remaining:
                self._by_target[target] = remaining
            else:
                self._by_target.pop(target, None)

        logger.debug(f"Removed {descriptor!r}")
        return True

    def clear(self) -> None:
        self._rules.clear()
        self._by_target.clear()

    def __len__(self) -> int:
        return len(self.all_rules())

    def __contains__(self, descriptor: object) -> bool:
        return any(rule is descriptor for rule in self._rules)
