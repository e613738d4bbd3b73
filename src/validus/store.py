"""Result store holding the current validation snapshot.

The store keeps, per target, the last settled RuleResult of every rule that
contributed to it, the rules still pending, and for every rule the sequence
number of the newest evaluation that ran it on that target. A rule's result
carrying an older sequence number than that claim is stale and is dropped
without a trace beyond a debug log. Rules a newer evaluation did not run keep
their claim, so their pending work still settles the target.
"""

import logging
import threading
from collections.abc import Hashable, Iterable, Mapping
from dataclasses import dataclass, field

from validus.models import RuleDescriptor, RuleResult, TargetResult, ValidationResult
from validus.notifier import ChangeNotifier
from validus.registry import RuleRegistry

logger = logging.getLogger(__name__)


@dataclass
class TargetUpdate:
    """One target's share of an evaluation write.

    Every rule in ``results`` or ``pending`` is claimed by the writing
    evaluation. Claimed rules in ``pending`` are still running; claimed rules
    in ``results`` have settled. ``None`` and an empty ``pending`` behave the
    same.
    """
    target: Hashable
    results: Mapping[RuleDescriptor, RuleResult] = field(default_factory=dict)
    pending: Iterable[RuleDescriptor] | None = None


@dataclass
class _TargetState:
    slots: dict[RuleDescriptor, RuleResult] = field(default_factory=dict)
    pending: set[RuleDescriptor] = field(default_factory=set)
    claims: dict[RuleDescriptor, int] = field(default_factory=dict)
    sequence: int = 0


class ResultStore:
    """Last-known results per target plus the aggregate ValidationResult."""

    def __init__(self, registry: RuleRegistry, notifier: ChangeNotifier | None = None):
        self._registry = registry
        self._notifier = notifier or ChangeNotifier()
        self._states: dict[Hashable, _TargetState] = {}
        self._floor = 0
        self._current = ValidationResult()
        self._lock = threading.RLock()

    @property
    def notifier(self) -> ChangeNotifier:
        return self._notifier

    def current_result(self) -> ValidationResult:
        """The published snapshot; never a partially updated view."""
        return self._current

    def result_for(self, target: Hashable) -> TargetResult:
        return self._current.result_for(target)

    def last_sequence(self, target: Hashable) -> int:
        with self._lock:
            state = self._states.get(target)
            return max(state.sequence if state else 0, self._floor)

    def apply(
        self,
        target: Hashable,
        results: Mapping[RuleDescriptor, RuleResult],
        sequence: int,
        pending: Iterable[RuleDescriptor] | None = None,
    ) -> bool:
        """Write one target's results tagged with sequence.

        Returns:
            True if the write was accepted, False if it was stale
        """
        accepted = self.apply_batch([TargetUpdate(target, results, pending)], sequence)
        return target in accepted

    def apply_batch(self, updates: Iterable[TargetUpdate], sequence: int) -> list[Hashable]:
        """Write several targets at once, gating each target independently.

        The aggregate is rebuilt and published once, and observers are
        notified at most once for the whole batch.

        Returns:
            Targets whose write was accepted
        """
        accepted = []
        with self._lock:
            for update in updates:
                if self._write(update, sequence):
                    accepted.append(update.target)
            if not accepted:
                return accepted
            old, new = self._publish()

        self._notify_if_changed(old, new)
        return accepted

    def forget(self, descriptor: RuleDescriptor) -> None:
        """Drop every stored result of a rule that is no longer registered."""
        with self._lock:
            for target in descriptor.target_keys:
                state = self._states.get(target)
                if state is None:
                    continue
                state.slots.pop(descriptor, None)
                state.pending.discard(descriptor)
                state.claims.pop(descriptor, None)
                if not state.slots and not state.pending:
                    del self._states[target]
            old, new = self._publish()

        self._notify_if_changed(old, new)

    def reset(self, sequence: int) -> None:
        """Clear every stored result and reject writes older than sequence."""
        with self._lock:
            self._states.clear()
            self._floor = max(self._floor, sequence)
            old, new = self._publish()

        self._notify_if_changed(old, new)

    def _write(self, update: TargetUpdate, sequence: int) -> bool:
        target = update.target
        if sequence < self._floor:
            logger.debug(f"Discarding stale result for {target!r}: sequence {sequence} < {self._floor}")
            return False

        state = self._states.get(target) or _TargetState()
        registered = set(self._registry.rules_for(target))
        running = set(update.pending or ())
        claimed = {d for d in (*update.results, *running) if d in registered}
        fresh = {d for d in claimed if sequence >= state.claims.get(d, 0)}
        if claimed and not fresh:
            logger.debug(f"Discarding stale result for {target!r}: sequence {sequence} was superseded")
            return False
        if len(fresh) < len(claimed):
            logger.debug(f"Discarding {len(claimed) - len(fresh)} superseded results for {target!r}")

        self._states[target] = state
        state.sequence = max(state.sequence, sequence)
        for descriptor in fresh:
            state.claims[descriptor] = sequence
            if descriptor in running:
                state.pending.add(descriptor)
            else:
                state.slots[descriptor] = update.results[descriptor]
                state.pending.discard(descriptor)
        return True

    def _publish(self) -> tuple[ValidationResult, ValidationResult]:
        target_results = {}
        for target, state in self._states.items():
            rules = self._registry.rules_for(target)
            if not rules:
                continue
            combined = RuleResult.combine_all(state.slots.get(rule, RuleResult.valid()) for rule in rules)
            target_results[target] = TargetResult(
                target=target,
                errors=combined.errors,
                pending=bool(state.pending),
            )

        old = self._current
        self._current = ValidationResult(target_results)
        return old, self._current

    def _notify_if_changed(self, old: ValidationResult, new: ValidationResult) -> None:
        if old == new:
            return
        logger.debug(f"Validation result changed for {old.changed_targets(new)}")
        self._notifier.notify(old, new)
