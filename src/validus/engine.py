"""Validation engine: rule registration, evaluation and result publication.

Every validation call is one *evaluation run* tagged with a sequence number
drawn from an engine-wide counter. A run invokes its rules inline, publishes
the synchronous outcomes immediately (targets with asynchronous rules still
running are published as pending), and writes each asynchronous outcome when
it arrives. The result store keeps, per target and rule, the newest run that
ran the rule there, so a slow run that was overtaken by a later one cannot
overwrite fresher results.

Three entry point families share that core:

- ``validate`` / ``validate_all`` block until settled (outside an event loop)
- ``validate_async`` / ``validate_all_async`` are awaited until settled
- ``begin_validate`` / ``begin_validate_all`` return a :class:`PendingEvaluation`
"""

import asyncio
import inspect
import itertools
import logging
from collections.abc import Awaitable, Callable, Hashable, Iterable
from typing import Any

from validus.config import ValidusConfig, create_default_config
from validus.diagnostics import FaultCollector
from validus.models import RuleDescriptor, RuleResult, TargetResult, ValidationResult
from validus.notifier import ChangeNotifier, Observer
from validus.registry import RuleRegistry
from validus.store import ResultStore, TargetUpdate

logger = logging.getLogger(__name__)


class _AllTargets:
    def __repr__(self) -> str:
        return "ALL_TARGETS"


ALL_TARGETS = _AllTargets()


class PendingEvaluation:
    """Handle for one evaluation run.

    Await it (or use :meth:`add_done_callback`) to get the ValidationResult
    once every asynchronous rule of the run has settled.
    """

    def __init__(self, sequence: int, scope: Any, targets: tuple[Hashable, ...],
                 provisional: ValidationResult):
        self.sequence = sequence
        self.scope = scope
        self.targets = targets
        self.provisional = provisional
        self._result: ValidationResult | None = None
        self._future: asyncio.Future | None = None
        self._callbacks: list[Callable[[ValidationResult], None]] = []

    def done(self) -> bool:
        return self._result is not None

    def result(self) -> ValidationResult:
        """Settled result; raises if the run is still in flight."""
        if self._result is None:
            raise asyncio.InvalidStateError(f"evaluation {self.sequence} has not settled")
        return self._result

    def add_done_callback(self, callback: Callable[[ValidationResult], None]) -> None:
        """Call callback(result) once settled, immediately if already settled."""
        if self._result is not None:
            callback(self._result)
        else:
            self._callbacks.append(callback)

    async def wait(self) -> ValidationResult:
        if self._result is None and self._future is not None:
            await asyncio.shield(self._future)
        return self.result()

    def __await__(self):
        return self.wait().__await__()

    def _attach(self, loop: asyncio.AbstractEventLoop) -> None:
        self._future = loop.create_future()

    def _complete(self, result: ValidationResult) -> None:
        if self._result is not None:
            return
        self._result = result
        if self._future is not None and not self._future.done():
            self._future.set_result(result)
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            try:
                callback(result)
            except Exception:
                logger.exception(f"Completion callback of evaluation {self.sequence} failed")

    def __repr__(self) -> str:
        state = "done" if self.done() else "pending"
        return f"PendingEvaluation(sequence={self.sequence}, scope={self.scope!r}, {state})"


class ValidationEngine:
    """Rule registry, result store and change notifier of one host object."""

    def __init__(self, config: ValidusConfig | None = None):
        self.config = config or create_default_config()
        self._registry = RuleRegistry()
        self._notifier = ChangeNotifier()
        self._store = ResultStore(self._registry, self._notifier)
        self._faults = FaultCollector(self.config.engine.max_faults)
        self._sequence = itertools.count(1)
        self._in_flight: dict[int, PendingEvaluation] = {}
        self._tasks: set[asyncio.Task] = set()
        self._closed = False

    @property
    def registry(self) -> RuleRegistry:
        return self._registry

    @property
    def store(self) -> ResultStore:
        return self._store

    @property
    def notifier(self) -> ChangeNotifier:
        return self._notifier

    @property
    def faults(self) -> FaultCollector:
        return self._faults

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def in_flight(self) -> list[PendingEvaluation]:
        """Evaluations still waiting for asynchronous rules."""
        return list(self._in_flight.values())

    @property
    def is_validating(self) -> bool:
        return bool(self._in_flight)

    # Rule registration

    def add_rule(self, targets: Hashable | Iterable[Hashable],
                 evaluate: Callable[[], RuleResult | Awaitable[RuleResult]],
                 *, name: str | None = None) -> RuleDescriptor:
        """Bind evaluate to one or more targets.

        Coroutine functions are detected and registered as asynchronous.
        """
        return self._registry.register(RuleDescriptor(targets, evaluate, name=name))

    def add_async_rule(self, targets: Hashable | Iterable[Hashable],
                       evaluate: Callable[[], Awaitable[RuleResult]],
                       *, name: str | None = None) -> RuleDescriptor:
        """Bind an awaitable-returning evaluate to one or more targets."""
        return self._registry.register(RuleDescriptor(targets, evaluate, is_async=True, name=name))

    def add_required_rule(self, target: Hashable, getter: Callable[[], Any],
                          message: str | None = None) -> RuleDescriptor:
        """Shortcut for a rule failing when getter() returns None or an empty string."""
        message = message or f"{target} is required"

        def required() -> RuleResult:
            value = getter()
            return RuleResult.assert_that(value is not None and value != "", message)

        return self.add_rule(target, required, name=f"required:{target}")

    def remove_rule(self, descriptor: RuleDescriptor) -> bool:
        """Unregister a rule and drop its stored results."""
        removed = self._registry.remove(descriptor)
        if removed:
            self._store.forget(descriptor)
        return removed

    def remove_all_rules(self) -> None:
        self._registry.clear()
        self._store.reset(next(self._sequence))

    # Validation

    def validate(self, target: Hashable) -> ValidationResult:
        """Validate one target and return the settled result.

        Inside a running event loop this cannot block: asynchronous rules are
        scheduled and the provisional result is returned.
        """
        return self._run_blocking(target, self._registry.rules_for(target))

    def validate_all(self) -> ValidationResult:
        """Validate every rule once and return the settled result."""
        return self._run_blocking(ALL_TARGETS, self._registry.all_rules())

    async def validate_async(self, target: Hashable) -> ValidationResult:
        return await self._run_async(target, self._registry.rules_for(target))

    async def validate_all_async(self) -> ValidationResult:
        return await self._run_async(ALL_TARGETS, self._registry.all_rules())

    def begin_validate(self, target: Hashable) -> PendingEvaluation:
        """Start validating one target without waiting for asynchronous rules.

        Outside an event loop there is nothing to defer to, so the returned
        evaluation has already settled.
        """
        return self._begin(target, self._registry.rules_for(target))

    def begin_validate_all(self) -> PendingEvaluation:
        return self._begin(ALL_TARGETS, self._registry.all_rules())

    # Results

    def get_result(self, target: Hashable | None = None) -> ValidationResult:
        """Current result for the whole object, or restricted to one target.

        Never triggers evaluation.
        """
        current = self._store.current_result()
        if target is None:
            return current
        if target in current.target_results:
            return ValidationResult({target: current.target_results[target]})
        return ValidationResult()

    def get_target_result(self, target: Hashable) -> TargetResult:
        return self._store.result_for(target)

    def subscribe(self, observer: Observer) -> Observer:
        return self._notifier.subscribe(observer)

    def unsubscribe(self, observer: Observer) -> bool:
        return self._notifier.unsubscribe(observer)

    def reset(self) -> None:
        """Forget every stored result; in-flight evaluations become stale."""
        self._store.reset(next(self._sequence))

    def close(self) -> None:
        """Detach the engine from its host.

        Late asynchronous completions are dropped and later validation calls
        return the current result without evaluating anything.
        """
        if self._closed:
            return
        self._closed = True
        self._notifier.clear()
        logger.debug(f"Engine closed with {len(self._in_flight)} evaluations in flight")

    # Evaluation core

    def _start(self, scope: Any, descriptors: tuple[RuleDescriptor, ...]
               ) -> tuple[PendingEvaluation, dict[RuleDescriptor, Awaitable]]:
        sequence = next(self._sequence)
        logger.debug(f"Evaluation {sequence} for {scope!r}: {len(descriptors)} rules")

        settled: dict[RuleDescriptor, RuleResult] = {}
        awaiting: dict[RuleDescriptor, Awaitable] = {}
        for descriptor in descriptors:
            if descriptor in settled or descriptor in awaiting:
                continue
            outcome = self._invoke(descriptor, sequence)
            if inspect.isawaitable(outcome):
                awaiting[descriptor] = outcome
            else:
                settled[descriptor] = outcome

        targets = tuple(dict.fromkeys(
            target for descriptor in descriptors for target in descriptor.target_keys
        ))
        updates = [
            TargetUpdate(
                target,
                {d: result for d, result in settled.items() if d.covers(target)},
                pending=[d for d in awaiting if d.covers(target)],
            )
            for target in targets
        ]
        self._store.apply_batch(updates, sequence)

        evaluation = PendingEvaluation(sequence, scope, targets, self._snapshot(scope, targets))
        return evaluation, awaiting

    def _snapshot(self, scope: Any, targets: Iterable[Hashable]) -> ValidationResult:
        """Current result, restricted to targets unless the scope is everything."""
        current = self._store.current_result()
        if scope is ALL_TARGETS:
            return current
        return ValidationResult({
            target: current.target_results[target]
            for target in targets
            if target in current.target_results
        })

    def _invoke(self, descriptor: RuleDescriptor, sequence: int) -> RuleResult | Awaitable:
        try:
            outcome = descriptor.evaluate()
        except Exception as e:
            return self._fault(descriptor, e, sequence)
        if inspect.isawaitable(outcome):
            return outcome
        if descriptor.is_async:
            error = TypeError(f"async rule returned {type(outcome).__name__}, expected an awaitable")
            return self._fault(descriptor, error, sequence)
        return self._coerce(descriptor, outcome, sequence)

    def _coerce(self, descriptor: RuleDescriptor, outcome: Any, sequence: int) -> RuleResult:
        if isinstance(outcome, RuleResult):
            return outcome
        error = TypeError(f"rule returned {type(outcome).__name__}, expected RuleResult")
        return self._fault(descriptor, error, sequence)

    def _fault(self, descriptor: RuleDescriptor, error: BaseException, sequence: int) -> RuleResult:
        logger.error(f"Rule {descriptor.display_name} failed with error: {error}")
        if self.config.engine.collect_faults:
            self._faults.collect_fault(
                error, descriptor.rule_id, descriptor.display_name,
                descriptor.target_keys, sequence,
            )
        return RuleResult.invalid(self.config.engine.fault_message)

    async def _settle(self, descriptor: RuleDescriptor, awaitable: Awaitable, sequence: int) -> None:
        try:
            outcome = await awaitable
        except Exception as e:
            result = self._fault(descriptor, e, sequence)
        else:
            result = self._coerce(descriptor, outcome, sequence)

        if self._closed:
            logger.debug(f"Dropping result of {descriptor.display_name}: engine closed")
            return

        self._store.apply_batch(
            [TargetUpdate(target, {descriptor: result}) for target in descriptor.target_keys],
            sequence,
        )

    async def _settle_all(self, evaluation: PendingEvaluation,
                          awaiting: dict[RuleDescriptor, Awaitable]) -> ValidationResult:
        self._in_flight[evaluation.sequence] = evaluation
        try:
            await asyncio.gather(*(
                self._settle(descriptor, awaitable, evaluation.sequence)
                for descriptor, awaitable in awaiting.items()
            ))
        finally:
            self._in_flight.pop(evaluation.sequence, None)
        evaluation._complete(self._snapshot(evaluation.scope, evaluation.targets))
        return evaluation.result()

    def _schedule(self, evaluation: PendingEvaluation,
                  awaiting: dict[RuleDescriptor, Awaitable],
                  loop: asyncio.AbstractEventLoop) -> None:
        evaluation._attach(loop)
        self._in_flight[evaluation.sequence] = evaluation
        task = loop.create_task(self._settle_all(evaluation, awaiting))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _settled_without_run(self, scope: Any) -> PendingEvaluation:
        targets = () if scope is ALL_TARGETS else (scope,)
        snapshot = self._snapshot(scope, targets)
        evaluation = PendingEvaluation(0, scope, targets, snapshot)
        evaluation._complete(snapshot)
        return evaluation

    def _run_blocking(self, scope: Any, descriptors: tuple[RuleDescriptor, ...]) -> ValidationResult:
        if self._closed or not descriptors:
            return self._settled_without_run(scope).result()

        evaluation, awaiting = self._start(scope, descriptors)
        if not awaiting:
            evaluation._complete(evaluation.provisional)
            return evaluation.result()

        loop = _running_loop()
        if loop is None:
            return asyncio.run(self._settle_all(evaluation, awaiting))

        logger.debug(f"Evaluation {evaluation.sequence} deferred {len(awaiting)} rules to the running loop")
        self._schedule(evaluation, awaiting, loop)
        return evaluation.provisional

    async def _run_async(self, scope: Any, descriptors: tuple[RuleDescriptor, ...]) -> ValidationResult:
        if self._closed or not descriptors:
            return self._settled_without_run(scope).result()

        evaluation, awaiting = self._start(scope, descriptors)
        if not awaiting:
            evaluation._complete(evaluation.provisional)
            return evaluation.result()
        # Cancelling the caller must not cancel rule work.
        self._schedule(evaluation, awaiting, asyncio.get_running_loop())
        return await evaluation

    def _begin(self, scope: Any, descriptors: tuple[RuleDescriptor, ...]) -> PendingEvaluation:
        if self._closed or not descriptors:
            return self._settled_without_run(scope)

        evaluation, awaiting = self._start(scope, descriptors)
        if not awaiting:
            evaluation._complete(evaluation.provisional)
            return evaluation

        loop = _running_loop()
        if loop is None:
            asyncio.run(self._settle_all(evaluation, awaiting))
        else:
            self._schedule(evaluation, awaiting, loop)
        return evaluation


def _running_loop() -> asyncio.AbstractEventLoop | None:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None
