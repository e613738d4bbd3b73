"""Read-only error-info projection for UI binding layers."""

from collections.abc import Callable, Hashable

from validus.engine import ValidationEngine
from validus.models import ValidationResult


class ErrorInfoAdapter:
    """Answers "which errors does this target have" from the engine's current result.

    Holds no validation state of its own; every query reads the engine's
    published snapshot.

    Both ``has_errors`` flags count error messages only: a target whose
    asynchronous rules are still pending has no errors until one reports one,
    even though it is not valid yet.
    """

    def __init__(self, engine: ValidationEngine):
        self.engine = engine

    @property
    def has_errors(self) -> bool:
        return bool(self.get_errors())

    def has_errors_for(self, target: Hashable) -> bool:
        return bool(self.get_errors(target))

    def get_errors(self, target: Hashable | None = None) -> list[str]:
        """Messages for target, or for the whole object when target is None."""
        result = self.engine.get_result()
        if target is None:
            return result.errors
        return list(result.errors_for(target))

    def subscribe(self, callback: Callable[[Hashable], None]):
        """Call callback(target) for every target whose result changed.

        Returns the underlying observer, which is what :meth:`unsubscribe` takes.
        """
        def on_change(old: ValidationResult, new: ValidationResult) -> None:
            for target in old.changed_targets(new):
                callback(target)

        return self.engine.subscribe(on_change)

    def unsubscribe(self, observer) -> bool:
        return self.engine.unsubscribe(observer)
