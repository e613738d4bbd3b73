"""Change notification for validation results."""

import logging
from collections.abc import Callable

from validus.models import ValidationResult

logger = logging.getLogger(__name__)

Observer = Callable[[ValidationResult, ValidationResult], None]


class ChangeNotifier:
    """Per-engine subscription point for (old, new) result transitions."""

    def __init__(self):
        self._observers: list[Observer] = []

    def subscribe(self, observer: Observer) -> Observer:
        """Register observer; it is called as observer(old, new).

        Returns the observer so the method can be used as a decorator.
        """
        if not callable(observer):
            raise TypeError("observer must be callable")
        self._observers.append(observer)
        return observer

    def unsubscribe(self, observer: Observer) -> bool:
        """Remove observer. Returns False if it was not subscribed."""
        try:
            self._observers.remove(observer)
        except ValueError:
            return False
        return True

    def clear(self) -> None:
        self._observers.clear()

    @property
    def observer_count(self) -> int:
        return len(self._observers)

    def notify(self, old: ValidationResult, new: ValidationResult) -> None:
        """Deliver a transition to every observer, in subscription order."""
        for observer in list(self._observers):
            try:
                observer(old, new)
            except Exception:
                logger.exception(f"Validation observer {observer!r} failed")
