from abc import ABC, abstractmethod
from typing import Callable

RestoreCallback = Callable[[str | None], bool]


class StepNavigationPort(ABC):
    @abstractmethod
    def push(self, tag: str) -> None:
        """Add a new navigation entry tagged with a wizard step."""
        raise NotImplementedError

    @abstractmethod
    def replace(self, tag: str) -> None:
        """Re-tag the current navigation entry without adding one."""
        raise NotImplementedError

    @abstractmethod
    def back(self) -> None:
        """Perform a default back navigation."""
        raise NotImplementedError

    @abstractmethod
    def on_restore(self, callback: RestoreCallback) -> None:
        """
        Register the handler for back/forward gestures.
        The callback receives the restored entry's tag (None when the entry
        carries no step) and returns True when it handled the event.
        """
        raise NotImplementedError
