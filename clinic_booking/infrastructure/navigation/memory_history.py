from __future__ import annotations

import logging
from dataclasses import dataclass

from clinic_booking.application.ports.navigation import RestoreCallback, StepNavigationPort


@dataclass
class HistoryEntry:
    tag: str | None = None


class InMemoryHistory(StepNavigationPort):
    """
    Browser-like history stack.

    Starts with the page the user came from and the booking page itself, both
    untagged. Pushing drops any forward entries. Moving onto an entry fires
    the restore callbacks with its tag; when none of them handles it the move
    counts as leaving the booking flow.
    """

    def __init__(self, entries: list[str | None] | None = None) -> None:
        initial = entries if entries is not None else [None, None]
        self._entries = [HistoryEntry(tag) for tag in initial] or [HistoryEntry()]
        self._index = len(self._entries) - 1
        self._callbacks: list[RestoreCallback] = []
        self.left_flow = False
        self._logger = logging.getLogger(__name__)

    @property
    def index(self) -> int:
        return self._index

    @property
    def tags(self) -> list[str | None]:
        return [entry.tag for entry in self._entries]

    @property
    def current_tag(self) -> str | None:
        return self._entries[self._index].tag

    def push(self, tag: str) -> None:
        del self._entries[self._index + 1 :]
        self._entries.append(HistoryEntry(tag))
        self._index += 1
        self.left_flow = False

    def replace(self, tag: str) -> None:
        self._entries[self._index] = HistoryEntry(tag)

    def on_restore(self, callback: RestoreCallback) -> None:
        self._callbacks.append(callback)

    def back(self) -> bool:
        return self._go(-1)

    def forward(self) -> bool:
        return self._go(1)

    def _go(self, delta: int) -> bool:
        target = self._index + delta
        if target < 0 or target >= len(self._entries):
            return False
        self._index = target
        tag = self._entries[target].tag
        handled = False
        for callback in list(self._callbacks):
            handled = callback(tag) or handled
        self.left_flow = not handled
        self._logger.debug("History moved", extra={"step": tag, "left_flow": self.left_flow})
        return True
