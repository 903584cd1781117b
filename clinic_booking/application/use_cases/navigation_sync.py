from __future__ import annotations

import logging
from typing import Callable

from clinic_booking.application.ports.navigation import StepNavigationPort
from clinic_booking.application.use_cases.draft_store import BookingDraftStore
from clinic_booking.domain.entities.wizard_step import WizardStep


class NavigationSynchronizer:
    """
    Keeps the wizard step and the back/forward gestures of the navigation
    surface in lock-step.

    Mounting writes nothing. The first write of the session replaces the
    current entry and every later wizard-initiated step change pushes one.
    Resets and clamps re-tag the current entry instead. Steps applied from a
    restored entry are never written back.

    Because the first write re-tags the entry the booking page was opened
    on, one back gesture from the services step leaves the flow rather than
    returning to the clinic step. Every later step keeps its own entry.
    """

    def __init__(
        self,
        store: BookingDraftStore,
        port: StepNavigationPort,
        on_exit: Callable[[], None] | None = None,
    ) -> None:
        self._store = store
        self._port = port
        self._on_exit = on_exit
        self._mounted = False
        self._has_written = False
        self._logger = logging.getLogger(__name__)

    @property
    def mounted(self) -> bool:
        return self._mounted

    @property
    def port(self) -> StepNavigationPort:
        return self._port

    def mount(self) -> None:
        if self._mounted:
            return
        self._mounted = True
        self._store.subscribe_step(self._on_step_change)
        self._port.on_restore(self._on_restore)

    def leave(self) -> None:
        """Hand a "previous" gesture at the first step over to default navigation."""
        self._port.back()

    def _on_step_change(self, step: WizardStep, cause: str) -> None:
        if cause == "restore":
            return
        if not self._has_written or cause in ("reset", "clamp"):
            self._port.replace(step.value)
            self._has_written = True
            return
        self._port.push(step.value)

    def _on_restore(self, tag: str | None) -> bool:
        step = WizardStep.from_tag(tag)
        if step is None:
            self._logger.info("Navigation left the booking flow", extra={"step": self._store.step.value})
            if self._on_exit is not None:
                self._on_exit()
            return False

        applied = self._store.restore_step(step)
        if applied is not step:
            # The draft no longer supports the restored step; re-tag the entry.
            self._port.replace(applied.value)
        self._has_written = True
        return True
