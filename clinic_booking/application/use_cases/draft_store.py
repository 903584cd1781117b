from __future__ import annotations

import logging
from dataclasses import replace
from datetime import date
from typing import Any, Callable, Mapping
from zoneinfo import ZoneInfo

from clinic_booking.application.use_cases import step_validator
from clinic_booking.application.utils.dates import parse_date_value, parse_time_value, today_in
from clinic_booking.core.config import settings
from clinic_booking.domain.entities.booking_draft import MAX_SERVICES, BookingDraft
from clinic_booking.domain.entities.wizard_step import WizardProgress, WizardStep

DRAFT_FIELDS = frozenset({"clinic", "doctor", "date", "time", "services", "notes", "treatment_plan_id"})

DraftListener = Callable[[BookingDraft, BookingDraft], None]
StepListener = Callable[[WizardStep, str], None]  # (step, cause)

MAX_SERVICES_ERROR = f"Maximum {MAX_SERVICES} services can be selected"
PAST_DATE_ERROR = "Cannot book appointments in the past"


class BookingDraftStore:
    """
    Holds the in-progress booking, the current wizard step and the last
    user-visible error. All mutations go through this class; listeners are
    notified synchronously after a change is applied.

    Step change causes: "advance", "retreat", "jump", "restore", "reset" and
    "clamp". An edit that removes data an earlier step collected moves the
    wizard back to that step with cause "clamp".
    """

    def __init__(
        self,
        timezone: ZoneInfo | None = None,
        today: Callable[[], date] | None = None,
    ) -> None:
        tz = timezone or ZoneInfo(settings.BOOKING_TIMEZONE)
        self._today = today or (lambda: today_in(tz))
        self._draft = BookingDraft()
        self._step = WizardStep.clinic
        self.error: str | None = None
        self._draft_listeners: list[DraftListener] = []
        self._step_listeners: list[StepListener] = []
        self._logger = logging.getLogger(__name__)

    @property
    def draft(self) -> BookingDraft:
        return self._draft

    @property
    def step(self) -> WizardStep:
        return self._step

    def subscribe_draft(self, listener: DraftListener) -> None:
        self._draft_listeners.append(listener)

    def subscribe_step(self, listener: StepListener) -> None:
        self._step_listeners.append(listener)

    def set_error(self, message: str | None) -> None:
        self.error = message

    def update_draft(self, changes: Mapping[str, Any] | None = None, **fields: Any) -> bool:
        """
        Merge `changes` into the draft. Returns False (and sets `error`) when
        the result would be invalid; the draft is then left untouched.
        """
        updates = {**(changes or {}), **fields}
        unknown = set(updates) - DRAFT_FIELDS
        if unknown:
            raise ValueError(f"Unknown draft fields: {sorted(unknown)}")

        values: dict[str, Any] = {}
        for name, value in updates.items():
            if name == "date":
                if value is not None:
                    try:
                        value = parse_date_value(value)
                    except ValueError:
                        self.error = "Please select a valid date"
                        return False
            elif name == "time":
                if value is not None:
                    try:
                        value = parse_time_value(value)
                    except ValueError:
                        self.error = "Please select a valid time"
                        return False
            elif name == "services":
                value = tuple(dict.fromkeys(str(s) for s in (value or ())))
            elif name == "notes":
                value = (value or "").strip()
            elif name == "treatment_plan_id":
                value = str(value) if value else None
            values[name] = value

        candidate = replace(self._draft, **values)

        if len(candidate.services) > MAX_SERVICES:
            self.error = MAX_SERVICES_ERROR
            return False

        if "date" in values and candidate.date is not None and candidate.date < self._today():
            self.error = PAST_DATE_ERROR
            return False

        self.error = None
        if candidate == self._draft:
            return True

        previous = self._draft
        self._draft = candidate
        for listener in list(self._draft_listeners):
            listener(previous, candidate)

        target = step_validator.furthest_reachable(self._step, candidate)
        if target is not self._step:
            self._set_step(target, "clamp")
        return True

    def reset_draft(self) -> None:
        previous = self._draft
        self._draft = BookingDraft()
        self.error = None
        if previous != self._draft:
            for listener in list(self._draft_listeners):
                listener(previous, self._draft)
        self._set_step(WizardStep.clinic, "reset")

    def completion(self, step: WizardStep | None = None) -> bool:
        return step_validator.completion(step or self._step, self._draft)

    @property
    def can_advance(self) -> bool:
        return self.completion(self._step)

    def validation_message(self, step: WizardStep | None = None) -> str | None:
        return step_validator.validation_message(step or self._step, self._draft)

    def next_step(self) -> bool:
        target = self._step.next()
        if target is None:
            return False
        if not self.can_advance:
            hint = step_validator.missing_hint(self._step, self._draft)
            self.error = f"Please complete the current step: {hint}."
            return False
        self._set_step(target, "advance")
        return True

    def previous_step(self) -> bool:
        target = self._step.previous()
        if target is None:
            return False
        self._set_step(target, "retreat")
        return True

    def go_to_step(self, step: WizardStep | str) -> bool:
        target = WizardStep(step)
        blocker = step_validator.first_incomplete_before(target, self._draft)
        if blocker is not None:
            hint = step_validator.missing_hint(blocker, self._draft)
            self.error = f"Please complete the {blocker.label} step first: {hint}."
            return False
        if target is not self._step:
            self._set_step(target, "jump")
        else:
            self.error = None
        return True

    def restore_step(self, step: WizardStep) -> WizardStep:
        """Apply a step coming from history, clamped to what the draft allows."""
        target = step_validator.furthest_reachable(step, self._draft)
        self.error = None
        if target is not self._step:
            self._set_step(target, "restore")
        return target

    def progress(self, blocked: bool = False, has_ongoing_treatments: bool = False) -> WizardProgress:
        steps = WizardStep.ordered()
        index = self._step.position
        return WizardProgress(
            current_step=self._step,
            current_step_index=index,
            total_steps=len(steps),
            step_progress=((index + 1) / len(steps)) * 100,
            can_proceed=self.can_advance and not blocked,
            is_complete=self._step is WizardStep.confirm and self.completion(WizardStep.confirm),
            total_services=len(self._draft.services),
            max_services_reached=len(self._draft.services) >= MAX_SERVICES,
            booking_type=self._draft.booking_type,
            has_ongoing_treatments=has_ongoing_treatments,
            is_linked_to_treatment=self._draft.treatment_plan_id is not None,
        )

    def _set_step(self, step: WizardStep, cause: str) -> None:
        self._step = step
        self.error = None
        self._logger.debug("Wizard step changed", extra={"step": step.value, "reason": cause})
        for listener in list(self._step_listeners):
            listener(step, cause)
