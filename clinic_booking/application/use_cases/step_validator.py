from __future__ import annotations

from clinic_booking.domain.entities.booking_draft import BookingDraft
from clinic_booking.domain.entities.wizard_step import WizardStep


def completion(step: WizardStep, draft: BookingDraft) -> bool:
    if step is WizardStep.clinic:
        return draft.clinic is not None
    if step is WizardStep.services:
        return len(draft.services) > 0
    if step is WizardStep.doctor:
        return draft.doctor is not None
    if step is WizardStep.datetime:
        return draft.date is not None and draft.time is not None
    if step is WizardStep.confirm:
        return (
            draft.clinic is not None
            and draft.doctor is not None
            and draft.date is not None
            and draft.time is not None
            and len(draft.services) > 0
        )
    return False


def first_incomplete_before(step: WizardStep, draft: BookingDraft) -> WizardStep | None:
    """First step preceding `step` whose data is missing, or None when `step` is reachable."""
    for candidate in WizardStep.ordered()[: step.position]:
        if not completion(candidate, draft):
            return candidate
    return None


def is_reachable(step: WizardStep, draft: BookingDraft) -> bool:
    return first_incomplete_before(step, draft) is None


def furthest_reachable(step: WizardStep, draft: BookingDraft) -> WizardStep:
    """Clamp `step` to the furthest step the draft allows."""
    blocker = first_incomplete_before(step, draft)
    return step if blocker is None else blocker


def missing_hint(step: WizardStep, draft: BookingDraft) -> str | None:
    if completion(step, draft):
        return None
    if step is WizardStep.clinic:
        return "select a clinic to continue"
    if step is WizardStep.services:
        return "select at least one service"
    if step is WizardStep.doctor:
        return "select a doctor"
    if step is WizardStep.datetime:
        return "select a date" if draft.date is None else "select a time"
    return "complete all booking details"


def validation_message(step: WizardStep, draft: BookingDraft) -> str | None:
    hint = missing_hint(step, draft)
    return f"Please {hint}" if hint else None
