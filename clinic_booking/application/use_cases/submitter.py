from __future__ import annotations

import logging
from dataclasses import dataclass

from clinic_booking.application.exceptions import NotAuthenticatedError
from clinic_booking.application.ports.booking_backend import BookingBackendPort
from clinic_booking.application.ports.identity import IdentityPort
from clinic_booking.application.use_cases import step_validator
from clinic_booking.application.use_cases.draft_store import MAX_SERVICES_ERROR, BookingDraftStore
from clinic_booking.application.use_cases.limit_guard import (
    ConflictLimitGuard,
    conflict_message,
    pending_limit_message,
)
from clinic_booking.domain.entities.booking_draft import MAX_SERVICES, BookingDraft
from clinic_booking.domain.entities.booking_result import BookingRejection, BookingResult
from clinic_booking.domain.entities.limit_status import AppointmentLimitStatus, LimitReason
from clinic_booking.domain.entities.refs import AppointmentRef
from clinic_booking.domain.entities.wizard_step import WizardStep

CONFLICT_REASONS = frozenset({"daily_limit_exceeded", "same_day_conflict"})
PENDING_LIMIT_REASONS = frozenset({"pending_limit_exceeded"})

GENERIC_FAILURE = "Failed to book appointment. Please try again."
LOGIN_REQUIRED = "Please log in to continue"
PATIENTS_ONLY = "Only patients can book appointments"


@dataclass(frozen=True)
class SubmitOutcome:
    status: str  # "success", "invalid", "rejected", "failed", "ignored"
    message: str | None = None
    result: BookingResult | None = None
    reason: str | None = None
    conflicting_appointment: AppointmentRef | None = None

    @property
    def success(self) -> bool:
        return self.status == "success"


class BookingSubmitter:
    """Commits the draft. At most one commit runs per session."""

    def __init__(
        self,
        backend: BookingBackendPort,
        store: BookingDraftStore,
        guard: ConflictLimitGuard,
        identity: IdentityPort,
    ) -> None:
        self._backend = backend
        self._store = store
        self._guard = guard
        self._identity = identity
        self._in_flight = False
        self._logger = logging.getLogger(__name__)

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    async def submit(self) -> SubmitOutcome:
        if self._in_flight:
            self._logger.info("Submit ignored, a booking is already in flight")
            return SubmitOutcome(status="ignored", message="A booking is already being submitted")

        self._in_flight = True
        try:
            return await self._submit()
        finally:
            self._in_flight = False

    async def _submit(self) -> SubmitOutcome:
        invalid = self._check_draft(self._store.draft)
        if invalid is not None:
            return invalid

        draft = self._store.draft
        check_failed = self._guard.check_failed
        if check_failed or not self._guard.is_current_for(draft.clinic_id, draft.date):
            await self._guard.refresh(draft.clinic_id, draft.date, force=check_failed)
            if self._store.draft != draft:
                return self._invalid("Your booking details changed. Please review them and submit again.")

        if self._guard.blocks_submit:
            status = self._guard.status
            message = self._guard.block_message()
            self._store.set_error(message)
            return SubmitOutcome(
                status="invalid",
                message=message,
                reason=status.reason.value if status else None,
                conflicting_appointment=self._guard.conflicting_appointment,
            )

        try:
            outcome = await self._backend.commit_booking(
                clinic_id=draft.clinic_id,
                doctor_id=draft.doctor_id,
                appointment_date=draft.date,
                appointment_time=draft.time,
                service_ids=list(draft.services),
                notes=draft.notes or None,
                treatment_plan_id=draft.treatment_plan_id,
            )
        except NotAuthenticatedError:
            self._store.set_error(LOGIN_REQUIRED)
            return SubmitOutcome(status="failed", message=LOGIN_REQUIRED, reason="not_authenticated")
        except Exception as e:
            self._logger.error("Error committing booking", extra={"clinic_id": draft.clinic_id, "error": str(e)})
            self._store.set_error(GENERIC_FAILURE)
            return SubmitOutcome(status="failed", message=GENERIC_FAILURE)

        if isinstance(outcome, BookingRejection):
            return self._reconcile(draft, outcome)

        self._logger.info(
            "Appointment booked",
            extra={"appointment_id": outcome.appointment_id, "clinic_id": draft.clinic_id},
        )
        self._store.reset_draft()
        return SubmitOutcome(
            status="success",
            message=outcome.message or "Appointment booked successfully",
            result=outcome,
        )

    def _check_draft(self, draft: BookingDraft) -> SubmitOutcome | None:
        if not self._identity.is_patient():
            return self._invalid(PATIENTS_ONLY)

        if not step_validator.completion(WizardStep.confirm, draft):
            for step in WizardStep.ordered():
                message = step_validator.validation_message(step, draft)
                if message and step is not WizardStep.confirm:
                    return self._invalid(message)
            return self._invalid("Please complete all booking details")

        if len(draft.services) > MAX_SERVICES:
            return self._invalid(MAX_SERVICES_ERROR)
        return None

    def _reconcile(self, draft: BookingDraft, rejection: BookingRejection) -> SubmitOutcome:
        appointment = rejection.conflicting_appointment
        if rejection.reason in CONFLICT_REASONS:
            self._guard.record_rejection(
                draft.clinic_id,
                draft.date,
                LimitReason.daily_limit_exceeded,
                conflicting_appointment=appointment,
                message=rejection.message,
            )
            message = conflict_message(appointment)
        elif rejection.reason in PENDING_LIMIT_REASONS:
            self._guard.record_rejection(
                draft.clinic_id,
                draft.date,
                LimitReason.pending_limit_exceeded,
                message=rejection.message,
            )
            message = pending_limit_message(
                AppointmentLimitStatus(
                    allowed=False,
                    reason=LimitReason.pending_limit_exceeded,
                    message=rejection.message,
                )
            )
        else:
            message = rejection.message or "Booking failed"

        self._logger.info("Booking rejected", extra={"reason": rejection.reason, "clinic_id": draft.clinic_id})
        self._store.set_error(message)
        return SubmitOutcome(
            status="rejected",
            message=message,
            reason=rejection.reason,
            conflicting_appointment=appointment,
        )

    def _invalid(self, message: str) -> SubmitOutcome:
        self._store.set_error(message)
        return SubmitOutcome(status="invalid", message=message)
