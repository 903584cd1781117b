from __future__ import annotations

import logging
from datetime import date

from clinic_booking.application.ports.booking_backend import BookingBackendPort
from clinic_booking.application.ports.identity import IdentityPort
from clinic_booking.application.utils.keyed_runner import LatestKeyRunner
from clinic_booking.domain.entities.limit_status import AppointmentLimitStatus, LimitReason
from clinic_booking.domain.entities.refs import AppointmentRef

LimitKey = tuple[str | None, date | None]

LIMIT_CHECK_FAILED = "Unable to verify appointment limits"


def conflict_message(appointment: AppointmentRef | None) -> str:
    if appointment is None:
        return (
            "You already have an appointment scheduled for this date. "
            "Please cancel it first or choose another date."
        )
    return (
        f"You already have {appointment.describe()}. "
        "Only one appointment per day is allowed across all clinics. "
        "Please cancel it first or choose another date."
    )


def pending_limit_message(status: AppointmentLimitStatus) -> str:
    if status.pending_limit:
        return (
            f"You have reached the maximum of {status.pending_limit} pending appointments. "
            "Please wait for an existing appointment to be confirmed or completed."
        )
    return status.message or "You have reached the maximum number of pending appointments."


class ConflictLimitGuard:
    """
    Checks the patient-level booking policies for (clinic, date) ahead of a
    commit: one appointment per day across every clinic, and a cap on
    pending appointments. Both must pass.
    """

    def __init__(self, backend: BookingBackendPort, identity: IdentityPort) -> None:
        self._backend = backend
        self._identity = identity
        self._runner: LatestKeyRunner[LimitKey, AppointmentLimitStatus | None] = LatestKeyRunner(
            self._compute, None, name="limit_guard"
        )
        self._logger = logging.getLogger(__name__)

    @property
    def status(self) -> AppointmentLimitStatus | None:
        return self._runner.value

    @property
    def key(self) -> LimitKey | None:
        return self._runner.resolved_key

    @property
    def is_checking(self) -> bool:
        return self._runner.is_running

    @property
    def conflicting_appointment(self) -> AppointmentRef | None:
        status = self._runner.value
        if status is None or status.reason is not LimitReason.daily_limit_exceeded:
            return None
        return status.conflicting_appointment

    @property
    def check_failed(self) -> bool:
        """The last check could not reach the backend; the next refresh must re-query."""
        status = self._runner.value
        return status is not None and status.reason is LimitReason.error

    @property
    def blocks_submit(self) -> bool:
        status = self._runner.value
        return status is not None and not status.allowed

    def is_current_for(self, clinic_id: str | None, appointment_date: date | None) -> bool:
        return self._runner.is_current_for((clinic_id, appointment_date))

    def block_message(self) -> str | None:
        status = self._runner.value
        if status is None or status.allowed:
            return None
        if status.reason is LimitReason.daily_limit_exceeded:
            return conflict_message(status.conflicting_appointment)
        if status.reason is LimitReason.pending_limit_exceeded:
            return pending_limit_message(status)
        if status.reason is LimitReason.error:
            return f"{LIMIT_CHECK_FAILED}. Please try again."
        return status.message or "Booking is not allowed for this date."

    async def check_limits(self, clinic_id: str | None, appointment_date: date | None) -> AppointmentLimitStatus:
        """One remote limit check, without touching the guard's snapshot."""
        patient_id = self._identity.current_patient_id()
        if not clinic_id or not self._identity.is_patient() or not patient_id:
            return AppointmentLimitStatus.unrestricted()

        try:
            status = await self._backend.check_appointment_limit(patient_id, clinic_id, appointment_date)
        except Exception as e:
            self._logger.error(
                "Error checking appointment limits",
                extra={"clinic_id": clinic_id, "error": str(e)},
            )
            return AppointmentLimitStatus(allowed=False, reason=LimitReason.error, message=LIMIT_CHECK_FAILED)

        if not status.allowed:
            self._logger.info(
                "Appointment limit reached",
                extra={"clinic_id": clinic_id, "reason": status.reason.value},
            )
        return status

    async def refresh(
        self,
        clinic_id: str | None,
        appointment_date: date | None,
        force: bool = False,
    ) -> AppointmentLimitStatus:
        status = await self._runner.run((clinic_id, appointment_date), force=force)
        return status or AppointmentLimitStatus.unrestricted()

    def record_rejection(
        self,
        clinic_id: str | None,
        appointment_date: date | None,
        reason: LimitReason,
        conflicting_appointment: AppointmentRef | None = None,
        message: str | None = None,
    ) -> None:
        """Store a commit-time rejection as the snapshot for (clinic, date)."""
        self._runner.assign(
            (clinic_id, appointment_date),
            AppointmentLimitStatus(
                allowed=False,
                reason=reason,
                message=message,
                conflicting_appointment=conflicting_appointment,
            ),
        )

    def invalidate(self) -> None:
        self._runner.invalidate()

    async def _compute(self, key: LimitKey) -> AppointmentLimitStatus:
        clinic_id, appointment_date = key
        return await self.check_limits(clinic_id, appointment_date)
