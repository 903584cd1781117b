from __future__ import annotations

from dataclasses import dataclass
from datetime import date, time

from clinic_booking.domain.entities.refs import ClinicRef, DoctorRef

MAX_SERVICES = 3


@dataclass(frozen=True)
class BookingDraft:
    clinic: ClinicRef | None = None
    doctor: DoctorRef | None = None
    date: date | None = None
    time: time | None = None
    services: tuple[str, ...] = ()  # service ids, unique, selection order
    notes: str = ""
    treatment_plan_id: str | None = None

    @property
    def clinic_id(self) -> str | None:
        return self.clinic.id if self.clinic else None

    @property
    def doctor_id(self) -> str | None:
        return self.doctor.id if self.doctor else None

    @property
    def booking_type(self) -> str:
        if self.treatment_plan_id:
            return "treatment_plan_follow_up"
        return "consultation_with_service" if self.services else "consultation_only"
