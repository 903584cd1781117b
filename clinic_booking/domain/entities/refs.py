from __future__ import annotations

from dataclasses import dataclass
from datetime import date, time


@dataclass(frozen=True)
class ClinicRef:
    id: str
    name: str
    address: str | None = None
    distance_km: float | None = None


@dataclass(frozen=True)
class DoctorRef:
    id: str
    name: str
    specialization: str | None = None
    fee: float | None = None
    rating: float | None = None
    availability: bool = True
    experience_years: int | None = None


@dataclass(frozen=True)
class ServiceRef:
    id: str
    name: str
    duration_minutes: int
    price_min: float | None = None
    price_max: float | None = None


@dataclass(frozen=True)
class AppointmentRef:
    """An existing appointment the backend reported as conflicting."""

    id: str | None = None
    date: date | None = None
    time: time | None = None
    clinic_name: str | None = None
    doctor_name: str | None = None
    status: str | None = None

    def describe(self) -> str:
        parts = ["an appointment"]
        if self.clinic_name:
            parts.append(f"at {self.clinic_name}")
        if self.date:
            parts.append(f"on {self.date.isoformat()}")
        if self.time:
            parts.append(f"at {self.time.strftime('%H:%M')}")
        if self.id:
            parts.append(f"(ref {self.id})")
        return " ".join(parts)


@dataclass(frozen=True)
class TreatmentPlanRef:
    """An ongoing treatment plan a new appointment can follow up on."""

    id: str
    treatment_name: str
    visits_completed: int = 0
    total_visits_planned: int | None = None
    progress_percentage: float | None = None
    clinic_name: str | None = None
    doctor_name: str | None = None
    doctor_specialization: str | None = None
    next_visit_due: date | None = None
    is_overdue: bool = False
