from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Callable

from clinic_booking.application.exceptions import BackendRequestFailed, NotAuthenticatedError
from clinic_booking.application.ports.booking_backend import BookingBackendPort
from clinic_booking.application.ports.identity import IdentityPort
from clinic_booking.core.config import settings
from clinic_booking.domain.entities.booking_result import BookingRejection, BookingResult
from clinic_booking.domain.entities.limit_status import AppointmentLimitStatus, LimitReason
from clinic_booking.domain.entities.refs import AppointmentRef, ClinicRef, DoctorRef, ServiceRef, TreatmentPlanRef
from clinic_booking.domain.entities.time_slot import SlotQueryResult, TimeSlot

DEFAULT_DURATION_MINUTES = 60
ACTIVE_STATUSES = ("pending", "confirmed")


@dataclass
class StoredAppointment:
    id: str
    patient_id: str
    clinic_id: str
    doctor_id: str
    date: date
    time: time
    duration_minutes: int
    service_ids: list[str] = field(default_factory=list)
    notes: str | None = None
    treatment_plan_id: str | None = None
    status: str = "pending"

    def overlaps(self, start: time, duration_minutes: int) -> bool:
        a_start = _minutes(self.time)
        a_end = a_start + self.duration_minutes
        b_start = _minutes(start)
        return a_start < b_start + duration_minutes and a_end > b_start


def _minutes(value: time) -> int:
    return value.hour * 60 + value.minute


def build_demo_catalog() -> tuple[list[ClinicRef], dict[str, list[DoctorRef]], dict[str, list[ServiceRef]]]:
    clinics = [
        ClinicRef(id="clinic_downtown", name="Downtown Dental", address="12 Main St", distance_km=1.2),
        ClinicRef(id="clinic_riverside", name="Riverside Smiles", address="4 River Rd", distance_km=6.8),
    ]
    doctors = {
        "clinic_downtown": [
            DoctorRef(id="doc_reyes", name="Dr. Ana Reyes", specialization="General Dentistry", fee=40.0, rating=4.8),
            DoctorRef(id="doc_cruz", name="Dr. Ben Cruz", specialization="Orthodontics", fee=60.0, rating=4.6),
        ],
        "clinic_riverside": [
            DoctorRef(id="doc_santos", name="Dr. Carla Santos", specialization="Endodontics", fee=55.0, rating=4.9),
        ],
    }
    services = {
        "clinic_downtown": [
            ServiceRef(id="svc_cleaning", name="Teeth Cleaning", duration_minutes=30, price_min=50, price_max=80),
            ServiceRef(id="svc_filling", name="Tooth Filling", duration_minutes=60, price_min=90, price_max=150),
            ServiceRef(id="svc_whitening", name="Whitening", duration_minutes=90, price_min=200, price_max=300),
            ServiceRef(id="svc_xray", name="Dental X-Ray", duration_minutes=30, price_min=40, price_max=60),
        ],
        "clinic_riverside": [
            ServiceRef(id="svc_root_canal", name="Root Canal", duration_minutes=120, price_min=400, price_max=700),
            ServiceRef(id="svc_checkup", name="Checkup", duration_minutes=30, price_min=30, price_max=50),
        ],
    }
    return clinics, doctors, services


class InMemoryBookingBackend(BookingBackendPort):
    """Local stand-in for the managed backend, enforcing the same booking policies."""

    def __init__(
        self,
        identity: IdentityPort | None = None,
        clinics: list[ClinicRef] | None = None,
        doctors: dict[str, list[DoctorRef]] | None = None,
        services: dict[str, list[ServiceRef]] | None = None,
        max_pending: int | None = None,
        today: Callable[[], date] | None = None,
        opening_hour: int = 9,
        closing_hour: int = 17,
        slot_step_minutes: int = 30,
    ) -> None:
        demo_clinics, demo_doctors, demo_services = build_demo_catalog()
        self._identity = identity
        self._clinics = clinics if clinics is not None else demo_clinics
        self._doctors = doctors if doctors is not None else demo_doctors
        self._services = services if services is not None else demo_services
        self._max_pending = max_pending if max_pending is not None else settings.MAX_PENDING_APPOINTMENTS
        self._today = today or date.today
        self._opening_hour = opening_hour
        self._closing_hour = closing_hour
        self._slot_step_minutes = slot_step_minutes
        self._appointments: dict[str, StoredAppointment] = {}
        self._treatment_plans: list[tuple[str, str, TreatmentPlanRef]] = []  # (patient_id, clinic_id, plan)
        self.commit_calls = 0
        self._logger = logging.getLogger(__name__)

    @property
    def appointments(self) -> list[StoredAppointment]:
        return list(self._appointments.values())

    def bind(self, identity: IdentityPort) -> "InMemoryBookingBackend":
        """A view of this backend acting for `identity`; appointments are shared."""
        view = copy.copy(self)
        view._identity = identity
        return view

    def add_appointment(
        self,
        patient_id: str,
        clinic_id: str,
        doctor_id: str,
        appointment_date: date,
        appointment_time: time,
        duration_minutes: int = DEFAULT_DURATION_MINUTES,
        status: str = "pending",
    ) -> StoredAppointment:
        appointment = StoredAppointment(
            id=f"apt_{len(self._appointments) + 1}",
            patient_id=patient_id,
            clinic_id=clinic_id,
            doctor_id=doctor_id,
            date=appointment_date,
            time=appointment_time,
            duration_minutes=duration_minutes,
            status=status,
        )
        self._appointments[appointment.id] = appointment
        return appointment

    def add_treatment_plan(self, patient_id: str, clinic_id: str, plan: TreatmentPlanRef) -> TreatmentPlanRef:
        self._treatment_plans.append((patient_id, clinic_id, plan))
        return plan

    def cancel_appointment(self, appointment_id: str) -> bool:
        appointment = self._appointments.get(appointment_id)
        if appointment is None:
            return False
        appointment.status = "cancelled"
        return True

    async def list_clinics(self, limit: int = 20, max_distance_km: int = 50) -> list[ClinicRef]:
        return [c for c in self._clinics if c.distance_km is None or c.distance_km <= max_distance_km][:limit]

    async def list_available_doctors(self, clinic_id: str) -> list[DoctorRef]:
        return [d for d in self._doctors.get(clinic_id, []) if d.availability]

    async def list_services(self, clinic_id: str) -> list[ServiceRef]:
        return list(self._services.get(clinic_id, []))

    async def compute_time_slots(
        self,
        doctor_id: str,
        appointment_date: date,
        service_ids: list[str],
    ) -> SlotQueryResult:
        if self._find_doctor(doctor_id) is None:
            raise BackendRequestFailed(f"Unknown doctor: {doctor_id}")

        duration = self._total_duration(service_ids)
        start = datetime.combine(appointment_date, time(self._opening_hour))
        closing = datetime.combine(appointment_date, time(self._closing_hour))
        booked = [a for a in self._active() if a.doctor_id == doctor_id and a.date == appointment_date]

        slots: list[TimeSlot] = []
        current = start
        while current + timedelta(minutes=duration) <= closing:
            slot_time = current.time()
            available = not any(a.overlaps(slot_time, duration) for a in booked)
            slots.append(TimeSlot(time=slot_time, available=available))
            current += timedelta(minutes=self._slot_step_minutes)

        return SlotQueryResult(
            date=appointment_date,
            doctor_id=doctor_id,
            total_duration_minutes=duration,
            slots=slots,
        )

    async def check_appointment_limit(
        self,
        patient_id: str,
        clinic_id: str,
        appointment_date: date | None,
    ) -> AppointmentLimitStatus:
        return self._evaluate_limits(patient_id, appointment_date)

    async def list_ongoing_treatments(self, patient_id: str, clinic_id: str | None) -> list[TreatmentPlanRef]:
        return [
            plan
            for owner, plan_clinic, plan in self._treatment_plans
            if owner == patient_id and (clinic_id is None or plan_clinic == clinic_id)
        ]

    async def commit_booking(
        self,
        clinic_id: str,
        doctor_id: str,
        appointment_date: date,
        appointment_time: time,
        service_ids: list[str],
        notes: str | None = None,
        treatment_plan_id: str | None = None,
    ) -> BookingResult | BookingRejection:
        self.commit_calls += 1
        patient_id = self._identity.current_patient_id() if self._identity else None
        if not patient_id:
            raise NotAuthenticatedError("Authentication required")

        if appointment_date < self._today():
            return BookingRejection(reason="invalid_date", message="Cannot book appointments in the past")

        limits = self._evaluate_limits(patient_id, appointment_date)
        if not limits.allowed:
            return BookingRejection(
                reason=limits.reason.value,
                message=limits.message,
                conflicting_appointment=limits.conflicting_appointment,
            )

        if treatment_plan_id and self._find_treatment_plan(patient_id, treatment_plan_id) is None:
            return BookingRejection(reason="invalid_treatment_plan", message="Treatment plan not found")

        duration = self._total_duration(service_ids)
        taken = any(
            a.doctor_id == doctor_id and a.date == appointment_date and a.overlaps(appointment_time, duration)
            for a in self._active()
        )
        if taken:
            return BookingRejection(reason="slot_unavailable", message="The selected time slot is no longer available")

        appointment = self.add_appointment(
            patient_id, clinic_id, doctor_id, appointment_date, appointment_time, duration_minutes=duration
        )
        appointment.service_ids = list(service_ids)
        appointment.notes = notes
        appointment.treatment_plan_id = treatment_plan_id
        self._logger.info("Mock appointment created", extra={"appointment_id": appointment.id, "clinic_id": clinic_id})
        return self._build_result(appointment)

    def _build_result(self, appointment: StoredAppointment) -> BookingResult:
        clinic = next((c for c in self._clinics if c.id == appointment.clinic_id), None)
        doctor = self._find_doctor(appointment.doctor_id)
        services = [s for s in (self._find_service(sid) for sid in appointment.service_ids) if s is not None]
        other_clinics = [
            a
            for a in self._active()
            if a.patient_id == appointment.patient_id and a.clinic_id != appointment.clinic_id
        ]
        return BookingResult(
            appointment_id=appointment.id,
            status=appointment.status,
            message="Appointment booked successfully",
            patient_info={"patient_id": appointment.patient_id},
            details={
                "date": appointment.date.isoformat(),
                "time": appointment.time.strftime("%H:%M"),
                "duration_minutes": appointment.duration_minutes,
                "notes": appointment.notes,
                "treatment_plan_id": appointment.treatment_plan_id,
            },
            clinic={"id": appointment.clinic_id, "name": clinic.name if clinic else None},
            doctor={"id": appointment.doctor_id, "name": doctor.name if doctor else None},
            services=[{"id": s.id, "name": s.name, "duration_minutes": s.duration_minutes} for s in services],
            pricing_estimate={
                "min": sum(s.price_min or 0 for s in services),
                "max": sum(s.price_max or s.price_min or 0 for s in services),
                "consultation_fee": doctor.fee if doctor else None,
            },
            cancellation_policy={"free_cancellation_hours": 24},
            reliability={"risk_level": "low_risk"},
            cross_clinic_context={"other_clinic_appointments": len(other_clinics)},
        )

    def _evaluate_limits(self, patient_id: str, appointment_date: date | None) -> AppointmentLimitStatus:
        active = [a for a in self._active() if a.patient_id == patient_id]

        if appointment_date is not None:
            same_day = next((a for a in active if a.date == appointment_date), None)
            if same_day is not None:
                return AppointmentLimitStatus(
                    allowed=False,
                    reason=LimitReason.daily_limit_exceeded,
                    message="You already have an appointment on this date",
                    conflicting_appointment=self._to_ref(same_day),
                )

        pending = sum(1 for a in active if a.status == "pending")
        if pending >= self._max_pending:
            return AppointmentLimitStatus(
                allowed=False,
                reason=LimitReason.pending_limit_exceeded,
                message="Pending appointment limit reached",
                pending_count=pending,
                pending_limit=self._max_pending,
            )

        return AppointmentLimitStatus(
            allowed=True,
            message="No restrictions",
            pending_count=pending,
            pending_limit=self._max_pending,
        )

    def _to_ref(self, appointment: StoredAppointment) -> AppointmentRef:
        clinic = next((c for c in self._clinics if c.id == appointment.clinic_id), None)
        doctor = self._find_doctor(appointment.doctor_id)
        return AppointmentRef(
            id=appointment.id,
            date=appointment.date,
            time=appointment.time,
            clinic_name=clinic.name if clinic else None,
            doctor_name=doctor.name if doctor else None,
            status=appointment.status,
        )

    def _active(self) -> list[StoredAppointment]:
        return [a for a in self._appointments.values() if a.status in ACTIVE_STATUSES]

    def _find_doctor(self, doctor_id: str) -> DoctorRef | None:
        for doctors in self._doctors.values():
            for doctor in doctors:
                if doctor.id == doctor_id:
                    return doctor
        return None

    def _find_treatment_plan(self, patient_id: str, plan_id: str) -> TreatmentPlanRef | None:
        return next((p for owner, _, p in self._treatment_plans if owner == patient_id and p.id == plan_id), None)

    def _find_service(self, service_id: str) -> ServiceRef | None:
        for services in self._services.values():
            for service in services:
                if service.id == service_id:
                    return service
        return None

    def _total_duration(self, service_ids: list[str]) -> int:
        durations = [s.duration_minutes for s in (self._find_service(sid) for sid in service_ids) if s is not None]
        return sum(durations) or DEFAULT_DURATION_MINUTES
