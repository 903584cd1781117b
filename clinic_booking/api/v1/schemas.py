from __future__ import annotations

import datetime as dt
from typing import Any

from pydantic import BaseModel, Field

from clinic_booking.application.use_cases.booking_session import BookingSession
from clinic_booking.application.use_cases.submitter import SubmitOutcome
from clinic_booking.application.utils.dates import format_time
from clinic_booking.domain.entities.limit_status import AppointmentLimitStatus
from clinic_booking.domain.entities.refs import AppointmentRef, ClinicRef, DoctorRef, ServiceRef, TreatmentPlanRef
from clinic_booking.domain.entities.wizard_step import WizardStep
from clinic_booking.infrastructure.navigation.memory_history import InMemoryHistory


class ClinicSchema(BaseModel):
    id: str
    name: str
    address: str | None = None
    distance_km: float | None = None

    @classmethod
    def from_entity(cls, clinic: ClinicRef) -> "ClinicSchema":
        return cls(id=clinic.id, name=clinic.name, address=clinic.address, distance_km=clinic.distance_km)


class DoctorSchema(BaseModel):
    id: str
    name: str
    specialization: str | None = None
    fee: float | None = None
    rating: float | None = None
    experience_years: int | None = None

    @classmethod
    def from_entity(cls, doctor: DoctorRef) -> "DoctorSchema":
        return cls(
            id=doctor.id,
            name=doctor.name,
            specialization=doctor.specialization,
            fee=doctor.fee,
            rating=doctor.rating,
            experience_years=doctor.experience_years,
        )


class ServiceSchema(BaseModel):
    id: str
    name: str
    duration_minutes: int
    price_min: float | None = None
    price_max: float | None = None

    @classmethod
    def from_entity(cls, service: ServiceRef) -> "ServiceSchema":
        return cls(
            id=service.id,
            name=service.name,
            duration_minutes=service.duration_minutes,
            price_min=service.price_min,
            price_max=service.price_max,
        )


class TreatmentPlanSchema(BaseModel):
    id: str
    treatment_name: str
    visits_completed: int = 0
    total_visits_planned: int | None = None
    progress_percentage: float | None = None
    clinic_name: str | None = None
    doctor_name: str | None = None
    doctor_specialization: str | None = None
    next_visit_due: dt.date | None = None
    is_overdue: bool = False

    @classmethod
    def from_entity(cls, plan: TreatmentPlanRef) -> "TreatmentPlanSchema":
        return cls(
            id=plan.id,
            treatment_name=plan.treatment_name,
            visits_completed=plan.visits_completed,
            total_visits_planned=plan.total_visits_planned,
            progress_percentage=plan.progress_percentage,
            clinic_name=plan.clinic_name,
            doctor_name=plan.doctor_name,
            doctor_specialization=plan.doctor_specialization,
            next_visit_due=plan.next_visit_due,
            is_overdue=plan.is_overdue,
        )


class AppointmentRefSchema(BaseModel):
    id: str | None = None
    date: dt.date | None = None
    time: str | None = None
    clinic_name: str | None = None
    doctor_name: str | None = None
    status: str | None = None

    @classmethod
    def from_entity(cls, ref: AppointmentRef | None) -> "AppointmentRefSchema | None":
        if ref is None:
            return None
        return cls(
            id=ref.id,
            date=ref.date,
            time=format_time(ref.time) if ref.time else None,
            clinic_name=ref.clinic_name,
            doctor_name=ref.doctor_name,
            status=ref.status,
        )


class LimitStatusSchema(BaseModel):
    allowed: bool
    reason: str
    message: str | None = None
    conflicting_appointment: AppointmentRefSchema | None = None

    @classmethod
    def from_entity(cls, status: AppointmentLimitStatus | None) -> "LimitStatusSchema | None":
        if status is None:
            return None
        return cls(
            allowed=status.allowed,
            reason=status.reason.value,
            message=status.message,
            conflicting_appointment=AppointmentRefSchema.from_entity(status.conflicting_appointment),
        )


class DraftSchema(BaseModel):
    clinic: ClinicSchema | None = None
    doctor: DoctorSchema | None = None
    date: dt.date | None = None
    time: str | None = None
    services: list[str] = Field(default_factory=list)
    notes: str = ""
    treatment_plan_id: str | None = None


class SlotSchema(BaseModel):
    time: str
    available: bool


class ProgressSchema(BaseModel):
    current_step_index: int
    total_steps: int
    step_progress: float
    can_proceed: bool
    is_complete: bool
    total_services: int
    max_services_reached: bool
    booking_type: str
    has_ongoing_treatments: bool = False
    is_linked_to_treatment: bool = False


class SessionSchema(BaseModel):
    session_id: str
    step: WizardStep
    error: str | None = None
    draft: DraftSchema
    progress: ProgressSchema
    slots: list[SlotSchema] = Field(default_factory=list)
    available_times: list[str] = Field(default_factory=list)
    slots_stale: bool = False
    limit_status: LimitStatusSchema | None = None
    treatments: list[TreatmentPlanSchema] = Field(default_factory=list)
    show_treatment_prompt: bool = False
    left_flow: bool = False


class DraftUpdateSchema(BaseModel):
    clinic_id: str | None = None
    services: list[str] | None = None
    toggle_service: str | None = None
    doctor_id: str | None = None
    date: str | None = None
    time: str | None = None
    notes: str | None = None
    treatment_plan_id: str | None = None


class CatalogSchema(BaseModel):
    clinic_id: str | None = None
    doctors: list[DoctorSchema] = Field(default_factory=list)
    services: list[ServiceSchema] = Field(default_factory=list)
    error: str | None = None


class SubmitResponseSchema(BaseModel):
    status: str
    message: str | None = None
    reason: str | None = None
    conflicting_appointment: AppointmentRefSchema | None = None
    appointment: dict[str, Any] | None = None
    session: SessionSchema


def session_snapshot(session_id: str, session: BookingSession) -> SessionSchema:
    draft = session.draft
    progress = session.progress()
    history = session.navigation.port
    return SessionSchema(
        session_id=session_id,
        step=session.step,
        error=session.error,
        draft=DraftSchema(
            clinic=ClinicSchema.from_entity(draft.clinic) if draft.clinic else None,
            doctor=DoctorSchema.from_entity(draft.doctor) if draft.doctor else None,
            date=draft.date,
            time=format_time(draft.time) if draft.time else None,
            services=list(draft.services),
            notes=draft.notes,
            treatment_plan_id=draft.treatment_plan_id,
        ),
        progress=ProgressSchema(
            current_step_index=progress.current_step_index,
            total_steps=progress.total_steps,
            step_progress=progress.step_progress,
            can_proceed=progress.can_proceed,
            is_complete=progress.is_complete,
            total_services=progress.total_services,
            max_services_reached=progress.max_services_reached,
            booking_type=progress.booking_type,
            has_ongoing_treatments=progress.has_ongoing_treatments,
            is_linked_to_treatment=progress.is_linked_to_treatment,
        ),
        slots=[SlotSchema(time=format_time(s.time), available=s.available) for s in session.availability.slots],
        available_times=[format_time(t) for t in session.availability.available_times],
        slots_stale=session.availability.is_stale,
        limit_status=LimitStatusSchema.from_entity(session.guard.status),
        treatments=[TreatmentPlanSchema.from_entity(p) for p in session.treatments.plans],
        show_treatment_prompt=session.treatments.show_link_prompt,
        left_flow=isinstance(history, InMemoryHistory) and history.left_flow,
    )


def submit_response(session_id: str, session: BookingSession, outcome: SubmitOutcome) -> SubmitResponseSchema:
    appointment = None
    if outcome.result is not None:
        result = outcome.result
        appointment = {
            "appointment_id": result.appointment_id,
            "status": result.status,
            "details": result.details,
            "clinic": result.clinic,
            "doctor": result.doctor,
            "services": result.services,
            "pricing_estimate": result.pricing_estimate,
            "cancellation_policy": result.cancellation_policy,
            "reliability": result.reliability,
            "cross_clinic_context": result.cross_clinic_context,
        }
    return SubmitResponseSchema(
        status=outcome.status,
        message=outcome.message,
        reason=outcome.reason,
        conflicting_appointment=AppointmentRefSchema.from_entity(outcome.conflicting_appointment),
        appointment=appointment,
        session=session_snapshot(session_id, session),
    )
