from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import date, time

from clinic_booking.domain.entities.booking_result import BookingRejection, BookingResult
from clinic_booking.domain.entities.limit_status import AppointmentLimitStatus
from clinic_booking.domain.entities.refs import ClinicRef, DoctorRef, ServiceRef, TreatmentPlanRef
from clinic_booking.domain.entities.time_slot import SlotQueryResult


class BookingBackendPort(ABC):
    """Remote booking backend.

    Transport problems raise BackendUpstreamError, unreadable payloads raise
    BackendContractError and structured failures raise BackendRequestFailed.
    Business rejections of a commit are returned, not raised.
    """

    @abstractmethod
    async def list_clinics(self, limit: int = 20, max_distance_km: int = 50) -> list[ClinicRef]:
        raise NotImplementedError

    @abstractmethod
    async def list_available_doctors(self, clinic_id: str) -> list[DoctorRef]:
        raise NotImplementedError

    @abstractmethod
    async def list_services(self, clinic_id: str) -> list[ServiceRef]:
        raise NotImplementedError

    @abstractmethod
    async def compute_time_slots(
        self,
        doctor_id: str,
        appointment_date: date,
        service_ids: list[str],
    ) -> SlotQueryResult:
        raise NotImplementedError

    @abstractmethod
    async def check_appointment_limit(
        self,
        patient_id: str,
        clinic_id: str,
        appointment_date: date | None,
    ) -> AppointmentLimitStatus:
        raise NotImplementedError

    @abstractmethod
    async def list_ongoing_treatments(self, patient_id: str, clinic_id: str | None) -> list[TreatmentPlanRef]:
        """Treatment plans of the patient still in progress, optionally at one clinic."""
        raise NotImplementedError

    @abstractmethod
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
        """Create the appointment. Irreversible once the backend accepts it."""
        raise NotImplementedError
