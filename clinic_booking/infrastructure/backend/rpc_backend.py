from __future__ import annotations

import logging
from datetime import date, time
from typing import Any

import httpx

from clinic_booking.application.exceptions import (
    BackendContractError,
    BackendRequestFailed,
    BackendUpstreamError,
    NotAuthenticatedError,
)
from clinic_booking.application.ports.booking_backend import BookingBackendPort
from clinic_booking.application.utils.dates import format_time, parse_date_value, parse_time_value
from clinic_booking.core.config import settings
from clinic_booking.domain.entities.booking_result import BookingRejection, BookingResult
from clinic_booking.domain.entities.limit_status import AppointmentLimitStatus, LimitReason
from clinic_booking.domain.entities.refs import AppointmentRef, ClinicRef, DoctorRef, ServiceRef, TreatmentPlanRef
from clinic_booking.domain.entities.time_slot import SlotQueryResult, TimeSlot

DOCTOR_COLUMNS = (
    "doctors(id,specialization,consultation_fee,experience_years,is_available,rating,first_name,last_name)"
)


class RpcBookingBackend(BookingBackendPort):
    """Managed backend adapter: PostgREST table reads and stored-procedure calls."""

    def __init__(
        self,
        base_url: str | None = None,
        anon_key: str | None = None,
        access_token: str | None = None,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = (base_url or settings.BACKEND_URL or "").rstrip("/")
        self._anon_key = anon_key or settings.BACKEND_ANON_KEY
        self._access_token = access_token or settings.BACKEND_ACCESS_TOKEN
        self._client = client or httpx.AsyncClient(timeout=timeout or settings.BACKEND_TIMEOUT_SECONDS)
        self._logger = logging.getLogger(__name__)

        if not self._base_url:
            raise ValueError("BACKEND_URL is required for the RPC booking backend")
        if not self._anon_key:
            raise ValueError("BACKEND_ANON_KEY is required for the RPC booking backend")

    async def aclose(self) -> None:
        await self._client.aclose()

    async def list_clinics(self, limit: int = 20, max_distance_km: int = 50) -> list[ClinicRef]:
        data = await self._rpc(
            "find_nearest_clinics",
            {"user_location": None, "max_distance_km": max_distance_km, "limit_count": limit},
        )
        if not isinstance(data, dict) or not data.get("success"):
            raise BackendRequestFailed(_error_text(data, "Failed to load clinics"))
        rows = (data.get("data") or {}).get("clinics") or []
        return [_parse_clinic(row) for row in rows if isinstance(row, dict) and row.get("id")]

    async def list_available_doctors(self, clinic_id: str) -> list[DoctorRef]:
        rows = await self._select(
            "doctor_clinics",
            {
                "select": DOCTOR_COLUMNS,
                "clinic_id": f"eq.{clinic_id}",
                "is_active": "eq.true",
                "doctors.is_available": "eq.true",
            },
        )
        doctors: list[DoctorRef] = []
        for row in rows:
            doctor = row.get("doctors") if isinstance(row, dict) else None
            if isinstance(doctor, dict) and doctor.get("id"):
                doctors.append(_parse_doctor(doctor))
        return doctors

    async def list_services(self, clinic_id: str) -> list[ServiceRef]:
        rows = await self._select(
            "services",
            {
                "select": "*",
                "clinic_id": f"eq.{clinic_id}",
                "is_active": "eq.true",
                "order": "priority.desc",
            },
        )
        return [_parse_service(row) for row in rows if isinstance(row, dict) and row.get("id")]

    async def compute_time_slots(
        self,
        doctor_id: str,
        appointment_date: date,
        service_ids: list[str],
    ) -> SlotQueryResult:
        data = await self._rpc(
            "get_available_time_slots",
            {
                "p_doctor_id": doctor_id,
                "p_appointment_date": appointment_date.isoformat(),
                "p_service_ids": list(service_ids) or None,
            },
        )
        if not isinstance(data, dict):
            raise BackendContractError("get_available_time_slots returned a non-object payload")
        if not data.get("success"):
            raise BackendRequestFailed(_error_text(data, "Failed to fetch time slots"))

        slots: list[TimeSlot] = []
        raw_slots = data.get("slots") if isinstance(data.get("slots"), list) else []
        for raw in raw_slots:
            try:
                slots.append(TimeSlot(time=parse_time_value(raw["time"]), available=raw.get("available") is True))
            except (KeyError, TypeError, ValueError, AttributeError):
                continue

        return SlotQueryResult(
            date=_optional_date(data.get("date")) or appointment_date,
            doctor_id=str(data.get("doctor_id") or doctor_id),
            total_duration_minutes=int(data.get("total_duration") or 0),
            slots=slots,
        )

    async def check_appointment_limit(
        self,
        patient_id: str,
        clinic_id: str,
        appointment_date: date | None,
    ) -> AppointmentLimitStatus:
        data = await self._rpc(
            "check_appointment_limit",
            {
                "p_patient_id": patient_id,
                "p_clinic_id": clinic_id,
                "p_appointment_date": appointment_date.isoformat() if appointment_date else None,
            },
        )
        if not isinstance(data, dict) or "allowed" not in data:
            raise BackendContractError("check_appointment_limit returned an unexpected payload")

        details = data.get("data") or {}
        try:
            reason = LimitReason(data.get("reason") or "none")
        except ValueError:
            reason = LimitReason.none if data.get("allowed") else LimitReason.error
        existing = details.get("existing_appointment")
        return AppointmentLimitStatus(
            allowed=bool(data.get("allowed")),
            reason=reason,
            message=data.get("message"),
            conflicting_appointment=_parse_appointment_ref(existing) if isinstance(existing, dict) else None,
            pending_count=_optional_int(details.get("pending_count")),
            pending_limit=_optional_int(details.get("pending_limit")),
        )

    async def list_ongoing_treatments(self, patient_id: str, clinic_id: str | None) -> list[TreatmentPlanRef]:
        data = await self._rpc(
            "get_patient_ongoing_treatments_for_booking",
            {"p_patient_id": patient_id, "p_clinic_id": clinic_id},
        )
        if not isinstance(data, dict):
            raise BackendContractError("get_patient_ongoing_treatments_for_booking returned a non-object payload")
        if data.get("success") is False:
            raise BackendRequestFailed(_error_text(data, "Failed to load ongoing treatments"))
        rows = (data.get("data") or {}).get("treatments") or []
        return [_parse_treatment_plan(row) for row in rows if isinstance(row, dict) and row.get("id")]

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
        data = await self._rpc(
            "book_appointment",
            {
                "p_clinic_id": clinic_id,
                "p_doctor_id": doctor_id,
                "p_appointment_date": appointment_date.isoformat(),
                "p_appointment_time": format_time(appointment_time),
                "p_service_ids": list(service_ids),
                "p_symptoms": notes or None,
                "p_treatment_plan_id": treatment_plan_id or None,
            },
        )
        if not isinstance(data, dict):
            raise BackendContractError("book_appointment returned a non-object payload")
        if data.get("authenticated") is False:
            raise NotAuthenticatedError("Authentication required")

        details = data.get("data") or {}
        if not data.get("success"):
            existing = details.get("existing_appointment") if isinstance(details, dict) else None
            return BookingRejection(
                reason=str(data.get("reason") or "unknown"),
                message=data.get("error") or data.get("message"),
                conflicting_appointment=_parse_appointment_ref(existing) if isinstance(existing, dict) else None,
            )

        if not details.get("appointment_id"):
            raise BackendContractError("book_appointment succeeded without an appointment id")

        self._logger.info("Appointment committed", extra={"appointment_id": details["appointment_id"]})
        return BookingResult(
            appointment_id=str(details["appointment_id"]),
            status=str(details.get("status") or "pending"),
            message=data.get("message"),
            patient_info=details.get("patient_info") or {},
            details=details.get("appointment_details") or {},
            clinic=details.get("clinic") or {},
            doctor=details.get("doctor") or {},
            services=details.get("services") or [],
            pricing_estimate=details.get("pricing_estimate") or {},
            cancellation_policy=details.get("cancellation_policy") or {},
            reliability=details.get("patient_reliability") or {},
            cross_clinic_context=details.get("cross_clinic_context") or {},
        )

    def _headers(self) -> dict[str, str]:
        return {
            "apikey": self._anon_key,
            "Authorization": f"Bearer {self._access_token or self._anon_key}",
            "Content-Type": "application/json",
        }

    async def _rpc(self, function: str, payload: dict[str, Any]) -> Any:
        url = f"{self._base_url}/rest/v1/rpc/{function}"
        return await self._send("POST", url, function, json=payload)

    async def _select(self, table: str, params: dict[str, str]) -> list[Any]:
        url = f"{self._base_url}/rest/v1/{table}"
        rows = await self._send("GET", url, table, params=params)
        if not isinstance(rows, list):
            raise BackendContractError(f"{table} query returned a non-list payload")
        return rows

    async def _send(self, method: str, url: str, operation: str, **kwargs: Any) -> Any:
        try:
            response = await self._client.request(method, url, headers=self._headers(), **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            self._logger.error("Backend request rejected", extra={"operation": operation, "status": status})
            if status in (401, 403):
                raise NotAuthenticatedError(f"{operation} requires authentication") from e
            raise BackendUpstreamError(f"{operation} failed with status {status}") from e
        except httpx.HTTPError as e:
            self._logger.error("Backend request failed", extra={"operation": operation, "error": str(e)})
            raise BackendUpstreamError(f"{operation} request failed: {e}") from e

        try:
            return response.json()
        except ValueError as e:
            raise BackendContractError(f"{operation} returned invalid JSON") from e


def _error_text(data: Any, default: str) -> str:
    if isinstance(data, dict):
        return str(data.get("error") or data.get("message") or default)
    return default


def _optional_int(value: Any) -> int | None:
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def _optional_float(value: Any) -> float | None:
    try:
        return float(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def _optional_date(value: Any) -> date | None:
    try:
        return parse_date_value(value) if value else None
    except ValueError:
        return None


def _optional_time(value: Any) -> time | None:
    try:
        return parse_time_value(value) if value else None
    except ValueError:
        return None


def _parse_clinic(row: dict[str, Any]) -> ClinicRef:
    return ClinicRef(
        id=str(row["id"]),
        name=str(row.get("name") or "Unnamed clinic"),
        address=row.get("address"),
        distance_km=_optional_float(row.get("distance_km")),
    )


def _parse_doctor(row: dict[str, Any]) -> DoctorRef:
    first_name = (row.get("first_name") or "").strip()
    last_name = (row.get("last_name") or "").strip()
    full_name = f"{first_name} {last_name}".strip()
    return DoctorRef(
        id=str(row["id"]),
        name=f"Dr. {full_name}" if full_name else (row.get("specialization") or "Unknown Doctor"),
        specialization=row.get("specialization"),
        fee=_optional_float(row.get("consultation_fee")),
        rating=_optional_float(row.get("rating")),
        availability=row.get("is_available") is not False,
        experience_years=_optional_int(row.get("experience_years")),
    )


def _parse_service(row: dict[str, Any]) -> ServiceRef:
    return ServiceRef(
        id=str(row["id"]),
        name=str(row.get("name") or "Service"),
        duration_minutes=_optional_int(row.get("duration_minutes")) or 0,
        price_min=_optional_float(row.get("min_price")),
        price_max=_optional_float(row.get("max_price")),
    )


def _parse_appointment_ref(row: dict[str, Any]) -> AppointmentRef:
    clinic = row.get("clinic") if isinstance(row.get("clinic"), dict) else {}
    appointment_id = row.get("id") or row.get("appointment_id")
    return AppointmentRef(
        id=str(appointment_id) if appointment_id else None,
        date=_optional_date(row.get("appointment_date") or row.get("date")),
        time=_optional_time(row.get("appointment_time") or row.get("time")),
        clinic_name=row.get("clinic_name") or clinic.get("name"),
        doctor_name=row.get("doctor_name"),
        status=row.get("status"),
    )


def _parse_treatment_plan(row: dict[str, Any]) -> TreatmentPlanRef:
    doctor = row.get("assigned_doctor") if isinstance(row.get("assigned_doctor"), dict) else {}
    return TreatmentPlanRef(
        id=str(row["id"]),
        treatment_name=str(row.get("treatment_name") or "Treatment plan"),
        visits_completed=_optional_int(row.get("visits_completed")) or 0,
        total_visits_planned=_optional_int(row.get("total_visits_planned")),
        progress_percentage=_optional_float(row.get("progress_percentage")),
        clinic_name=row.get("clinic_name"),
        doctor_name=doctor.get("name"),
        doctor_specialization=doctor.get("specialization"),
        next_visit_due=_optional_date(row.get("next_visit_due")),
        is_overdue=row.get("is_overdue") is True,
    )
