from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from clinic_booking.domain.entities.refs import AppointmentRef


@dataclass(frozen=True)
class BookingResult:
    appointment_id: str
    status: str
    message: str | None = None
    patient_info: dict[str, Any] = field(default_factory=dict)
    details: dict[str, Any] = field(default_factory=dict)
    clinic: dict[str, Any] = field(default_factory=dict)
    doctor: dict[str, Any] = field(default_factory=dict)
    services: list[dict[str, Any]] = field(default_factory=list)
    pricing_estimate: dict[str, Any] = field(default_factory=dict)
    cancellation_policy: dict[str, Any] = field(default_factory=dict)
    reliability: dict[str, Any] = field(default_factory=dict)
    cross_clinic_context: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class BookingRejection:
    reason: str
    message: str | None = None
    conflicting_appointment: AppointmentRef | None = None
