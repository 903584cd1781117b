from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from clinic_booking.domain.entities.refs import AppointmentRef


class LimitReason(str, Enum):
    none = "none"
    daily_limit_exceeded = "daily_limit_exceeded"
    pending_limit_exceeded = "pending_limit_exceeded"
    error = "error"


@dataclass(frozen=True)
class AppointmentLimitStatus:
    """Snapshot of the patient-level booking policies for one (clinic, date).

    Advisory only: the backend re-validates at commit time.
    """

    allowed: bool
    reason: LimitReason = LimitReason.none
    message: str | None = None
    conflicting_appointment: AppointmentRef | None = None
    pending_count: int | None = None
    pending_limit: int | None = None

    @classmethod
    def unrestricted(cls) -> "AppointmentLimitStatus":
        return cls(allowed=True, message="No restrictions")
