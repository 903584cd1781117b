from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, time


@dataclass(frozen=True)
class TimeSlot:
    time: time
    available: bool


@dataclass(frozen=True)
class SlotQueryResult:
    date: date
    doctor_id: str
    total_duration_minutes: int
    slots: list[TimeSlot] = field(default_factory=list)
