from __future__ import annotations

import logging
from datetime import date, time

from clinic_booking.application.ports.booking_backend import BookingBackendPort
from clinic_booking.application.utils.keyed_runner import LatestKeyRunner
from clinic_booking.domain.entities.time_slot import TimeSlot

SlotKey = tuple[str | None, date | None, tuple[str, ...]]


def slot_key(doctor_id: str | None, appointment_date: date | None, service_ids) -> SlotKey:
    return (doctor_id, appointment_date, tuple(sorted(service_ids or ())))


class AvailabilityResolver:
    """Resolves the time slots of (doctor, date, services), newest key wins."""

    def __init__(self, backend: BookingBackendPort) -> None:
        self._backend = backend
        self._runner: LatestKeyRunner[SlotKey, list[TimeSlot]] = LatestKeyRunner(
            self._compute, [], name="availability"
        )
        self._logger = logging.getLogger(__name__)

    @property
    def slots(self) -> list[TimeSlot]:
        return list(self._runner.value)

    @property
    def available_times(self) -> list[time]:
        return [slot.time for slot in self._runner.value if slot.available]

    @property
    def is_resolving(self) -> bool:
        return self._runner.is_running

    @property
    def is_stale(self) -> bool:
        return self._runner.is_stale

    @property
    def resolved_key(self) -> SlotKey | None:
        return self._runner.resolved_key

    def is_current_for(self, doctor_id: str | None, appointment_date: date | None, service_ids) -> bool:
        return self._runner.is_current_for(slot_key(doctor_id, appointment_date, service_ids))

    async def refresh(
        self,
        doctor_id: str | None,
        appointment_date: date | None,
        service_ids=(),
        force: bool = False,
    ) -> list[TimeSlot]:
        key = slot_key(doctor_id, appointment_date, service_ids)
        if doctor_id is None or appointment_date is None:
            if key != self._runner.requested_key or self._runner.value:
                self._runner.assign(key, [])
            return []
        return list(await self._runner.run(key, force=force))

    async def resolve(
        self,
        doctor_id: str,
        appointment_date: date,
        service_ids: list[str],
    ) -> list[TimeSlot]:
        """One remote slot query. Failures degrade to "no availability"."""
        try:
            result = await self._backend.compute_time_slots(doctor_id, appointment_date, list(service_ids))
        except Exception as e:
            self._logger.error(
                "Error resolving time slots",
                extra={"doctor_id": doctor_id, "date": appointment_date.isoformat(), "error": str(e)},
            )
            return []
        self._logger.info(
            "Time slots resolved",
            extra={
                "doctor_id": doctor_id,
                "date": appointment_date.isoformat(),
                "total": len(result.slots),
                "available": sum(1 for s in result.slots if s.available),
            },
        )
        return list(result.slots)

    def invalidate(self) -> None:
        self._runner.invalidate()

    async def _compute(self, key: SlotKey) -> list[TimeSlot]:
        doctor_id, appointment_date, service_ids = key
        return await self.resolve(doctor_id, appointment_date, list(service_ids))
