from __future__ import annotations

import logging
from dataclasses import dataclass, field

from clinic_booking.application.ports.booking_backend import BookingBackendPort
from clinic_booking.application.utils.keyed_runner import LatestKeyRunner
from clinic_booking.domain.entities.refs import ClinicRef, DoctorRef, ServiceRef


@dataclass(frozen=True)
class ClinicOffer:
    doctors: list[DoctorRef] = field(default_factory=list)
    services: list[ServiceRef] = field(default_factory=list)
    error: str | None = None


class ClinicCatalog:
    """Clinic list and the doctors/services offered by the selected clinic."""

    def __init__(self, backend: BookingBackendPort, search_limit: int = 20, search_radius_km: int = 50) -> None:
        self._backend = backend
        self._search_limit = search_limit
        self._search_radius_km = search_radius_km
        self._runner: LatestKeyRunner[str | None, ClinicOffer] = LatestKeyRunner(
            self._compute, ClinicOffer(), name="catalog"
        )
        self.error: str | None = None
        self._logger = logging.getLogger(__name__)

    @property
    def offer(self) -> ClinicOffer:
        return self._runner.value

    @property
    def doctors(self) -> list[DoctorRef]:
        return list(self._runner.value.doctors)

    @property
    def services(self) -> list[ServiceRef]:
        return list(self._runner.value.services)

    def service(self, service_id: str) -> ServiceRef | None:
        return next((s for s in self._runner.value.services if s.id == service_id), None)

    async def list_clinics(self) -> list[ClinicRef]:
        try:
            clinics = await self._backend.list_clinics(limit=self._search_limit, max_distance_km=self._search_radius_km)
        except Exception as e:
            self._logger.error("Error fetching clinics", extra={"error": str(e)})
            self.error = "Failed to load clinics"
            return []
        self.error = None
        return clinics

    async def load(self, clinic_id: str | None) -> ClinicOffer:
        if clinic_id is None:
            self._runner.assign(None, ClinicOffer())
            return self._runner.value
        return await self._runner.run(clinic_id)

    def invalidate(self) -> None:
        self._runner.invalidate()

    async def _compute(self, clinic_id: str) -> ClinicOffer:
        errors: list[str] = []
        try:
            doctors = await self._backend.list_available_doctors(clinic_id)
        except Exception as e:
            self._logger.error("Error fetching doctors", extra={"clinic_id": clinic_id, "error": str(e)})
            doctors = []
            errors.append("Failed to load available doctors")
        try:
            services = await self._backend.list_services(clinic_id)
        except Exception as e:
            self._logger.error("Error fetching services", extra={"clinic_id": clinic_id, "error": str(e)})
            services = []
            errors.append("Failed to load services")
        return ClinicOffer(doctors=doctors, services=services, error="; ".join(errors) or None)
