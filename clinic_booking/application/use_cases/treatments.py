from __future__ import annotations

import logging

from clinic_booking.application.ports.booking_backend import BookingBackendPort
from clinic_booking.application.ports.identity import IdentityPort
from clinic_booking.application.utils.keyed_runner import LatestKeyRunner
from clinic_booking.domain.entities.refs import TreatmentPlanRef


class OngoingTreatments:
    """
    The patient's treatment plans still in progress at the selected clinic.
    A new appointment can be linked to one of them as a follow-up visit.

    Only patients have plans; anyone else, and any lookup failure, sees an
    empty list. The link prompt shows once per clinic until it is dismissed
    or a plan is picked.
    """

    def __init__(self, backend: BookingBackendPort, identity: IdentityPort) -> None:
        self._backend = backend
        self._identity = identity
        self._runner: LatestKeyRunner[str | None, list[TreatmentPlanRef]] = LatestKeyRunner(
            self._compute, [], name="treatments"
        )
        self._dismissed_for: str | None = None
        self._logger = logging.getLogger(__name__)

    @property
    def plans(self) -> list[TreatmentPlanRef]:
        return list(self._runner.value)

    @property
    def has_ongoing(self) -> bool:
        return bool(self._runner.value)

    @property
    def is_checking(self) -> bool:
        return self._runner.is_running

    @property
    def show_link_prompt(self) -> bool:
        clinic_id = self._runner.resolved_key
        return bool(self._runner.value) and clinic_id is not None and clinic_id != self._dismissed_for

    def is_current_for(self, clinic_id: str | None) -> bool:
        return self._runner.is_current_for(clinic_id)

    def find(self, plan_id: str | None) -> TreatmentPlanRef | None:
        if not plan_id:
            return None
        return next((p for p in self._runner.value if p.id == plan_id), None)

    def dismiss(self) -> None:
        self._dismissed_for = self._runner.resolved_key

    async def refresh(self, clinic_id: str | None) -> list[TreatmentPlanRef]:
        if clinic_id is None:
            if self._runner.requested_key is not None or self._runner.value:
                self._runner.assign(None, [])
            return []
        return list(await self._runner.run(clinic_id))

    def invalidate(self) -> None:
        self._runner.invalidate()
        self._dismissed_for = None

    async def _compute(self, clinic_id: str) -> list[TreatmentPlanRef]:
        patient_id = self._identity.current_patient_id()
        if not self._identity.is_patient() or not patient_id:
            return []
        try:
            plans = await self._backend.list_ongoing_treatments(patient_id, clinic_id)
        except Exception as e:
            self._logger.error(
                "Error checking ongoing treatments",
                extra={"clinic_id": clinic_id, "error": str(e)},
            )
            return []
        if plans:
            self._logger.info("Ongoing treatments found", extra={"clinic_id": clinic_id})
        return plans
