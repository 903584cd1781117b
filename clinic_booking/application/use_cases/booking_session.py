from __future__ import annotations

import asyncio
import logging
from datetime import date, time

from clinic_booking.application.ports.booking_backend import BookingBackendPort
from clinic_booking.application.ports.identity import IdentityPort
from clinic_booking.application.ports.navigation import StepNavigationPort
from clinic_booking.application.use_cases.availability import AvailabilityResolver
from clinic_booking.application.use_cases.catalog import ClinicCatalog
from clinic_booking.application.use_cases.draft_store import BookingDraftStore
from clinic_booking.application.use_cases.limit_guard import ConflictLimitGuard
from clinic_booking.application.use_cases.navigation_sync import NavigationSynchronizer
from clinic_booking.application.use_cases.submitter import BookingSubmitter, SubmitOutcome
from clinic_booking.application.use_cases.treatments import OngoingTreatments
from clinic_booking.application.utils.dates import parse_date_value, parse_time_value
from clinic_booking.domain.entities.booking_draft import BookingDraft
from clinic_booking.domain.entities.refs import ClinicRef, DoctorRef, TreatmentPlanRef
from clinic_booking.domain.entities.wizard_step import WizardProgress, WizardStep

SLOT_TAKEN = "That time is no longer available. Please choose another time."
UNKNOWN_TREATMENT_PLAN = "That treatment plan is not available for this clinic"


class BookingSession:
    """
    One booking flow, from the first wizard step to a committed appointment.

    Create one when the patient starts booking and call `mount()` to attach
    history synchronization. The draft resets itself on success or `reset()`;
    leaving the booking range through navigation drops in-flight lookups.

    Draft changes schedule recomputation of the derived views (catalog, slots,
    limits, ongoing treatments) on the running event loop; `settle()` waits
    for it.
    """

    def __init__(
        self,
        backend: BookingBackendPort,
        identity: IdentityPort,
        navigation: StepNavigationPort,
        store: BookingDraftStore | None = None,
        search_limit: int = 20,
        search_radius_km: int = 50,
    ) -> None:
        self.store = store or BookingDraftStore()
        self.catalog = ClinicCatalog(backend, search_limit=search_limit, search_radius_km=search_radius_km)
        self.availability = AvailabilityResolver(backend)
        self.guard = ConflictLimitGuard(backend, identity)
        self.treatments = OngoingTreatments(backend, identity)
        self.submitter = BookingSubmitter(backend, self.store, self.guard, identity)
        self.navigation = NavigationSynchronizer(self.store, navigation, on_exit=self._on_exit)
        self._identity = identity
        self._tasks: set[asyncio.Task] = set()
        self.exited = False
        self._logger = logging.getLogger(__name__)

        self.store.subscribe_draft(self._on_draft_change)
        self.store.subscribe_step(self._on_step_change)

    def mount(self) -> None:
        self.navigation.mount()

    @property
    def draft(self) -> BookingDraft:
        return self.store.draft

    @property
    def step(self) -> WizardStep:
        return self.store.step

    @property
    def error(self) -> str | None:
        return self.store.error

    @property
    def is_patient(self) -> bool:
        return self._identity.is_patient()

    @property
    def conflict_blocked(self) -> bool:
        draft = self.store.draft
        return self.guard.blocks_submit and self.guard.is_current_for(draft.clinic_id, draft.date)

    def progress(self) -> WizardProgress:
        return self.store.progress(
            blocked=self.conflict_blocked,
            has_ongoing_treatments=self.treatments.has_ongoing,
        )

    @property
    def selected_treatment(self) -> TreatmentPlanRef | None:
        return self.treatments.find(self.store.draft.treatment_plan_id)

    def select_clinic(self, clinic: ClinicRef) -> bool:
        if self.store.draft.clinic_id == clinic.id:
            return self.store.update_draft(clinic=clinic)
        return self.store.update_draft(
            clinic=clinic, doctor=None, services=(), date=None, time=None, treatment_plan_id=None
        )

    def toggle_service(self, service_id: str) -> bool:
        current = list(self.store.draft.services)
        if service_id in current:
            current.remove(service_id)
        else:
            current.append(service_id)
        return self.store.update_draft(services=current)

    def select_doctor(self, doctor: DoctorRef) -> bool:
        if self.store.draft.doctor_id == doctor.id:
            return self.store.update_draft(doctor=doctor)
        return self.store.update_draft(doctor=doctor, date=None, time=None)

    def select_date(self, value: date | str | None) -> bool:
        try:
            parsed = parse_date_value(value) if value is not None else None
        except ValueError:
            parsed = value
        if parsed is not None and parsed == self.store.draft.date:
            return self.store.update_draft(date=parsed)
        return self.store.update_draft(date=parsed, time=None)

    def select_time(self, value: time | str | None) -> bool:
        if value is None:
            return self.store.update_draft(time=None)
        try:
            parsed = parse_time_value(value)
        except ValueError:
            return self.store.update_draft(time=value)

        draft = self.store.draft
        if (
            self.availability.is_current_for(draft.doctor_id, draft.date, draft.services)
            and parsed not in self.availability.available_times
        ):
            self.store.set_error(SLOT_TAKEN)
            return False
        return self.store.update_draft(time=parsed)

    def set_notes(self, notes: str) -> bool:
        return self.store.update_draft(notes=notes)

    def select_treatment_plan(self, plan_id: str) -> bool:
        """Link the booking to one of the ongoing plans loaded for the selected clinic."""
        clinic_id = self.store.draft.clinic_id
        if not self.treatments.is_current_for(clinic_id) or self.treatments.find(plan_id) is None:
            self.store.set_error(UNKNOWN_TREATMENT_PLAN)
            return False
        self.treatments.dismiss()
        return self.store.update_draft(treatment_plan_id=plan_id)

    def clear_treatment_plan(self) -> bool:
        return self.store.update_draft(treatment_plan_id=None)

    def dismiss_treatment_prompt(self) -> None:
        self.treatments.dismiss()

    def next_step(self) -> bool:
        if self.store.step is WizardStep.datetime and self.store.can_advance and self.conflict_blocked:
            self.store.set_error(self.guard.block_message())
            return False
        return self.store.next_step()

    def previous_step(self) -> bool:
        if self.store.step.previous() is None:
            self.navigation.leave()
            return False
        return self.store.previous_step()

    def go_to_step(self, step: WizardStep | str) -> bool:
        if WizardStep(step) is WizardStep.confirm and self.conflict_blocked:
            self.store.set_error(self.guard.block_message())
            return False
        return self.store.go_to_step(step)

    def reset(self) -> None:
        self.store.reset_draft()

    async def submit(self) -> SubmitOutcome:
        return await self.submitter.submit()

    async def refresh_derived(self, force: bool = False) -> None:
        draft = self.store.draft
        await asyncio.gather(
            self.catalog.load(draft.clinic_id),
            self.availability.refresh(draft.doctor_id, draft.date, draft.services, force=force),
            self.guard.refresh(draft.clinic_id, draft.date, force=force or self.guard.check_failed),
            self.treatments.refresh(draft.clinic_id),
        )

    async def settle(self) -> None:
        """Wait for scheduled recomputation, then make sure every view matches the draft."""
        while self._tasks:
            results = await asyncio.gather(*list(self._tasks), return_exceptions=True)
            for result in results:
                if isinstance(result, Exception):
                    raise result
        await self.refresh_derived()

    def _on_draft_change(self, previous: BookingDraft, current: BookingDraft) -> None:
        self.exited = False
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop: settle() or refresh_derived() picks the change up.
            return
        task = loop.create_task(self.refresh_derived())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _on_step_change(self, step: WizardStep, cause: str) -> None:
        if cause == "reset":
            self._invalidate_derived()

    def _on_exit(self) -> None:
        self.exited = True
        self._invalidate_derived()

    def _invalidate_derived(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        self.catalog.invalidate()
        self.availability.invalidate()
        self.guard.invalidate()
        self.treatments.invalidate()
        self._logger.debug("Derived booking views invalidated", extra={"step": self.store.step.value})
