"""
Tests for committing a booking draft.
"""

from __future__ import annotations

import asyncio
from datetime import date, time, timedelta

import pytest

from clinic_booking.application.use_cases.draft_store import BookingDraftStore
from clinic_booking.application.use_cases.limit_guard import LIMIT_CHECK_FAILED, ConflictLimitGuard
from clinic_booking.application.use_cases.submitter import (
    GENERIC_FAILURE,
    LOGIN_REQUIRED,
    PATIENTS_ONLY,
    BookingSubmitter,
)
from clinic_booking.domain.entities.booking_draft import BookingDraft
from clinic_booking.domain.entities.identity import Identity
from clinic_booking.domain.entities.limit_status import AppointmentLimitStatus
from clinic_booking.domain.entities.refs import ClinicRef, DoctorRef
from clinic_booking.domain.entities.wizard_step import WizardStep
from clinic_booking.infrastructure.backend.mock_backend import InMemoryBookingBackend
from clinic_booking.infrastructure.identity.static_identity import StaticIdentity

DAY = date.today() + timedelta(days=7)
CLINIC = ClinicRef(id="clinic_downtown", name="Downtown Dental")
DOCTOR = DoctorRef(id="doc_reyes", name="Dr. Ana Reyes")


class SlowCommitBackend(InMemoryBookingBackend):
    """Holds every commit until `release` is set."""

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self.release = asyncio.Event()

    async def commit_booking(self, *args, **kwargs):
        await self.release.wait()
        return await super().commit_booking(*args, **kwargs)


class OptimisticLimitsBackend(InMemoryBookingBackend):
    """Reports no limits ahead of time; the commit still enforces them."""

    async def check_appointment_limit(self, patient_id, clinic_id, appointment_date):
        return AppointmentLimitStatus.unrestricted()


class CountingLimitsBackend(InMemoryBookingBackend):
    """Counts limit checks; fails the first `failures` of them and can hold them on `gate`."""

    def __init__(self, failures: int = 0, **kwargs) -> None:
        super().__init__(**kwargs)
        self.failures = failures
        self.limit_calls = 0
        self.gate: asyncio.Event | None = None
        self.started = asyncio.Event()

    async def check_appointment_limit(self, patient_id, clinic_id, appointment_date):
        self.limit_calls += 1
        self.started.set()
        if self.gate is not None:
            await self.gate.wait()
        if self.limit_calls <= self.failures:
            raise RuntimeError("limits service timed out")
        return await super().check_appointment_limit(patient_id, clinic_id, appointment_date)


class FailingCommitBackend(InMemoryBookingBackend):
    async def commit_booking(self, *args, **kwargs):
        raise RuntimeError("connection reset")


def _submitter(backend: InMemoryBookingBackend, identity: StaticIdentity | None = None):
    identity = identity or StaticIdentity.patient("patient_1")
    store = BookingDraftStore()
    guard = ConflictLimitGuard(backend, identity)
    return BookingSubmitter(backend, store, guard, identity), store, guard


def _fill(store: BookingDraftStore) -> None:
    assert store.update_draft(
        clinic=CLINIC,
        services=["svc_cleaning"],
        doctor=DOCTOR,
        date=DAY,
        time=time(10, 0),
        notes="  sensitive tooth  ",
    )
    assert store.go_to_step(WizardStep.confirm)


@pytest.mark.asyncio
async def test_successful_booking_resets_draft():
    """Test the happy path: one commit, draft cleared, wizard back on the clinic step."""
    identity = StaticIdentity.patient("patient_1")
    backend = InMemoryBookingBackend(identity=identity)
    submitter, store, _ = _submitter(backend, identity)
    _fill(store)

    outcome = await submitter.submit()

    assert outcome.success is True
    assert outcome.result.appointment_id == "apt_1"
    assert outcome.result.details["notes"] == "sensitive tooth"
    assert backend.commit_calls == 1
    assert store.draft == BookingDraft()
    assert store.step is WizardStep.clinic
    assert store.error is None


@pytest.mark.asyncio
async def test_same_day_conflict_blocks_before_commit():
    """Test that a known same-day appointment stops the submit without calling the backend."""
    identity = StaticIdentity.patient("patient_1")
    backend = InMemoryBookingBackend(identity=identity)
    backend.add_appointment("patient_1", "clinic_riverside", "doc_santos", DAY, time(15, 0))
    submitter, store, _ = _submitter(backend, identity)
    _fill(store)

    outcome = await submitter.submit()

    assert outcome.status == "invalid"
    assert outcome.reason == "daily_limit_exceeded"
    assert outcome.conflicting_appointment.clinic_name == "Riverside Smiles"
    assert backend.commit_calls == 0
    assert store.draft.clinic == CLINIC
    assert "Riverside Smiles" in store.error


@pytest.mark.asyncio
async def test_duplicate_submit_commits_once():
    """Test that a second submit while one is in flight is ignored."""
    identity = StaticIdentity.patient("patient_1")
    backend = SlowCommitBackend(identity=identity)
    submitter, store, _ = _submitter(backend, identity)
    _fill(store)

    first = asyncio.create_task(submitter.submit())
    await asyncio.sleep(0)
    assert submitter.in_flight is True

    second = await submitter.submit()
    backend.release.set()
    first_outcome = await first

    assert second.status == "ignored"
    assert first_outcome.success is True
    assert backend.commit_calls == 1
    assert len(backend.appointments) == 1
    assert submitter.in_flight is False


@pytest.mark.asyncio
async def test_commit_rejection_is_recorded_in_guard():
    """Test that a commit-time conflict becomes the guard's snapshot and keeps the draft."""
    identity = StaticIdentity.patient("patient_1")
    backend = OptimisticLimitsBackend(identity=identity)
    backend.add_appointment("patient_1", "clinic_riverside", "doc_santos", DAY, time(15, 0))
    submitter, store, guard = _submitter(backend, identity)
    _fill(store)

    outcome = await submitter.submit()

    assert outcome.status == "rejected"
    assert outcome.reason == "daily_limit_exceeded"
    assert backend.commit_calls == 1
    assert guard.is_current_for("clinic_downtown", DAY)
    assert guard.blocks_submit is True
    assert store.draft.doctor == DOCTOR
    assert "Only one appointment per day" in store.error

    # The recorded snapshot now blocks a retry without another commit
    retry = await submitter.submit()
    assert retry.status == "invalid"
    assert backend.commit_calls == 1


@pytest.mark.asyncio
async def test_pending_limit_rejection_is_recorded():
    """Test that a pending-cap rejection at commit is surfaced with its own wording."""
    identity = StaticIdentity.patient("patient_1")
    backend = OptimisticLimitsBackend(identity=identity, max_pending=1)
    backend.add_appointment("patient_1", "clinic_downtown", "doc_cruz", DAY + timedelta(days=3), time(9, 0))
    submitter, store, guard = _submitter(backend, identity)
    _fill(store)

    outcome = await submitter.submit()

    assert outcome.status == "rejected"
    assert outcome.reason == "pending_limit_exceeded"
    assert guard.blocks_submit is True
    assert store.error == "Pending appointment limit reached"


@pytest.mark.asyncio
async def test_unexpected_failure_keeps_draft():
    """Test that a transport failure reports a generic error and leaves the draft for retry."""
    identity = StaticIdentity.patient("patient_1")
    backend = FailingCommitBackend(identity=identity)
    submitter, store, _ = _submitter(backend, identity)
    _fill(store)

    outcome = await submitter.submit()

    assert outcome.status == "failed"
    assert outcome.message == GENERIC_FAILURE
    assert store.error == GENERIC_FAILURE
    assert store.draft.time == time(10, 0)
    assert store.step is WizardStep.confirm


@pytest.mark.asyncio
async def test_signed_out_patient_is_asked_to_log_in():
    """Test that an authentication failure from the backend maps to the login prompt."""
    backend = InMemoryBookingBackend(identity=None)
    submitter, store, _ = _submitter(backend, StaticIdentity.patient("patient_1"))
    _fill(store)

    outcome = await submitter.submit()

    assert outcome.status == "failed"
    assert outcome.message == LOGIN_REQUIRED
    assert store.draft.clinic == CLINIC


@pytest.mark.asyncio
async def test_incomplete_draft_is_not_committed():
    """Test that a draft without a time is refused locally."""
    identity = StaticIdentity.patient("patient_1")
    backend = InMemoryBookingBackend(identity=identity)
    submitter, store, _ = _submitter(backend, identity)
    store.update_draft(clinic=CLINIC, services=["svc_cleaning"], doctor=DOCTOR, date=DAY)

    outcome = await submitter.submit()

    assert outcome.status == "invalid"
    assert outcome.message == "Please select a time"
    assert backend.commit_calls == 0


@pytest.mark.asyncio
async def test_only_patients_can_submit():
    """Test that staff accounts cannot book through the patient flow."""
    identity = StaticIdentity(Identity(patient_id="staff_1", role="staff"))
    backend = InMemoryBookingBackend(identity=identity)
    submitter, store, _ = _submitter(backend, identity)
    _fill(store)

    outcome = await submitter.submit()

    assert outcome.status == "invalid"
    assert outcome.message == PATIENTS_ONLY
    assert backend.commit_calls == 0


@pytest.mark.asyncio
async def test_failed_limit_check_is_retried_on_next_submit():
    """Test that a limit check that errored is re-run by the next submit instead of blocking forever."""
    identity = StaticIdentity.patient("patient_1")
    backend = CountingLimitsBackend(failures=1, identity=identity)
    submitter, store, guard = _submitter(backend, identity)
    _fill(store)

    first = await submitter.submit()

    assert first.status == "invalid"
    assert first.message.startswith(LIMIT_CHECK_FAILED)
    assert guard.check_failed is True
    assert backend.commit_calls == 0

    second = await submitter.submit()

    assert second.success is True
    assert backend.limit_calls == 2
    assert backend.commit_calls == 1


@pytest.mark.asyncio
async def test_limits_for_another_date_are_rechecked_before_commit():
    """Test that a limit snapshot taken for a different date is refreshed before committing."""
    identity = StaticIdentity.patient("patient_1")
    backend = CountingLimitsBackend(identity=identity)
    backend.add_appointment("patient_1", "clinic_riverside", "doc_santos", DAY, time(15, 0))
    submitter, store, guard = _submitter(backend, identity)
    _fill(store)
    other_day = DAY + timedelta(days=1)
    await guard.refresh("clinic_downtown", other_day)
    assert guard.blocks_submit is False

    outcome = await submitter.submit()

    assert outcome.status == "invalid"
    assert outcome.reason == "daily_limit_exceeded"
    assert guard.is_current_for("clinic_downtown", DAY)
    assert backend.limit_calls == 2
    assert backend.commit_calls == 0


@pytest.mark.asyncio
async def test_draft_edited_during_limit_check_is_not_committed():
    """Test that changing the draft while the pre-commit limit check runs aborts the submit."""
    identity = StaticIdentity.patient("patient_1")
    backend = CountingLimitsBackend(identity=identity)
    backend.gate = asyncio.Event()
    submitter, store, _ = _submitter(backend, identity)
    _fill(store)

    task = asyncio.create_task(submitter.submit())
    await asyncio.wait_for(backend.started.wait(), timeout=1)
    assert store.update_draft(notes="actually two teeth")
    backend.gate.set()
    outcome = await task

    assert outcome.status == "invalid"
    assert outcome.message == "Your booking details changed. Please review them and submit again."
    assert backend.commit_calls == 0
    assert store.draft.notes == "actually two teeth"
