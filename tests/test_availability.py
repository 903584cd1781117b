"""
Tests for time slot resolution (newest request wins).
"""

from __future__ import annotations

import asyncio
from datetime import date, time

import pytest

from clinic_booking.application.use_cases.availability import AvailabilityResolver
from clinic_booking.domain.entities.time_slot import SlotQueryResult, TimeSlot

DAY = date(2025, 3, 10)


class GatedSlotsBackend:
    """Answers slot queries only once the test opens the gate for that doctor."""

    def __init__(self) -> None:
        self.gates: dict[str, asyncio.Event] = {}
        self.calls: list[tuple[str, date, list[str]]] = []
        self.fail = False

    def gate(self, doctor_id: str) -> asyncio.Event:
        return self.gates.setdefault(doctor_id, asyncio.Event())

    async def compute_time_slots(self, doctor_id, appointment_date, service_ids):
        self.calls.append((doctor_id, appointment_date, list(service_ids)))
        await self.gate(doctor_id).wait()
        if self.fail:
            raise RuntimeError("slot service down")
        hour = 9 if doctor_id == "doc_a" else 14
        return SlotQueryResult(
            date=appointment_date,
            doctor_id=doctor_id,
            total_duration_minutes=30,
            slots=[TimeSlot(time=time(hour, 0), available=True), TimeSlot(time=time(hour, 30), available=False)],
        )


@pytest.mark.asyncio
async def test_latest_request_wins_even_when_older_answers_last():
    """Test that a slower answer for an older key never overwrites the newer one."""
    backend = GatedSlotsBackend()
    resolver = AvailabilityResolver(backend)

    older = asyncio.create_task(resolver.refresh("doc_a", DAY, ["svc_cleaning"]))
    await asyncio.sleep(0)
    newer = asyncio.create_task(resolver.refresh("doc_b", DAY, ["svc_cleaning"]))
    await asyncio.sleep(0)

    backend.gate("doc_b").set()
    await newer
    assert resolver.available_times == [time(14, 0)]
    assert resolver.is_current_for("doc_b", DAY, ["svc_cleaning"])

    backend.gate("doc_a").set()
    await older
    assert resolver.available_times == [time(14, 0)]
    assert resolver.is_current_for("doc_b", DAY, ["svc_cleaning"])
    assert not resolver.is_current_for("doc_a", DAY, ["svc_cleaning"])


@pytest.mark.asyncio
async def test_same_key_shares_inflight_query():
    """Test that repeated refreshes for the same key issue one backend query."""
    backend = GatedSlotsBackend()
    resolver = AvailabilityResolver(backend)

    first = asyncio.create_task(resolver.refresh("doc_a", DAY, ["svc_filling", "svc_cleaning"]))
    second = asyncio.create_task(resolver.refresh("doc_a", DAY, ["svc_cleaning", "svc_filling"]))
    await asyncio.sleep(0)
    assert resolver.is_resolving is True

    backend.gate("doc_a").set()
    await asyncio.gather(first, second)

    assert len(backend.calls) == 1
    assert resolver.is_resolving is False
    assert [s.time for s in resolver.slots] == [time(9, 0), time(9, 30)]


@pytest.mark.asyncio
async def test_force_requeries_same_key():
    """Test that a forced refresh asks the backend again."""
    backend = GatedSlotsBackend()
    backend.gate("doc_a").set()
    resolver = AvailabilityResolver(backend)

    await resolver.refresh("doc_a", DAY, ["svc_cleaning"])
    await resolver.refresh("doc_a", DAY, ["svc_cleaning"], force=True)

    assert len(backend.calls) == 2


@pytest.mark.asyncio
async def test_incomplete_key_yields_no_slots_without_query():
    """Test that missing doctor or date empties the slots and skips the backend."""
    backend = GatedSlotsBackend()
    backend.gate("doc_a").set()
    resolver = AvailabilityResolver(backend)
    await resolver.refresh("doc_a", DAY, ["svc_cleaning"])

    slots = await resolver.refresh("doc_a", None, ["svc_cleaning"])

    assert slots == []
    assert resolver.slots == []
    assert len(backend.calls) == 1


@pytest.mark.asyncio
async def test_backend_failure_means_no_availability():
    """Test that a failed slot query resolves to an empty list instead of raising."""
    backend = GatedSlotsBackend()
    backend.fail = True
    backend.gate("doc_a").set()
    resolver = AvailabilityResolver(backend)

    slots = await resolver.refresh("doc_a", DAY, ["svc_cleaning"])

    assert slots == []
    assert resolver.is_current_for("doc_a", DAY, ["svc_cleaning"])


@pytest.mark.asyncio
async def test_invalidate_drops_inflight_result():
    """Test that an answer arriving after invalidation is discarded."""
    backend = GatedSlotsBackend()
    resolver = AvailabilityResolver(backend)

    pending = asyncio.create_task(resolver.refresh("doc_a", DAY, ["svc_cleaning"]))
    await asyncio.sleep(0)
    resolver.invalidate()
    backend.gate("doc_a").set()
    await pending

    assert resolver.slots == []
    assert resolver.resolved_key is None
