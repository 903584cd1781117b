"""
Tests for the booking HTTP API.
"""

from __future__ import annotations

import logging
from datetime import date, time, timedelta

import pytest
from fastapi.testclient import TestClient

from clinic_booking.domain.entities.refs import TreatmentPlanRef
from clinic_booking.infrastructure.backend.mock_backend import InMemoryBookingBackend
from clinic_booking.infrastructure.store.memory_session_store import MemoryBookingSessionStore
from clinic_booking.main import ContextFormatter, app
from clinic_booking.wiring.dependencies import get_backend, get_session_store

PREFIX = "/api/v1/booking"
PATIENT = {"X-Patient-Id": "patient_1", "X-User-Role": "patient"}
DAY = date.today() + timedelta(days=7)


@pytest.fixture
def backend():
    return InMemoryBookingBackend()


@pytest.fixture
def client(backend):
    store = MemoryBookingSessionStore()
    app.dependency_overrides[get_backend] = lambda: backend
    app.dependency_overrides[get_session_store] = lambda: store
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _start(client: TestClient, headers: dict | None = None) -> str:
    response = client.post(f"{PREFIX}/sessions", headers=headers or PATIENT)
    assert response.status_code == 201
    return response.json()["session_id"]


def test_health(client):
    """Test the liveness endpoint."""
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_new_session_starts_on_clinic_step(client):
    """Test that a new session has an empty draft on the first step."""
    session_id = _start(client)

    data = client.get(f"{PREFIX}/sessions/{session_id}").json()

    assert data["step"] == "clinic"
    assert data["draft"]["clinic"] is None
    assert data["progress"]["total_steps"] == 5
    assert data["progress"]["can_proceed"] is False
    assert data["progress"]["booking_type"] == "consultation_only"
    assert data["treatments"] == []


def test_unknown_session_is_404(client):
    """Test that operations on a missing session answer 404."""
    assert client.get(f"{PREFIX}/sessions/nope").status_code == 404
    assert client.post(f"{PREFIX}/sessions/nope/steps/next").status_code == 404
    assert client.delete(f"{PREFIX}/sessions/nope").status_code == 404


def test_list_clinics(client):
    """Test the clinic search endpoint."""
    response = client.get(f"{PREFIX}/clinics")

    assert response.status_code == 200
    assert [c["id"] for c in response.json()] == ["clinic_downtown", "clinic_riverside"]


def test_unknown_clinic_is_400(client):
    """Test that selecting a clinic outside the search results is a bad request."""
    session_id = _start(client)

    response = client.patch(f"{PREFIX}/sessions/{session_id}/draft", json={"clinic_id": "clinic_mars"})

    assert response.status_code == 400


def test_catalog_follows_selected_clinic(client):
    """Test that the catalog lists the selected clinic's doctors and services."""
    session_id = _start(client)
    client.patch(f"{PREFIX}/sessions/{session_id}/draft", json={"clinic_id": "clinic_riverside"})

    data = client.get(f"{PREFIX}/sessions/{session_id}/catalog").json()

    assert data["clinic_id"] == "clinic_riverside"
    assert [d["id"] for d in data["doctors"]] == ["doc_santos"]
    assert {s["id"] for s in data["services"]} == {"svc_root_canal", "svc_checkup"}


def test_full_booking_over_http(client, backend):
    """Test the whole wizard and a successful submit through the API."""
    session_id = _start(client)
    url = f"{PREFIX}/sessions/{session_id}"

    data = client.patch(f"{url}/draft", json={"clinic_id": "clinic_downtown", "services": ["svc_cleaning"]}).json()
    assert data["draft"]["clinic"]["id"] == "clinic_downtown"
    assert data["draft"]["services"] == ["svc_cleaning"]

    client.post(f"{url}/steps/next")
    data = client.post(f"{url}/steps/next").json()
    assert data["step"] == "doctor"

    data = client.patch(f"{url}/draft", json={"doctor_id": "doc_reyes", "date": DAY.isoformat()}).json()
    assert data["error"] is None
    assert "09:00" in data["available_times"]

    data = client.post(f"{url}/steps/next").json()
    assert data["step"] == "datetime"
    client.patch(f"{url}/draft", json={"time": "09:00", "notes": "first visit"})
    data = client.post(f"{url}/steps/next").json()
    assert data["step"] == "confirm"
    assert data["progress"]["is_complete"] is True

    response = client.post(f"{url}/submit")

    assert response.status_code == 200
    result = response.json()
    assert result["status"] == "success"
    assert result["appointment"]["appointment_id"] == "apt_1"
    assert result["session"]["step"] == "clinic"
    assert result["session"]["draft"]["clinic"] is None
    assert backend.appointments[0].time == time(9, 0)
    assert backend.appointments[0].patient_id == "patient_1"


def test_past_date_reports_error(client):
    """Test that a past date is refused and reported on the session."""
    session_id = _start(client)
    url = f"{PREFIX}/sessions/{session_id}"

    data = client.patch(
        f"{url}/draft", json={"date": (date.today() - timedelta(days=2)).isoformat()}
    ).json()

    assert data["error"] == "Cannot book appointments in the past"
    assert data["draft"]["date"] is None


def test_same_day_conflict_is_shown_before_submit(client, backend):
    """Test that the limit status exposes an existing same-day appointment."""
    backend.add_appointment("patient_1", "clinic_riverside", "doc_santos", DAY, time(15, 0))
    session_id = _start(client)
    url = f"{PREFIX}/sessions/{session_id}"

    data = client.patch(
        f"{url}/draft",
        json={"clinic_id": "clinic_downtown", "services": ["svc_cleaning"], "doctor_id": "doc_reyes", "date": DAY.isoformat()},
    ).json()

    assert data["limit_status"]["allowed"] is False
    assert data["limit_status"]["reason"] == "daily_limit_exceeded"
    assert data["limit_status"]["conflicting_appointment"]["clinic_name"] == "Riverside Smiles"

    client.patch(f"{url}/draft", json={"time": "09:00"})
    result = client.post(f"{url}/submit").json()
    assert result["status"] == "invalid"
    assert backend.appointments[0].clinic_id == "clinic_riverside"
    assert len(backend.appointments) == 1


def test_jump_to_unreachable_step_reports_blocker(client):
    """Test that jumping past missing data keeps the step and explains why."""
    session_id = _start(client)

    data = client.post(f"{PREFIX}/sessions/{session_id}/steps/confirm").json()

    assert data["step"] == "clinic"
    assert data["error"].startswith("Please complete the clinic step first")


def test_history_back_out_of_flow(client):
    """Test that going back past the first booking entry marks the flow as left."""
    session_id = _start(client)
    url = f"{PREFIX}/sessions/{session_id}"
    client.patch(f"{url}/draft", json={"clinic_id": "clinic_downtown"})
    client.post(f"{url}/steps/next")

    data = client.post(f"{url}/history/back").json()

    assert data["left_flow"] is True
    assert data["step"] == "services"
    assert data["draft"]["clinic"]["id"] == "clinic_downtown"
    assert client.post(f"{url}/history/back").status_code == 409
    assert client.post(f"{url}/history/sideways").status_code == 400


def test_staff_cannot_submit(client):
    """Test that non-patient identities get a refusal from submit."""
    session_id = _start(client, headers={"X-Patient-Id": "staff_1", "X-User-Role": "staff"})

    result = client.post(f"{PREFIX}/sessions/{session_id}/submit").json()

    assert result["status"] == "invalid"
    assert result["message"] == "Only patients can book appointments"


def test_discard_session(client):
    """Test that a discarded session is gone."""
    session_id = _start(client)

    assert client.delete(f"{PREFIX}/sessions/{session_id}").status_code == 204
    assert client.get(f"{PREFIX}/sessions/{session_id}").status_code == 404


def test_link_and_unlink_treatment_plan(client, backend):
    """Test that ongoing plans are listed for the clinic and can be linked and unlinked."""
    backend.add_treatment_plan(
        "patient_1", "clinic_downtown", TreatmentPlanRef(id="tp_1", treatment_name="Braces adjustment")
    )
    session_id = _start(client)
    url = f"{PREFIX}/sessions/{session_id}"

    data = client.patch(f"{url}/draft", json={"clinic_id": "clinic_downtown"}).json()
    assert [t["id"] for t in data["treatments"]] == ["tp_1"]
    assert data["show_treatment_prompt"] is True
    assert data["progress"]["has_ongoing_treatments"] is True

    data = client.patch(f"{url}/draft", json={"treatment_plan_id": "tp_1", "services": ["svc_cleaning"]}).json()
    assert data["draft"]["treatment_plan_id"] == "tp_1"
    assert data["progress"]["booking_type"] == "treatment_plan_follow_up"
    assert data["show_treatment_prompt"] is False

    data = client.patch(f"{url}/draft", json={"treatment_plan_id": None}).json()
    assert data["draft"]["treatment_plan_id"] is None
    assert data["progress"]["is_linked_to_treatment"] is False

    data = client.patch(f"{url}/draft", json={"treatment_plan_id": "tp_missing"}).json()
    assert data["draft"]["treatment_plan_id"] is None
    assert data["error"] == "That treatment plan is not available for this clinic"


def test_dismiss_treatment_prompt(client, backend):
    """Test that the link prompt can be dismissed without linking a plan."""
    backend.add_treatment_plan(
        "patient_1", "clinic_downtown", TreatmentPlanRef(id="tp_1", treatment_name="Braces adjustment")
    )
    session_id = _start(client)
    url = f"{PREFIX}/sessions/{session_id}"
    client.patch(f"{url}/draft", json={"clinic_id": "clinic_downtown"})

    data = client.post(f"{url}/treatments/dismiss").json()

    assert data["show_treatment_prompt"] is False
    assert [t["id"] for t in data["treatments"]] == ["tp_1"]
    assert data["draft"]["treatment_plan_id"] is None


def test_new_clinic_moves_step_back_over_http(client):
    """Test that picking another clinic from a later step lands the wizard on services."""
    session_id = _start(client)
    url = f"{PREFIX}/sessions/{session_id}"
    client.patch(f"{url}/draft", json={"clinic_id": "clinic_downtown", "services": ["svc_cleaning"]})
    client.post(f"{url}/steps/next")
    assert client.post(f"{url}/steps/next").json()["step"] == "doctor"

    data = client.patch(f"{url}/draft", json={"clinic_id": "clinic_riverside"}).json()

    assert data["step"] == "services"
    assert data["draft"]["services"] == []


def test_log_lines_carry_booking_context():
    """Test that the log formatter appends clinic and appointment ids from `extra`."""
    formatter = ContextFormatter("%(levelname)s:%(name)s:%(message)s")
    record = logging.LogRecord("clinic_booking", logging.INFO, __file__, 1, "Appointment booked", None, None)
    record.clinic_id = "clinic_downtown"
    record.appointment_id = "apt_1"

    line = formatter.format(record)

    assert line == "INFO:clinic_booking:Appointment booked | clinic_id=clinic_downtown appointment_id=apt_1"
