#!/usr/bin/env python3
"""Smoke test for the booking API against a running server."""

import sys
from datetime import date, timedelta

import httpx


BASE_URL = "http://127.0.0.1:8001/api/v1/booking"
HEADERS = {"X-Patient-Id": "smoke_patient", "X-User-Role": "patient"}


def _call(method: str, path: str, **kwargs) -> dict:
    response = httpx.request(method, f"{BASE_URL}{path}", headers=HEADERS, timeout=30.0, **kwargs)
    response.raise_for_status()
    return response.json() if response.content else {}


def run_booking() -> bool:
    """Walk the wizard with the first clinic, service, doctor and free slot."""
    print("=" * 60)
    print("Booking walk-through")
    print("=" * 60)

    try:
        clinics = _call("GET", "/clinics")
        if not clinics:
            print("❌ No clinics returned")
            return False
        session = _call("POST", "/sessions")
        url = f"/sessions/{session['session_id']}"
        print(f"Session: {session['session_id']}")

        _call("PATCH", f"{url}/draft", json={"clinic_id": clinics[0]["id"]})
        catalog = _call("GET", f"{url}/catalog")
        _call(
            "PATCH",
            f"{url}/draft",
            json={"services": [catalog["services"][0]["id"]], "doctor_id": catalog["doctors"][0]["id"]},
        )

        for offset in range(1, 15):
            day = (date.today() + timedelta(days=offset)).isoformat()
            state = _call("PATCH", f"{url}/draft", json={"date": day})
            if state["available_times"]:
                break
        else:
            print("❌ No free slots in the next two weeks")
            return False

        state = _call("PATCH", f"{url}/draft", json={"time": state["available_times"][0]})
        state = _call("POST", f"{url}/steps/confirm")
        print(f"Step: {state['step']}  error: {state['error']}")

        result = _call("POST", f"{url}/submit")
        print(f"Submit: {result['status']} {result.get('message') or ''}")
        if result["appointment"]:
            print(f"✅ Appointment {result['appointment']['appointment_id']}")
        return result["status"] == "success"
    except httpx.HTTPStatusError as e:
        print(f"❌ HTTP Error: {e.response.status_code}")
        print(f"Response: {e.response.text}")
        return False
    except Exception as e:
        print(f"❌ Error: {e}")
        return False


if __name__ == "__main__":
    sys.exit(0 if run_booking() else 1)
