#!/usr/bin/env python3
from __future__ import annotations

"""
Interactive local booking harness (no HTTP).

Usage:
  python3 scripts/book_local.py [patient_id]

What it does:
- Builds a booking session through the same wiring as the API
- Lets you walk the wizard with short commands
- Prints the step, draft, slots and limit status after every command
"""

import asyncio
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from clinic_booking.application.use_cases.booking_session import BookingSession
from clinic_booking.application.utils.dates import format_time
from clinic_booking.wiring.dependencies import build_booking_session, build_identity

HELP = """Commands:
  clinics            -> list clinics
  clinic <id>        -> select a clinic
  services           -> list the clinic's services and doctors
  toggle <id>        -> add/remove a service
  doctor <id>        -> select a doctor
  date YYYY-MM-DD    -> select a date
  time HH:MM         -> select a time
  notes <text>       -> set notes
  plan <id> | unplan -> link/unlink an ongoing treatment plan
  next | prev | go <step>
  back | forward     -> history gestures
  submit | reset | /quit"""


def _print_state(session: BookingSession) -> None:
    draft = session.draft
    progress = session.progress()
    print("\n--- Wizard ---")
    print(f"step: {session.step.value} ({progress.current_step_index + 1}/{progress.total_steps})")
    print(f"clinic: {draft.clinic.name if draft.clinic else '-'}")
    print(f"services: {', '.join(draft.services) or '-'}")
    print(f"doctor: {draft.doctor.name if draft.doctor else '-'}")
    print(f"date: {draft.date or '-'}  time: {format_time(draft.time) if draft.time else '-'}")
    if session.availability.slots:
        times = [format_time(t) for t in session.availability.available_times]
        print(f"available: {' '.join(times) or 'none'}")
    status = session.guard.status
    if status is not None and not status.allowed:
        print(f"limits: {session.guard.block_message()}")
    for plan in session.treatments.plans:
        marker = "*" if plan.id == draft.treatment_plan_id else " "
        print(f" {marker} plan {plan.id}: {plan.treatment_name} ({plan.visits_completed}/{plan.total_visits_planned or '?'})")
    print(f"booking type: {progress.booking_type}")
    if session.error:
        print(f"error: {session.error}")
    if session.exited:
        print("(left the booking flow; 'forward' to come back)")


async def _run(session: BookingSession, command: str, arg: str) -> None:
    if command == "clinics":
        for clinic in await session.catalog.list_clinics():
            print(f"  {clinic.id}: {clinic.name} ({clinic.distance_km} km)")
    elif command == "clinic":
        clinic = next((c for c in await session.catalog.list_clinics() if c.id == arg), None)
        if clinic is None:
            print(f"Unknown clinic: {arg}")
        else:
            session.select_clinic(clinic)
    elif command == "services":
        await session.settle()
        for service in session.catalog.services:
            print(f"  service {service.id}: {service.name} {service.duration_minutes}min")
        for doctor in session.catalog.doctors:
            print(f"  doctor {doctor.id}: {doctor.name} ({doctor.specialization})")
    elif command == "toggle":
        session.toggle_service(arg)
    elif command == "doctor":
        await session.settle()
        doctor = next((d for d in session.catalog.doctors if d.id == arg), None)
        if doctor is None:
            print(f"Unknown doctor: {arg}")
        else:
            session.select_doctor(doctor)
    elif command == "date":
        session.select_date(arg)
    elif command == "time":
        await session.settle()
        session.select_time(arg)
    elif command == "notes":
        session.set_notes(arg)
    elif command == "plan":
        await session.settle()
        session.select_treatment_plan(arg)
    elif command == "unplan":
        session.clear_treatment_plan()
    elif command == "next":
        await session.settle()
        session.next_step()
    elif command == "prev":
        session.previous_step()
    elif command == "go":
        await session.settle()
        session.go_to_step(arg)
    elif command in ("back", "forward"):
        port = session.navigation.port
        getattr(port, command)()
    elif command == "submit":
        outcome = await session.submit()
        print(f"\n--- Submit: {outcome.status} ---")
        if outcome.message:
            print(outcome.message)
        if outcome.result is not None:
            print(f"appointment: {outcome.result.appointment_id} ({outcome.result.status})")
            print(f"estimate: {outcome.result.pricing_estimate}")
    elif command == "reset":
        session.reset()
    else:
        print(HELP)
        return

    if not session.exited:
        await session.settle()
    _print_state(session)


async def main() -> None:
    patient_id = sys.argv[1] if len(sys.argv) > 1 else "local_patient"
    session = build_booking_session(build_identity(patient_id, "patient"))
    print("\nLocal Booking Harness")
    print("-" * 60)
    print(f"patient_id: {patient_id}")
    print(HELP)
    print("-" * 60)

    while True:
        try:
            line = input("\n> ").strip()
        except (EOFError, KeyboardInterrupt):
            print("\nBye!")
            return
        if not line:
            continue
        if line in ("/quit", "/exit"):
            print("Bye!")
            return

        command, _, arg = line.partition(" ")
        try:
            await _run(session, command.lower(), arg.strip())
        except ValueError as e:
            print(f"ERROR: {e}")


if __name__ == "__main__":
    asyncio.run(main())
