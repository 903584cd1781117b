from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Header, HTTPException, Response

from clinic_booking.api.v1.schemas import (
    CatalogSchema,
    ClinicSchema,
    DoctorSchema,
    DraftUpdateSchema,
    ServiceSchema,
    SessionSchema,
    SubmitResponseSchema,
    session_snapshot,
    submit_response,
)
from clinic_booking.application.ports.booking_backend import BookingBackendPort
from clinic_booking.application.ports.session_store import BookingSessionStorePort
from clinic_booking.application.use_cases.booking_session import BookingSession
from clinic_booking.application.use_cases.catalog import ClinicCatalog
from clinic_booking.core.config import settings
from clinic_booking.domain.entities.wizard_step import WizardStep
from clinic_booking.infrastructure.navigation.memory_history import InMemoryHistory
from clinic_booking.wiring.dependencies import (
    build_booking_session,
    build_identity,
    get_backend,
    get_session_store,
)

router = APIRouter()
logger = logging.getLogger(__name__)


def _load_session(session_id: str, store: BookingSessionStorePort) -> BookingSession:
    session = store.get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Booking session not found")
    return session


@router.post("/sessions", response_model=SessionSchema, status_code=201)
async def start_session(
    x_patient_id: str | None = Header(None),
    x_user_role: str | None = Header(None),
    store: BookingSessionStorePort = Depends(get_session_store),
    backend: BookingBackendPort = Depends(get_backend),
):
    identity = build_identity(x_patient_id, x_user_role)
    session = build_booking_session(identity, backend=backend)
    session_id = store.create_id()
    store.put(session_id, session)
    logger.info("Booking session started", extra={"session_id": session_id})
    return session_snapshot(session_id, session)


@router.get("/sessions/{session_id}", response_model=SessionSchema)
async def get_session(session_id: str, store: BookingSessionStorePort = Depends(get_session_store)):
    session = _load_session(session_id, store)
    return session_snapshot(session_id, session)


@router.delete("/sessions/{session_id}", status_code=204)
async def discard_session(session_id: str, store: BookingSessionStorePort = Depends(get_session_store)):
    if not store.discard(session_id):
        raise HTTPException(status_code=404, detail="Booking session not found")
    return Response(status_code=204)


@router.patch("/sessions/{session_id}/draft", response_model=SessionSchema)
async def update_draft(
    session_id: str,
    req: DraftUpdateSchema,
    store: BookingSessionStorePort = Depends(get_session_store),
):
    """
    Apply selections in wizard order. Each dependent selection sees the
    lookups of the previous one, and the first rejected change stops the
    rest; the session's `error` says why.
    """
    session = _load_session(session_id, store)
    fields = req.model_fields_set

    try:
        if "clinic_id" in fields and req.clinic_id is not None:
            clinics = await session.catalog.list_clinics()
            clinic = next((c for c in clinics if c.id == req.clinic_id), None)
            if clinic is None:
                raise HTTPException(status_code=400, detail=f"Unknown clinic: {req.clinic_id}")
            if not session.select_clinic(clinic):
                return session_snapshot(session_id, session)
            await session.settle()

        if "treatment_plan_id" in fields:
            await session.settle()
            if req.treatment_plan_id is None:
                session.clear_treatment_plan()
            elif not session.select_treatment_plan(req.treatment_plan_id):
                return session_snapshot(session_id, session)

        if "services" in fields and req.services is not None:
            if not session.store.update_draft(services=req.services):
                return session_snapshot(session_id, session)
        if req.toggle_service:
            if not session.toggle_service(req.toggle_service):
                return session_snapshot(session_id, session)

        if "doctor_id" in fields and req.doctor_id is not None:
            await session.settle()
            doctor = next((d for d in session.catalog.doctors if d.id == req.doctor_id), None)
            if doctor is None:
                raise HTTPException(status_code=400, detail=f"Unknown doctor: {req.doctor_id}")
            if not session.select_doctor(doctor):
                return session_snapshot(session_id, session)

        if "date" in fields:
            if not session.select_date(req.date):
                return session_snapshot(session_id, session)

        if "time" in fields:
            await session.settle()
            if not session.select_time(req.time):
                return session_snapshot(session_id, session)

        if "notes" in fields:
            session.set_notes(req.notes or "")

        await session.settle()
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return session_snapshot(session_id, session)


@router.post("/sessions/{session_id}/steps/next", response_model=SessionSchema)
async def next_step(session_id: str, store: BookingSessionStorePort = Depends(get_session_store)):
    session = _load_session(session_id, store)
    await session.settle()
    session.next_step()
    return session_snapshot(session_id, session)


@router.post("/sessions/{session_id}/steps/previous", response_model=SessionSchema)
async def previous_step(session_id: str, store: BookingSessionStorePort = Depends(get_session_store)):
    session = _load_session(session_id, store)
    session.previous_step()
    return session_snapshot(session_id, session)


@router.post("/sessions/{session_id}/steps/{step}", response_model=SessionSchema)
async def go_to_step(session_id: str, step: WizardStep, store: BookingSessionStorePort = Depends(get_session_store)):
    session = _load_session(session_id, store)
    await session.settle()
    session.go_to_step(step)
    return session_snapshot(session_id, session)


@router.post("/sessions/{session_id}/history/{direction}", response_model=SessionSchema)
async def move_history(session_id: str, direction: str, store: BookingSessionStorePort = Depends(get_session_store)):
    session = _load_session(session_id, store)
    history = session.navigation.port
    if not isinstance(history, InMemoryHistory):
        raise HTTPException(status_code=409, detail="Session history is not server-managed")
    if direction == "back":
        moved = history.back()
    elif direction == "forward":
        moved = history.forward()
    else:
        raise HTTPException(status_code=400, detail=f"Unknown history direction: {direction}")

    if not moved:
        raise HTTPException(status_code=409, detail=f"Cannot go {direction}")
    if not session.exited:
        await session.settle()
    return session_snapshot(session_id, session)


@router.post("/sessions/{session_id}/treatments/dismiss", response_model=SessionSchema)
async def dismiss_treatment_prompt(session_id: str, store: BookingSessionStorePort = Depends(get_session_store)):
    session = _load_session(session_id, store)
    await session.settle()
    session.dismiss_treatment_prompt()
    return session_snapshot(session_id, session)


@router.post("/sessions/{session_id}/reset", response_model=SessionSchema)
async def reset_session(session_id: str, store: BookingSessionStorePort = Depends(get_session_store)):
    session = _load_session(session_id, store)
    session.reset()
    return session_snapshot(session_id, session)


@router.get("/clinics", response_model=list[ClinicSchema])
async def list_clinics(backend: BookingBackendPort = Depends(get_backend)):
    catalog = ClinicCatalog(
        backend,
        search_limit=settings.CLINIC_SEARCH_LIMIT,
        search_radius_km=settings.CLINIC_SEARCH_RADIUS_KM,
    )
    clinics = await catalog.list_clinics()
    if catalog.error:
        raise HTTPException(status_code=502, detail=catalog.error)
    return [ClinicSchema.from_entity(c) for c in clinics]


@router.get("/sessions/{session_id}/catalog", response_model=CatalogSchema)
async def get_catalog(session_id: str, store: BookingSessionStorePort = Depends(get_session_store)):
    session = _load_session(session_id, store)
    await session.settle()
    offer = session.catalog.offer
    return CatalogSchema(
        clinic_id=session.draft.clinic_id,
        doctors=[DoctorSchema.from_entity(d) for d in offer.doctors],
        services=[ServiceSchema.from_entity(s) for s in offer.services],
        error=offer.error,
    )


@router.post("/sessions/{session_id}/submit", response_model=SubmitResponseSchema)
async def submit(session_id: str, store: BookingSessionStorePort = Depends(get_session_store)):
    session = _load_session(session_id, store)
    outcome = await session.submit()
    await session.settle()
    logger.info(
        "Submit finished",
        extra={"session_id": session_id, "reason": outcome.reason or outcome.status},
    )
    return submit_response(session_id, session, outcome)
