from __future__ import annotations

import logging
from functools import lru_cache

from clinic_booking.application.ports.booking_backend import BookingBackendPort
from clinic_booking.application.ports.identity import IdentityPort
from clinic_booking.application.ports.session_store import BookingSessionStorePort
from clinic_booking.application.use_cases.booking_session import BookingSession
from clinic_booking.core.config import settings
from clinic_booking.domain.entities.identity import Identity
from clinic_booking.infrastructure.backend.mock_backend import InMemoryBookingBackend
from clinic_booking.infrastructure.backend.rpc_backend import RpcBookingBackend
from clinic_booking.infrastructure.identity.static_identity import StaticIdentity
from clinic_booking.infrastructure.navigation.memory_history import InMemoryHistory
from clinic_booking.infrastructure.store.memory_session_store import MemoryBookingSessionStore

_session_store: MemoryBookingSessionStore | None = None


@lru_cache
def get_backend() -> BookingBackendPort:
    logger = logging.getLogger(__name__)
    if not settings.BACKEND_URL or settings.ENV.lower() in {"dev", "local"}:
        logger.info("Using InMemoryBookingBackend (BACKEND_URL missing or ENV=dev/local)")
        return InMemoryBookingBackend()
    logger.info("Using RpcBookingBackend")
    return RpcBookingBackend()


def get_session_store() -> BookingSessionStorePort:
    global _session_store
    if _session_store is None:
        _session_store = MemoryBookingSessionStore()
    return _session_store


def build_identity(patient_id: str | None, role: str | None) -> IdentityPort:
    return StaticIdentity(Identity(patient_id=patient_id or None, role=(role or "").strip().lower() or None))


def build_booking_session(identity: IdentityPort, backend: BookingBackendPort | None = None) -> BookingSession:
    backend = backend or get_backend()
    if isinstance(backend, InMemoryBookingBackend):
        # Commits on the local backend are attributed to the session's patient.
        backend = backend.bind(identity)
    session = BookingSession(
        backend=backend,
        identity=identity,
        navigation=InMemoryHistory(),
        search_limit=settings.CLINIC_SEARCH_LIMIT,
        search_radius_km=settings.CLINIC_SEARCH_RADIUS_KM,
    )
    session.mount()
    return session
