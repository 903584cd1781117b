from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

from clinic_booking.application.ports.session_store import BookingSessionStorePort

if TYPE_CHECKING:
    from clinic_booking.application.use_cases.booking_session import BookingSession


class MemoryBookingSessionStore(BookingSessionStorePort):
    def __init__(self, limit: int = 1000) -> None:
        self._sessions: dict[str, "BookingSession"] = {}
        self._limit = limit

    def create_id(self) -> str:
        return uuid.uuid4().hex

    def put(self, session_id: str, session: "BookingSession") -> None:
        self._sessions[session_id] = session
        if len(self._sessions) > self._limit:
            # dicts keep insertion order; evict the oldest flows first
            for stale_id in list(self._sessions)[: len(self._sessions) - self._limit]:
                del self._sessions[stale_id]

    def get(self, session_id: str) -> "BookingSession | None":
        return self._sessions.get(session_id)

    def discard(self, session_id: str) -> bool:
        return self._sessions.pop(session_id, None) is not None
