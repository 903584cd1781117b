from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from clinic_booking.application.use_cases.booking_session import BookingSession


class BookingSessionStorePort(ABC):
    @abstractmethod
    def create_id(self) -> str:
        raise NotImplementedError

    @abstractmethod
    def put(self, session_id: str, session: "BookingSession") -> None:
        raise NotImplementedError

    @abstractmethod
    def get(self, session_id: str) -> "BookingSession | None":
        raise NotImplementedError

    @abstractmethod
    def discard(self, session_id: str) -> bool:
        raise NotImplementedError
