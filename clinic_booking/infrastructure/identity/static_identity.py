from __future__ import annotations

from clinic_booking.application.ports.identity import IdentityPort
from clinic_booking.domain.entities.identity import Identity


class StaticIdentity(IdentityPort):
    """Identity fixed at construction (request headers, local runs, tests)."""

    def __init__(self, identity: Identity | None = None) -> None:
        self._identity = identity or Identity()

    @classmethod
    def patient(cls, patient_id: str) -> "StaticIdentity":
        return cls(Identity(patient_id=patient_id, role="patient"))

    @property
    def identity(self) -> Identity:
        return self._identity

    def current_patient_id(self) -> str | None:
        return self._identity.patient_id if self._identity.is_patient else None

    def is_patient(self) -> bool:
        return self._identity.is_patient
