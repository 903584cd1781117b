from dataclasses import dataclass


@dataclass(frozen=True)
class Identity:
    patient_id: str | None = None
    role: str | None = None  # "patient", "staff", "admin"

    @property
    def is_patient(self) -> bool:
        return self.role == "patient"
