from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class WizardStep(str, Enum):
    clinic = "clinic"
    services = "services"
    doctor = "doctor"
    datetime = "datetime"
    confirm = "confirm"

    @classmethod
    def ordered(cls) -> list["WizardStep"]:
        return list(cls)

    @property
    def position(self) -> int:
        return WizardStep.ordered().index(self)

    @property
    def label(self) -> str:
        return "date & time" if self is WizardStep.datetime else self.value

    def next(self) -> "WizardStep | None":
        steps = WizardStep.ordered()
        return steps[self.position + 1] if self.position < len(steps) - 1 else None

    def previous(self) -> "WizardStep | None":
        return WizardStep.ordered()[self.position - 1] if self.position > 0 else None

    @classmethod
    def from_tag(cls, tag: str | None) -> "WizardStep | None":
        if not tag:
            return None
        try:
            return cls(tag)
        except ValueError:
            return None


@dataclass(frozen=True)
class WizardProgress:
    current_step: WizardStep
    current_step_index: int
    total_steps: int
    step_progress: float  # percentage, 20.0 .. 100.0
    can_proceed: bool
    is_complete: bool
    total_services: int
    max_services_reached: bool
    booking_type: str = "consultation_only"
    has_ongoing_treatments: bool = False
    is_linked_to_treatment: bool = False
