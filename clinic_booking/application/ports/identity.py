from abc import ABC, abstractmethod


class IdentityPort(ABC):
    @abstractmethod
    def current_patient_id(self) -> str | None:
        raise NotImplementedError

    @abstractmethod
    def is_patient(self) -> bool:
        raise NotImplementedError
