"""Capability the scheduling core needs from a practice-management system."""
from __future__ import annotations

from datetime import date, datetime
from typing import Optional, Protocol

from pydantic import BaseModel

from .models import AppointmentRequest, ExistingAppointment, SchedulingRules, WorkingHours


class AppointmentScope(BaseModel):
    """Appointments matching ANY of the given IDs are in scope; an empty scope means all."""
    provider_id: Optional[str] = None
    operatory_id: Optional[str] = None
    patient_id: Optional[str] = None

    @classmethod
    def for_request(cls, request: AppointmentRequest) -> "AppointmentScope":
        return cls(
            provider_id=request.provider_id,
            operatory_id=request.operatory_id,
            patient_id=request.patient_id,
        )

    def matches(self, appt: ExistingAppointment) -> bool:
        if self.provider_id is None and self.operatory_id is None and self.patient_id is None:
            return True
        return (
            (self.provider_id is not None and appt.provider_id == self.provider_id)
            or (self.operatory_id is not None and appt.operatory_id == self.operatory_id)
            or (self.patient_id is not None and appt.patient_id == self.patient_id)
        )


class SchedulingDataProvider(Protocol):
    async def fetch_appointments(
        self, scope: AppointmentScope, start: datetime, end: datetime
    ) -> list[ExistingAppointment]: ...

    async def fetch_working_hours(self, provider_id: str, day: date) -> WorkingHours | None: ...

    async def fetch_scheduling_rules(self) -> SchedulingRules | None: ...

    async def create_appointment(self, request: AppointmentRequest) -> dict: ...
