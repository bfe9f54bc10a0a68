from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, Field


class AppointmentRequest(BaseModel):
    """A proposed appointment. Built per request, never stored."""

    patient_id: str = Field(validation_alias=AliasChoices("patient_id", "patientId", "PatNum"))
    provider_id: str = Field(validation_alias=AliasChoices("provider_id", "providerId", "ProvNum"))
    operatory_id: str = Field(validation_alias=AliasChoices("operatory_id", "operatoryId", "Op"))
    start_date_time: datetime = Field(
        validation_alias=AliasChoices("start_date_time", "startDateTime", "dateTime")
    )
    duration_minutes: int = Field(validation_alias=AliasChoices("duration_minutes", "durationMinutes", "duration"))
    appointment_type: str = Field(
        default="Appointment", validation_alias=AliasChoices("appointment_type", "appointmentType", "type")
    )
    notes: Optional[str] = None

    model_config = {
        "populate_by_name": True,
        "coerce_numbers_to_str": True,
    }


class TimeInterval(BaseModel):
    """Half-open interval [start, end)."""
    start: datetime
    end: datetime


class ExistingAppointment(BaseModel):
    id: str
    patient_id: str | None = None
    provider_id: str | None = None
    operatory_id: str | None = None
    start_date_time: datetime
    duration_minutes: int = Field(gt=0)
    status: str | None = None  # Open Dental AptStatus

    model_config = {"coerce_numbers_to_str": True}


class ConflictKind(str, Enum):
    PROVIDER = "provider"
    OPERATORY = "operatory"
    PATIENT = "patient"
    DURATION = "duration"
    HOURS = "hours"
    BUFFER = "buffer"
    SYSTEM = "system"


class Conflict(BaseModel):
    kind: ConflictKind
    message: str
    # populated for provider, operatory and patient conflicts only
    appointments: list[ExistingAppointment] = Field(default_factory=list)


class WorkingHours(BaseModel):
    start_hour: int = Field(default=8, ge=0, le=23)
    end_hour: int = Field(default=17, ge=0, le=23)
    is_working: bool = True


class SchedulingRules(BaseModel):
    max_appointment_duration_minutes: int = 240
    buffer_minutes: int = 0
    allow_double_booking: bool = False


class AlternativeSlot(BaseModel):
    """Represents a conflict-free slot offered to the caller."""
    start_date_time: datetime
    duration_minutes: int
    provider_id: str
    operatory_id: str
    available: Literal[True] = True


class RemoteError(BaseModel):
    message: str
    status_code: int | None = None


class Booked(BaseModel):
    status: Literal["booked"] = "booked"
    appointment: dict


class Rejected(BaseModel):
    status: Literal["rejected"] = "rejected"
    conflicts: list[Conflict] = Field(default_factory=list)
    alternatives: list[AlternativeSlot] = Field(default_factory=list)
    error: RemoteError | None = None


BookingResult = Annotated[Union[Booked, Rejected], Field(discriminator="status")]


class ConflictCheckResult(BaseModel):
    has_conflicts: bool
    conflicts: list[Conflict]
    alternatives: list[AlternativeSlot]


class SyncStatus(BaseModel):
    enabled: bool
    last_sync: datetime | None = None
    is_active: bool = False
    conflicts: list[dict] = Field(default_factory=list)
