from __future__ import annotations

import logging
from typing import Any, Mapping, Union

from pydantic import ValidationError

from .alternatives import AlternativeSlotFinder
from .conflicts import ConflictDetector
from .exceptions import InvalidDuration, InvalidRequest, SchedulingProviderError
from .models import (
    AppointmentRequest, BookingResult, Booked, Conflict, ConflictCheckResult, ConflictKind, Rejected, RemoteError,
)
from .provider import SchedulingDataProvider

logger = logging.getLogger(__name__)

# field name -> accepted input keys
REQUIRED_FIELDS = {
    "patient_id": ("patient_id", "patientId", "PatNum"),
    "provider_id": ("provider_id", "providerId", "ProvNum"),
    "operatory_id": ("operatory_id", "operatoryId", "Op"),
    "start_date_time": ("start_date_time", "startDateTime", "dateTime"),
    "duration_minutes": ("duration_minutes", "durationMinutes", "duration"),
}
_FIELD_BY_KEY = {key: field for field, keys in REQUIRED_FIELDS.items() for key in keys}


def _schedule_unknown(conflicts: list[Conflict]) -> bool:
    # the same unreachable schedule would fail every candidate
    return all(c.kind is ConflictKind.SYSTEM for c in conflicts)


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def parse_request(data: Union[AppointmentRequest, Mapping[str, Any]]) -> AppointmentRequest:
    """Validate raw input into an AppointmentRequest.

    Raises InvalidRequest naming every missing field, or InvalidDuration for a
    non-positive duration.
    """
    if isinstance(data, AppointmentRequest):
        request = data
    else:
        missing = [
            field
            for field, keys in REQUIRED_FIELDS.items()
            if all(_is_blank(data.get(key)) for key in keys)
        ]
        if missing:
            raise InvalidRequest(missing)
        try:
            request = AppointmentRequest.model_validate(dict(data))
        except ValidationError as exc:
            bad = sorted({_FIELD_BY_KEY.get(err["loc"][0], str(err["loc"][0])) for err in exc.errors() if err["loc"]})
            raise InvalidRequest(bad, cause=exc) from exc

    if request.duration_minutes <= 0:
        raise InvalidDuration(request.duration_minutes)
    return request


class BookingOrchestrator:
    """Check a requested appointment and book it only when it is conflict free.

    There is no locking between the check and the create call. Two concurrent
    bookings can both pass the check, in which case the practice-management
    system's 409 is the only guard and it comes back as a Rejected result.
    """

    def __init__(
        self,
        provider: SchedulingDataProvider,
        detector: ConflictDetector | None = None,
        finder: AlternativeSlotFinder | None = None,
    ) -> None:
        self._provider = provider
        self._detector = detector or ConflictDetector(provider)
        self._finder = finder or AlternativeSlotFinder(provider)

    async def check(
        self, data: Union[AppointmentRequest, Mapping[str, Any]], max_alternatives: int = 5
    ) -> ConflictCheckResult:
        request = parse_request(data)
        conflicts = await self._detector.detect_conflicts(request)
        alternatives = []
        if conflicts and not _schedule_unknown(conflicts):
            alternatives = await self._finder.find_alternatives(request, max_alternatives)
        return ConflictCheckResult(has_conflicts=bool(conflicts), conflicts=conflicts, alternatives=alternatives)

    async def book(self, data: Union[AppointmentRequest, Mapping[str, Any]]) -> BookingResult:
        request = parse_request(data)

        conflicts = await self._detector.detect_conflicts(request)
        if conflicts:
            alternatives = [] if _schedule_unknown(conflicts) else await self._finder.find_alternatives(request)
            logger.info(
                "Rejected booking for patient %s: %s",
                request.patient_id, ", ".join(c.kind.value for c in conflicts),
            )
            return Rejected(conflicts=conflicts, alternatives=alternatives)

        try:
            appointment = await self._provider.create_appointment(request)
        except SchedulingProviderError as exc:
            logger.warning("Open Dental refused booking for patient %s: %s", request.patient_id, exc)
            return Rejected(error=RemoteError(message=str(exc), status_code=exc.status_code))

        logger.info("Booked appointment %s for patient %s", appointment.get("AptNum"), request.patient_id)
        return Booked(appointment=appointment)
