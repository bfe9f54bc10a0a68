"""Conflict detection for a proposed appointment.

A check makes one fetch of the day's appointments and classifies overlaps by
provider, operatory and patient, then applies the practice's scheduling
rules (maximum duration, working hours, buffer time). Conflicts come back in
a fixed order: provider, operatory, patient, duration, hours, buffer. An
empty list means the slot is bookable.

If the day's appointments cannot be fetched the check fails open with a
single ``system`` conflict rather than raising.
"""
from __future__ import annotations

import logging
from typing import Callable

from .intervals import day_bounds, end_hour, expand, overlaps, to_interval
from .models import (
    AppointmentRequest,
    Conflict,
    ConflictKind,
    ExistingAppointment,
    SchedulingRules,
    TimeInterval,
)
from .provider import AppointmentScope, SchedulingDataProvider
from .working_hours import WorkingHoursResolver

logger = logging.getLogger(__name__)


def appointment_interval(appt: ExistingAppointment) -> TimeInterval:
    return to_interval(appt.start_date_time, appt.duration_minutes)


def overlapping(
    interval: TimeInterval,
    appointments: list[ExistingAppointment],
    predicate: Callable[[ExistingAppointment], bool],
) -> list[ExistingAppointment]:
    """Members matching ``predicate`` whose interval overlaps ``interval``."""
    return [a for a in appointments if predicate(a) and overlaps(interval, appointment_interval(a))]


class ConflictDetector:
    def __init__(
        self,
        provider: SchedulingDataProvider,
        working_hours: WorkingHoursResolver | None = None,
    ) -> None:
        self._provider = provider
        self._working_hours = working_hours or WorkingHoursResolver(provider)

    async def _rules(self) -> SchedulingRules:
        try:
            rules = await self._provider.fetch_scheduling_rules()
        except Exception:
            logger.warning("Scheduling rules lookup failed, using defaults", exc_info=True)
            return SchedulingRules()
        return rules or SchedulingRules()

    async def detect_conflicts(self, request: AppointmentRequest) -> list[Conflict]:
        requested = to_interval(request.start_date_time, request.duration_minutes)
        day_start, day_end = day_bounds(request.start_date_time)

        try:
            existing = await self._provider.fetch_appointments(
                AppointmentScope.for_request(request), day_start, day_end
            )
        except Exception as exc:
            logger.error("Unable to load appointments for %s: %s", day_start.date(), exc)
            return [
                Conflict(
                    kind=ConflictKind.SYSTEM,
                    message="Unable to verify conflicts: the practice schedule could not be loaded. Proceed with caution.",
                )
            ]

        rules = await self._rules()
        hours = await self._working_hours.resolve(request.provider_id, request.start_date_time.date())

        def same_provider(a: ExistingAppointment) -> bool:
            return a.provider_id == request.provider_id

        def same_operatory(a: ExistingAppointment) -> bool:
            return a.operatory_id == request.operatory_id

        def same_patient(a: ExistingAppointment) -> bool:
            return a.patient_id == request.patient_id

        conflicts: list[Conflict] = []

        provider_hits = overlapping(requested, existing, same_provider)
        if provider_hits and not rules.allow_double_booking:
            conflicts.append(
                Conflict(
                    kind=ConflictKind.PROVIDER,
                    message=f"Provider {request.provider_id} already has {len(provider_hits)} appointment(s) at this time",
                    appointments=provider_hits,
                )
            )

        operatory_hits = overlapping(requested, existing, same_operatory)
        if operatory_hits:
            conflicts.append(
                Conflict(
                    kind=ConflictKind.OPERATORY,
                    message=f"Operatory {request.operatory_id} is already booked at this time",
                    appointments=operatory_hits,
                )
            )

        patient_hits = overlapping(requested, existing, same_patient)
        if patient_hits:
            conflicts.append(
                Conflict(
                    kind=ConflictKind.PATIENT,
                    message=f"Patient {request.patient_id} already has an appointment at this time",
                    appointments=patient_hits,
                )
            )

        if request.duration_minutes > rules.max_appointment_duration_minutes:
            conflicts.append(
                Conflict(
                    kind=ConflictKind.DURATION,
                    message=(
                        f"Duration of {request.duration_minutes} minutes exceeds the maximum of "
                        f"{rules.max_appointment_duration_minutes} minutes"
                    ),
                )
            )

        # hour granularity: minutes inside the boundary hour are not checked
        if not hours.is_working:
            conflicts.append(Conflict(kind=ConflictKind.HOURS, message="Provider is not working on this day"))
        elif requested.start.hour < hours.start_hour or end_hour(requested) > hours.end_hour:
            conflicts.append(
                Conflict(
                    kind=ConflictKind.HOURS,
                    message=f"Appointment is outside working hours ({hours.start_hour}:00-{hours.end_hour}:00)",
                )
            )

        if rules.buffer_minutes > 0:
            padded = expand(requested, rules.buffer_minutes)
            # a permitted provider double booking needs no gap either
            if rules.allow_double_booking:
                near = overlapping(padded, existing, same_operatory)
            else:
                near = overlapping(padded, existing, lambda a: same_provider(a) or same_operatory(a))
            if near:
                conflicts.append(
                    Conflict(
                        kind=ConflictKind.BUFFER,
                        message=f"At least {rules.buffer_minutes} minutes are required between appointments",
                    )
                )

        if conflicts:
            logger.info(
                "Found %d conflict(s) for provider %s at %s",
                len(conflicts), request.provider_id, request.start_date_time.isoformat(),
            )
        return conflicts
