from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta
from typing import Any

from .conflicts import ConflictDetector
from .exceptions import InvalidDuration
from .intervals import at_hour
from .models import AlternativeSlot, AppointmentRequest, ExistingAppointment, SchedulingRules, WorkingHours
from .provider import AppointmentScope, SchedulingDataProvider
from .working_hours import WorkingHoursResolver

logger = logging.getLogger(__name__)

SLOT_STEP = timedelta(minutes=30)
SEARCH_DAYS = 7


class _MemoProvider:
    """Remembers reads, failed ones included, for the lifetime of one search."""

    def __init__(self, provider: SchedulingDataProvider) -> None:
        self._provider = provider
        self._cache: dict[tuple, Any] = {}

    async def _memo(self, key: tuple, call):
        if key not in self._cache:
            try:
                self._cache[key] = await call()
            except Exception as exc:
                self._cache[key] = exc
        result = self._cache[key]
        if isinstance(result, Exception):
            raise result
        return result

    async def fetch_appointments(
        self, scope: AppointmentScope, start: datetime, end: datetime
    ) -> list[ExistingAppointment]:
        key = ("appointments", scope.provider_id, scope.operatory_id, scope.patient_id, start, end)
        return await self._memo(key, lambda: self._provider.fetch_appointments(scope, start, end))

    async def fetch_working_hours(self, provider_id: str, day: date) -> WorkingHours | None:
        return await self._memo(("hours", provider_id, day), lambda: self._provider.fetch_working_hours(provider_id, day))

    async def fetch_scheduling_rules(self) -> SchedulingRules | None:
        return await self._memo(("rules",), self._provider.fetch_scheduling_rules)

    async def create_appointment(self, request: AppointmentRequest) -> dict:
        raise RuntimeError("Slot search never books")


def candidate_starts(day: date, hours: WorkingHours, duration_minutes: int, like: datetime) -> list[datetime]:
    """Start times every 30 minutes that fit entirely inside the working window."""
    if not hours.is_working:
        return []
    cursor = at_hour(day, hours.start_hour, like)
    window_end = at_hour(day, hours.end_hour, like)
    length = timedelta(minutes=duration_minutes)
    starts = []
    while cursor + length <= window_end:
        starts.append(cursor)
        cursor += SLOT_STEP
    return starts


def parse_time_window(value: str) -> tuple[time, time]:
    """'09:00-12:00' -> (09:00, 12:00). Raises ValueError on anything else."""
    start, sep, end = value.partition("-")
    if not sep:
        raise ValueError(f"Invalid time window: {value!r}")
    first, last = time.fromisoformat(start.strip()), time.fromisoformat(end.strip())
    if last < first:
        raise ValueError(f"Invalid time window: {value!r}")
    return first, last


def in_windows(moment: datetime, windows: list[tuple[time, time]] | None) -> bool:
    """Inclusive on both ends; no windows means any time of day."""
    if not windows:
        return True
    clock = moment.time()
    return any(first <= clock <= last for first, last in windows)


class AlternativeSlotFinder:
    """Brute-force forward search for conflict-free slots.

    Scans the requested day and then up to seven following days, re-running
    the full conflict check for every candidate. Remote reads are memoised
    per search, which does not change the outcome.
    """

    def __init__(self, provider: SchedulingDataProvider) -> None:
        self._provider = provider

    async def find_alternatives(
        self,
        request: AppointmentRequest,
        max_results: int = 5,
        *,
        start_day: date | None = None,
        end_day: date | None = None,
        preferred_times: list[tuple[time, time]] | None = None,
    ) -> list[AlternativeSlot]:
        """``start_day``/``end_day`` bound the days searched (inclusive, default the
        request's day plus seven); ``preferred_times`` keeps only candidates whose
        start falls inside one of the windows.
        """
        if request.duration_minutes <= 0:
            raise InvalidDuration(request.duration_minutes)
        if max_results <= 0:
            return []

        memo = _MemoProvider(self._provider)
        resolver = WorkingHoursResolver(memo)
        detector = ConflictDetector(memo, resolver)

        found: list[AlternativeSlot] = []
        first_day = start_day or request.start_date_time.date()
        last_day = end_day or first_day + timedelta(days=SEARCH_DAYS)
        for offset in range((last_day - first_day).days + 1):
            day = first_day + timedelta(days=offset)
            hours = await resolver.resolve(request.provider_id, day)
            for start in candidate_starts(day, hours, request.duration_minutes, request.start_date_time):
                if not in_windows(start, preferred_times):
                    continue
                candidate = request.model_copy(update={"start_date_time": start})
                if await detector.detect_conflicts(candidate):
                    continue
                found.append(
                    AlternativeSlot(
                        start_date_time=start,
                        duration_minutes=request.duration_minutes,
                        provider_id=request.provider_id,
                        operatory_id=request.operatory_id,
                    )
                )
                if len(found) >= max_results:
                    return found

        if not found:
            logger.info(
                "No alternative slots for provider %s between %s and %s",
                request.provider_id, first_day, last_day,
            )
        return found
