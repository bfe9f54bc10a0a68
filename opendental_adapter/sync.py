"""Periodic schedule scan.

Fetches a day's appointments, reports pairs that overlap on the same provider
or operatory, and hands the result to an injected async publisher. The scan
holds only its own bookkeeping (last run, last result); the conflict core
stays stateless.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import date, datetime, time
from itertools import combinations
from typing import Any, Awaitable, Callable

from .conflicts import appointment_interval
from .intervals import day_bounds, overlaps
from .models import ExistingAppointment
from .provider import AppointmentScope, SchedulingDataProvider

logger = logging.getLogger(__name__)

Publisher = Callable[[dict[str, Any]], Awaitable[None]]


def find_double_bookings(appointments: list[ExistingAppointment]) -> list[dict[str, Any]]:
    found = []
    for a, b in combinations(appointments, 2):
        if not overlaps(appointment_interval(a), appointment_interval(b)):
            continue
        kinds = []
        if a.provider_id is not None and a.provider_id == b.provider_id:
            kinds.append("provider")
        if a.operatory_id is not None and a.operatory_id == b.operatory_id:
            kinds.append("operatory")
        if kinds:
            found.append({"appointment_ids": [a.id, b.id], "kinds": kinds})
    return found


class ScheduleSync:
    def __init__(self, provider: SchedulingDataProvider, publish: Publisher) -> None:
        self._provider = provider
        self._publish = publish
        self.last_sync: datetime | None = None
        self.conflicts: list[dict[str, Any]] = []
        self._task: asyncio.Task | None = None

    @property
    def is_active(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self, day: date | None = None) -> dict[str, Any]:
        day = day or date.today()
        start, end = day_bounds(datetime.combine(day, time()))
        appointments = await self._provider.fetch_appointments(AppointmentScope(), start, end)
        self.conflicts = find_double_bookings(appointments)
        self.last_sync = datetime.now()

        event = {
            "type": "schedule.synced",
            "date": day.isoformat(),
            "appointment_count": len(appointments),
            "conflicts": self.conflicts,
        }
        logger.info("Synced %d appointments for %s, %d conflict(s)", len(appointments), day, len(self.conflicts))
        await self._publish(event)
        return event

    async def run_forever(self, interval_seconds: float) -> None:
        while True:
            try:
                await self.run_once()
            except Exception:
                logger.exception("Schedule sync failed")
            await asyncio.sleep(interval_seconds)

    def start(self, interval_seconds: float) -> None:
        if not self.is_active:
            self._task = asyncio.create_task(self.run_forever(interval_seconds))

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
