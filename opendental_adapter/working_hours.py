from __future__ import annotations

import logging
from datetime import date

from .models import WorkingHours
from .provider import SchedulingDataProvider

logger = logging.getLogger(__name__)

DEFAULT_WORKING_HOURS = WorkingHours(start_hour=8, end_hour=17, is_working=True)


class WorkingHoursResolver:
    """Resolve a provider's working window for a day.

    Falls back to ``DEFAULT_WORKING_HOURS`` both when the practice has no
    schedule for the provider and when the lookup fails, so callers cannot
    tell the two cases apart. ``resolve`` never raises.
    """

    def __init__(self, provider: SchedulingDataProvider) -> None:
        self._provider = provider

    async def resolve(self, provider_id: str, day: date) -> WorkingHours:
        try:
            hours = await self._provider.fetch_working_hours(provider_id, day)
        except Exception:
            logger.warning(
                "Working hours lookup failed for provider %s on %s, using default", provider_id, day, exc_info=True
            )
            return DEFAULT_WORKING_HOURS.model_copy()
        if hours is None:
            logger.debug("No schedule for provider %s on %s, using default", provider_id, day)
            return DEFAULT_WORKING_HOURS.model_copy()
        return hours
