"""Async Open Dental API client implementing the scheduling data provider.
Assumes a static API key sent as a bearer token.
"""
from __future__ import annotations

import logging
import math
import os
from datetime import date, datetime
from typing import Any

import httpx
from dotenv import load_dotenv

from .exceptions import SchedulingProviderError
from .models import AppointmentRequest, ExistingAppointment, SchedulingRules, WorkingHours
from .provider import AppointmentScope

load_dotenv()

logger = logging.getLogger(__name__)

_BASE_URL = os.getenv("OD_API_URL")
_API_KEY = os.getenv("OD_API_KEY")
_TIMEOUT = float(os.getenv("OD_TIMEOUT", "15"))

# each character of an Open Dental time pattern is five minutes
PATTERN_MINUTES = 5
# statuses that do not occupy a provider or chair
INACTIVE_STATUSES = {"Broken", "UnschedList", "Planned"}


def _parse_datetime(value: str, like: datetime) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None and like.tzinfo is not None:
        parsed = parsed.replace(tzinfo=like.tzinfo)
    return parsed


def _duration_from_row(row: dict[str, Any]) -> int:
    if row.get("Length"):
        return int(row["Length"])
    return len(row.get("Pattern") or "") * PATTERN_MINUTES


def _num(value: str) -> int | str:
    return int(value) if value.isdigit() else value


def _hour_of(value: str) -> int:
    """'08:30:00' -> 8"""
    return int(value.split(":")[0])


class OpenDentalClient:
    """Thin async wrapper over the Open Dental REST API."""

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        *,
        timeout: float | None = None,
    ) -> None:
        base_url = base_url if base_url is not None else _BASE_URL
        self._base_url = base_url.rstrip("/") if base_url else None
        self._api_key = api_key if api_key is not None else _API_KEY
        self._timeout = timeout if timeout is not None else _TIMEOUT

    def is_enabled(self) -> bool:
        """True when credentials are configured. Callers check this once before using the core."""
        return bool(self._base_url and self._api_key)

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Accept": "application/json",
            "Content-Type": "application/json",
        }

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        if not self.is_enabled():
            raise SchedulingProviderError("Open Dental not configured")
        try:
            async with httpx.AsyncClient(http2=True, timeout=self._timeout) as client:
                resp = await client.request(method, f"{self._base_url}{path}", headers=self._headers(), **kwargs)
                resp.raise_for_status()
                try:
                    return resp.json()
                except ValueError as exc:
                    logger.error("Open Dental sent a non-JSON body for %s %s", method, path)
                    raise SchedulingProviderError(
                        "Open Dental returned an unreadable response", status_code=resp.status_code, cause=exc
                    ) from exc
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            if status == 409:
                raise SchedulingProviderError("Appointment slot already booked", status_code=409, cause=exc) from exc
            # 404 is an expected "nothing configured" answer for schedules and rules
            logger.log(
                logging.DEBUG if status == 404 else logging.ERROR,
                "Open Dental returned error %s for %s %s", status, method, path,
            )
            raise SchedulingProviderError(
                f"Open Dental returned an error response ({status})", status_code=status, cause=exc
            ) from exc
        except httpx.RequestError as exc:
            logger.exception("Unable to reach Open Dental: %s", exc)
            raise SchedulingProviderError("Unable to reach Open Dental", cause=exc) from exc

    async def fetch_appointments(
        self, scope: AppointmentScope, start: datetime, end: datetime
    ) -> list[ExistingAppointment]:
        """Return active appointments starting in [start, end) that match the scope."""
        params = {"dateStart": start.date().isoformat(), "dateEnd": end.date().isoformat()}
        payload = await self._request("GET", "/appointments", params=params)
        rows = payload if isinstance(payload, list) else payload.get("appointments", [])

        appointments = []
        for row in rows:
            if row.get("AptStatus") in INACTIVE_STATUSES:
                continue
            duration = _duration_from_row(row)
            if duration <= 0:
                logger.warning("Skipping appointment %s without a usable length", row.get("AptNum"))
                continue
            appt = ExistingAppointment(
                id=row["AptNum"],
                patient_id=row.get("PatNum"),
                provider_id=row.get("ProvNum"),
                operatory_id=row.get("Op"),
                start_date_time=_parse_datetime(row["AptDateTime"], start),
                duration_minutes=duration,
                status=row.get("AptStatus"),
            )
            if start <= appt.start_date_time < end and scope.matches(appt):
                appointments.append(appt)
        return appointments

    async def fetch_working_hours(self, provider_id: str, day: date) -> WorkingHours | None:
        """Working window from the provider's schedule blocks, or None when nothing is scheduled."""
        params = {"date": day.isoformat(), "ProvNum": provider_id}
        try:
            blocks = await self._request("GET", "/schedules", params=params)
        except SchedulingProviderError as exc:
            if exc.status_code == 404:
                return None
            raise
        blocks = [b for b in blocks or [] if b.get("SchedType", "Provider") == "Provider"]
        if not blocks:
            return None

        open_blocks = [b for b in blocks if b.get("StartTime") != b.get("StopTime")]
        if not open_blocks:
            return WorkingHours(is_working=False)
        return WorkingHours(
            start_hour=min(_hour_of(b["StartTime"]) for b in open_blocks),
            end_hour=max(_hour_of(b["StopTime"]) for b in open_blocks),
            is_working=True,
        )

    async def fetch_scheduling_rules(self) -> SchedulingRules | None:
        try:
            data = await self._request("GET", "/scheduling/rules")
        except SchedulingProviderError as exc:
            if exc.status_code == 404:
                return None
            raise
        if not data:
            return None
        defaults = SchedulingRules()
        return SchedulingRules(
            max_appointment_duration_minutes=data.get(
                "maxAppointmentDuration", defaults.max_appointment_duration_minutes
            ),
            buffer_minutes=data.get("bufferMinutes", defaults.buffer_minutes),
            allow_double_booking=data.get("allowDoubleBooking", defaults.allow_double_booking),
        )

    async def create_appointment(self, request: AppointmentRequest) -> dict:
        """Create a scheduled appointment. A double booking surfaces as a 409 SchedulingProviderError."""
        body = {
            "PatNum": _num(request.patient_id),
            "ProvNum": _num(request.provider_id),
            "Op": _num(request.operatory_id),
            "AptDateTime": request.start_date_time.strftime("%Y-%m-%d %H:%M:%S"),
            "Pattern": "X" * math.ceil(request.duration_minutes / PATTERN_MINUTES),
            "ProcDescript": request.appointment_type,
            "Note": request.notes or "",
        }
        logger.info(
            "Creating appointment for patient %s with provider %s at %s",
            request.patient_id, request.provider_id, body["AptDateTime"],
        )
        return await self._request("POST", "/appointments", json=body)
