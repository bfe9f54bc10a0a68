from datetime import date, datetime, timedelta

import pytest

from opendental_adapter.exceptions import SchedulingProviderError
from opendental_adapter.models import AppointmentRequest, ExistingAppointment

DAY = date(2025, 8, 18)


def at(hour: int, minute: int = 0, day: date = DAY) -> datetime:
    return datetime(day.year, day.month, day.day, hour, minute)


class StubProvider:
    """In-memory scheduling data provider.

    ``hours`` may be a WorkingHours, None, an exception to raise, or a dict
    keyed by date. ``rules`` may be a SchedulingRules, None or an exception.
    Creates are refused with a 409 when the same provider and start time has
    already been booked, mimicking the practice system's own guard.
    """

    def __init__(self, appointments=None, hours=None, rules=None):
        self.appointments = list(appointments or [])
        self.hours = hours
        self.rules = rules
        self.fail_fetch = False
        self.fetch_calls = 0
        self.created = []
        self._taken = set()

    async def fetch_appointments(self, scope, start, end):
        self.fetch_calls += 1
        if self.fail_fetch:
            raise SchedulingProviderError("Unable to reach Open Dental")
        return [a for a in self.appointments if start <= a.start_date_time < end and scope.matches(a)]

    async def fetch_working_hours(self, provider_id, day):
        if isinstance(self.hours, Exception):
            raise self.hours
        if isinstance(self.hours, dict):
            return self.hours.get(day)
        return self.hours

    async def fetch_scheduling_rules(self):
        if isinstance(self.rules, Exception):
            raise self.rules
        return self.rules

    async def create_appointment(self, request):
        key = (request.provider_id, request.start_date_time)
        if key in self._taken:
            raise SchedulingProviderError("Appointment slot already booked", status_code=409)
        self._taken.add(key)
        self.created.append(request)
        return {"AptNum": 9000 + len(self.created), "AptDateTime": request.start_date_time.isoformat()}


@pytest.fixture
def provider():
    return StubProvider()


@pytest.fixture
def make_request():
    def _make(**overrides):
        fields = dict(
            patient_id="100",
            provider_id="1",
            operatory_id="1",
            start_date_time=at(9),
            duration_minutes=30,
            appointment_type="Cleaning",
        )
        fields.update(overrides)
        return AppointmentRequest(**fields)

    return _make


@pytest.fixture
def make_appt():
    def _make(id, start, minutes=30, provider="1", operatory="1", patient="100", status="Scheduled"):
        return ExistingAppointment(
            id=id,
            patient_id=patient,
            provider_id=provider,
            operatory_id=operatory,
            start_date_time=start,
            duration_minutes=minutes,
            status=status,
        )

    return _make


def days_after(n: int) -> date:
    return DAY + timedelta(days=n)
