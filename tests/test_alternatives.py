from datetime import time

import pytest

from opendental_adapter.alternatives import SEARCH_DAYS, AlternativeSlotFinder, candidate_starts, parse_time_window
from opendental_adapter.conflicts import ConflictDetector
from opendental_adapter.exceptions import InvalidDuration
from opendental_adapter.models import WorkingHours

from conftest import DAY, at, days_after


def test_candidates_fit_inside_working_window():
    starts = candidate_starts(DAY, WorkingHours(start_hour=8, end_hour=10), 60, at(9))
    assert starts == [at(8), at(8, 30), at(9)]


def test_no_candidates_on_day_off():
    assert candidate_starts(DAY, WorkingHours(is_working=False), 30, at(9)) == []


@pytest.mark.asyncio
async def test_same_day_alternatives_in_order(provider, make_request, make_appt):
    provider.appointments = [make_appt("a1", at(9), minutes=60, patient="200")]
    request = make_request(start_date_time=at(9), duration_minutes=60)

    slots = await AlternativeSlotFinder(provider).find_alternatives(request)

    assert [s.start_date_time for s in slots] == [at(8), at(10), at(10, 30), at(11), at(11, 30)]
    assert all(s.available and s.duration_minutes == 60 for s in slots)
    assert {(s.provider_id, s.operatory_id) for s in slots} == {("1", "1")}


@pytest.mark.asyncio
async def test_alternatives_are_bounded_and_conflict_free(provider, make_request, make_appt):
    provider.appointments = [
        make_appt("a1", at(8), minutes=120, patient="201"),
        make_appt("a2", at(11), minutes=30, operatory="4", patient="202"),
        make_appt("a3", at(13), minutes=90, provider="2", operatory="1", patient="203"),
    ]
    request = make_request(start_date_time=at(8, 30))

    slots = await AlternativeSlotFinder(provider).find_alternatives(request, max_results=3)

    assert len(slots) == 3
    assert slots == sorted(slots, key=lambda s: s.start_date_time)
    detector = ConflictDetector(provider)
    for slot in slots:
        assert await detector.detect_conflicts(request.model_copy(update={"start_date_time": slot.start_date_time})) == []


@pytest.mark.asyncio
async def test_search_moves_to_following_days(provider, make_request):
    provider.hours = {DAY: WorkingHours(is_working=False), days_after(1): WorkingHours(start_hour=8, end_hour=10)}
    for n in range(2, 8):
        provider.hours[days_after(n)] = WorkingHours(is_working=False)
    request = make_request(start_date_time=at(9), duration_minutes=60)

    slots = await AlternativeSlotFinder(provider).find_alternatives(request)

    assert [s.start_date_time for s in slots] == [
        at(8, day=days_after(1)),
        at(8, 30, day=days_after(1)),
        at(9, day=days_after(1)),
    ]


@pytest.mark.asyncio
async def test_nothing_found_within_a_week(provider, make_request):
    provider.hours = WorkingHours(is_working=False)
    assert await AlternativeSlotFinder(provider).find_alternatives(make_request()) == []


@pytest.mark.asyncio
async def test_unreachable_schedule_yields_no_alternatives(provider, make_request):
    provider.fail_fetch = True
    assert await AlternativeSlotFinder(provider).find_alternatives(make_request()) == []


@pytest.mark.asyncio
async def test_zero_max_results_skips_search(provider, make_request):
    assert await AlternativeSlotFinder(provider).find_alternatives(make_request(), max_results=0) == []
    assert provider.fetch_calls == 0


@pytest.mark.asyncio
async def test_invalid_duration_raises(provider, make_request):
    with pytest.raises(InvalidDuration):
        await AlternativeSlotFinder(provider).find_alternatives(make_request(duration_minutes=-30))


@pytest.mark.asyncio
async def test_day_fetch_is_reused_across_candidates(provider, make_request):
    slots = await AlternativeSlotFinder(provider).find_alternatives(make_request(), max_results=5)
    assert len(slots) == 5
    assert provider.fetch_calls == 1


@pytest.mark.asyncio
async def test_failed_day_fetch_is_not_repeated(provider, make_request):
    provider.fail_fetch = True
    assert await AlternativeSlotFinder(provider).find_alternatives(make_request()) == []
    assert provider.fetch_calls == SEARCH_DAYS + 1


def test_parse_time_window():
    assert parse_time_window("09:00-12:00") == (time(9), time(12))
    with pytest.raises(ValueError):
        parse_time_window("09:00")
    with pytest.raises(ValueError):
        parse_time_window("14:00-09:00")


@pytest.mark.asyncio
async def test_preferred_times_keep_matching_starts(provider, make_request):
    slots = await AlternativeSlotFinder(provider).find_alternatives(
        make_request(), max_results=5, preferred_times=[(time(14), time(15))]
    )
    assert [s.start_date_time for s in slots] == [at(14), at(14, 30), at(15)]
    assert provider.fetch_calls == 1


@pytest.mark.asyncio
async def test_search_window_overrides_request_day(provider, make_request):
    provider.hours = {days_after(3): WorkingHours(start_hour=8, end_hour=9)}

    slots = await AlternativeSlotFinder(provider).find_alternatives(
        make_request(), max_results=5, start_day=days_after(3), end_day=days_after(3)
    )

    assert [s.start_date_time for s in slots] == [at(8, day=days_after(3)), at(8, 30, day=days_after(3))]
