from datetime import date, datetime, time, timedelta

from backend.models.appointment import CANCELLED
from backend.scheduling.domain import AvailabilityResult
from backend.scheduling.repository import SchedulingRepository
from backend.scheduling.validator import is_time_slot_available

MONDAY = date(2026, 1, 5)
MONDAY_INDEX = 1
THREE_DAYS_BEFORE = datetime(2026, 1, 2, 8, 0)


def at(hour: int, minute: int = 0) -> datetime:
    return datetime.combine(MONDAY, time(hour, minute))


def check(db, date_time, service_id, exclude=None, now=THREE_DAYS_BEFORE) -> AvailabilityResult:
    return is_time_slot_available(SchedulingRepository(db), date_time, service_id, exclude, now=now)


def test_open_slot_is_available(scheduling_db, factory) -> None:
    factory.window(MONDAY_INDEX, '09:00', '12:00')
    service = factory.service(duration=60)

    assert check(scheduling_db, at(9, 0), service.id) == AvailabilityResult(available=True)


def test_missing_or_inactive_service_is_reported_as_reason(scheduling_db, factory) -> None:
    factory.window(MONDAY_INDEX, '09:00', '12:00')
    inactive = factory.service(is_active=False)

    assert check(scheduling_db, at(9, 0), 999).reason == 'Service not found or inactive'
    assert check(scheduling_db, at(9, 0), inactive.id).reason == 'Service not found or inactive'


def test_slot_outside_windows_is_rejected(scheduling_db, factory) -> None:
    factory.window(MONDAY_INDEX, '09:00', '12:00')
    service = factory.service(duration=60)

    result = check(scheduling_db, at(13, 0), service.id)

    assert not result.available
    assert result.reason == 'Outside business hours'


def test_slot_running_past_close_is_rejected(scheduling_db, factory) -> None:
    factory.window(MONDAY_INDEX, '09:00', '12:00')
    service = factory.service(duration=60)

    assert check(scheduling_db, at(11, 0), service.id).available
    assert check(scheduling_db, at(11, 15), service.id).reason == 'Outside business hours'


def test_slot_inside_buffer_conflicts(scheduling_db, factory) -> None:
    factory.window(MONDAY_INDEX, '09:00', '17:00')
    service = factory.service(duration=60)
    factory.appointment(factory.user(), service, at(10, 0))

    conflicting = check(scheduling_db, at(10, 45), service.id)

    assert not conflicting.available
    assert 'conflict' in conflicting.reason
    assert check(scheduling_db, at(11, 15), service.id).available


def test_cancelled_appointment_does_not_conflict(scheduling_db, factory) -> None:
    factory.window(MONDAY_INDEX, '09:00', '17:00')
    service = factory.service(duration=60)
    factory.appointment(factory.user(), service, at(10, 0), status=CANCELLED)

    assert check(scheduling_db, at(10, 0), service.id).available


def test_excluded_appointment_does_not_conflict_with_itself(scheduling_db, factory) -> None:
    factory.window(MONDAY_INDEX, '09:00', '17:00')
    service = factory.service(duration=60)
    appointment = factory.appointment(factory.user(), service, at(10, 0))

    assert not check(scheduling_db, at(10, 30), service.id).available
    assert check(scheduling_db, at(10, 30), service.id, exclude=appointment.id).available


def test_exclusion_only_removes_the_named_appointment(scheduling_db, factory) -> None:
    factory.window(MONDAY_INDEX, '09:00', '17:00')
    service = factory.service(duration=60)
    client = factory.user()
    moving = factory.appointment(client, service, at(10, 0))
    factory.appointment(client, service, at(11, 30))

    result = check(scheduling_db, at(10, 30), service.id, exclude=moving.id)

    assert not result.available
    assert 'conflict' in result.reason


def test_blocked_period_rejects_slot(scheduling_db, factory) -> None:
    factory.window(MONDAY_INDEX, '09:00', '17:00')
    service = factory.service(duration=60)
    factory.blocked(at(12, 0), 60)

    result = check(scheduling_db, at(11, 30), service.id)

    assert not result.available
    assert result.reason == 'Time slot is blocked'
    assert check(scheduling_db, at(11, 0), service.id).available


def test_slot_two_hours_away_lacks_advance_notice(scheduling_db, factory) -> None:
    factory.window(MONDAY_INDEX, '00:00', '24:00')
    service = factory.service(duration=60)
    now = at(9, 0)

    result = check(scheduling_db, now + timedelta(hours=2), service.id, now=now)

    assert not result.available
    assert 'advance notice' in result.reason
    assert '24 hours' in result.reason


def test_multi_day_block_started_the_day_before_rejects_slot(scheduling_db, factory) -> None:
    factory.window(MONDAY_INDEX, '09:00', '17:00')
    service = factory.service(duration=60)
    factory.blocked(datetime(2026, 1, 4, 0, 0), 2 * 24 * 60, reason='Holiday closure')

    result = check(scheduling_db, at(10, 0), service.id)

    assert result == AvailabilityResult(available=False, reason='Time slot is blocked')
