from datetime import date, datetime

import pytest

from backend.scheduling.domain import AvailabilityWindow, OccupiedInterval
from backend.scheduling.errors import InvalidTimeFormatError, SchedulingConfigurationError
from backend.scheduling.rules import (
    DEFAULT_RULES,
    SLOT_REASONS,
    SchedulingRules,
    day_of_week,
    evaluate_candidate,
    find_conflicting_appointments,
    fits_within_availability,
    has_appointment_conflict,
    has_blocked_conflict,
    is_within_availability,
    meets_advance_notice,
    occupancy_lookup_range,
    parse_time_to_minutes,
    validator_reasons,
)

MONDAY = date(2026, 1, 5)
MONDAY_WINDOW = AvailabilityWindow(day_of_week=1, start_minutes=9 * 60, end_minutes=12 * 60)


def at(hour: int, minute: int = 0) -> datetime:
    return datetime(2026, 1, 5, hour, minute)


@pytest.mark.parametrize(
    ('value', 'expected'),
    [('00:00', 0), ('09:00', 540), ('9:30', 570), ('23:59', 1439), ('24:00', 1440)],
)
def test_parse_time_to_minutes_accepts_wall_clock_strings(value: str, expected: int) -> None:
    assert parse_time_to_minutes(value) == expected


@pytest.mark.parametrize('value', ['', '9', 'ab:cd', '25:00', '12:60', '24:15', '-1:00', '09:00:00', None])
def test_parse_time_to_minutes_rejects_malformed_values(value) -> None:
    with pytest.raises(InvalidTimeFormatError):
        parse_time_to_minutes(value)


def test_invalid_time_format_is_a_configuration_error() -> None:
    assert issubclass(InvalidTimeFormatError, SchedulingConfigurationError)


def test_day_of_week_counts_from_sunday() -> None:
    assert day_of_week(date(2026, 1, 4)) == 0
    assert day_of_week(MONDAY) == 1
    assert day_of_week(date(2026, 1, 10)) == 6


def test_is_within_availability_uses_half_open_window() -> None:
    windows = [MONDAY_WINDOW]

    assert is_within_availability(at(9, 0), windows)
    assert is_within_availability(at(11, 59), windows)
    assert not is_within_availability(at(12, 0), windows)
    assert not is_within_availability(at(8, 45), windows)


def test_is_within_availability_ignores_windows_for_other_days() -> None:
    tuesday_window = AvailabilityWindow(day_of_week=2, start_minutes=9 * 60, end_minutes=12 * 60)

    assert not is_within_availability(at(10, 0), [tuesday_window])


def test_fits_within_availability_requires_session_to_end_by_close() -> None:
    assert fits_within_availability(at(11, 0), 60, [MONDAY_WINDOW])
    assert not fits_within_availability(at(11, 15), 60, [MONDAY_WINDOW])


def test_appointment_buffer_blocks_slot_inside_buffer() -> None:
    existing = [OccupiedInterval(date_time=at(10, 0), duration=60)]

    assert has_appointment_conflict(at(10, 45), 60, existing, buffer_minutes=15)
    assert has_appointment_conflict(at(11, 0), 60, existing, buffer_minutes=15)
    assert not has_appointment_conflict(at(11, 15), 60, existing, buffer_minutes=15)


def test_appointment_buffer_applies_before_existing_session() -> None:
    existing = [OccupiedInterval(date_time=at(10, 0), duration=60)]

    assert has_appointment_conflict(at(9, 0), 60, existing, buffer_minutes=15)
    assert has_appointment_conflict(at(9, 45), 15, existing, buffer_minutes=15)
    assert not has_appointment_conflict(at(9, 30), 15, existing, buffer_minutes=15)


def test_find_conflicting_appointments_returns_only_overlapping_intervals() -> None:
    near = OccupiedInterval(date_time=at(10, 0), duration=60, appointment_id=1)
    far = OccupiedInterval(date_time=at(14, 0), duration=60, appointment_id=2)

    assert find_conflicting_appointments(at(10, 30), 60, [near, far], buffer_minutes=15) == [near]


def test_blocked_period_has_no_buffer() -> None:
    blocked = [OccupiedInterval(date_time=at(10, 0), duration=60)]

    assert not has_blocked_conflict(at(9, 0), 60, blocked)
    assert not has_blocked_conflict(at(11, 0), 60, blocked)
    assert has_blocked_conflict(at(10, 45), 15, blocked)
    assert has_blocked_conflict(at(9, 30), 60, blocked)


def test_meets_advance_notice_is_inclusive_at_the_boundary() -> None:
    now = datetime(2026, 1, 4, 9, 0)

    assert meets_advance_notice(at(9, 0), now, 24)
    assert not meets_advance_notice(at(8, 59), now, 24)


def test_occupancy_lookup_range_reaches_back_one_maximum_session() -> None:
    range_start, range_end = occupancy_lookup_range(at(0, 0), at(23, 0), DEFAULT_RULES)

    assert range_start == datetime(2026, 1, 4, 15, 45)
    assert range_end == at(23, 15)


def test_evaluate_candidate_reports_first_failing_rule() -> None:
    now = datetime(2026, 1, 5, 8, 0)
    existing = [OccupiedInterval(date_time=at(10, 0), duration=60)]
    blocked = [OccupiedInterval(date_time=at(10, 0), duration=60)]

    reason = evaluate_candidate(
        at(10, 0),
        60,
        windows=[MONDAY_WINDOW],
        appointments=existing,
        blocked_periods=blocked,
        now=now,
        rules=DEFAULT_RULES,
        reasons=SLOT_REASONS,
    )

    assert reason == 'Time slot unavailable'


def test_evaluate_candidate_returns_none_when_all_rules_pass() -> None:
    reason = evaluate_candidate(
        at(9, 0),
        60,
        windows=[MONDAY_WINDOW],
        appointments=[],
        blocked_periods=[],
        now=datetime(2026, 1, 1, 9, 0),
        rules=DEFAULT_RULES,
        reasons=SLOT_REASONS,
    )

    assert reason is None


def test_validator_reasons_keep_classification_keywords() -> None:
    reasons = validator_reasons(SchedulingRules(min_advance_hours=48))

    assert 'business hours' in reasons.outside_hours
    assert 'conflict' in reasons.appointment_conflict
    assert 'blocked' in reasons.blocked
    assert 'advance notice' in reasons.advance_notice
    assert '48 hours' in reasons.advance_notice
