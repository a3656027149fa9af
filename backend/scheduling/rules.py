"""Time math and conflict rules shared by the slot generator and the validator."""

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterable, NamedTuple

from backend.core import config
from backend.scheduling.domain import AvailabilityWindow, OccupiedInterval
from backend.scheduling.errors import InvalidTimeFormatError

MINUTES_PER_DAY = 24 * 60
DAY_NAMES = ('Sunday', 'Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday', 'Saturday')


@dataclass(frozen=True)
class SchedulingRules:
    min_advance_hours: int = config.MIN_ADVANCE_HOURS
    max_advance_days: int = config.MAX_ADVANCE_DAYS
    buffer_minutes: int = config.BUFFER_MINUTES
    slot_interval_minutes: int = config.SLOT_INTERVAL_MINUTES
    default_service_duration: int = config.DEFAULT_SERVICE_DURATION_MINUTES
    min_duration: int = config.MIN_SERVICE_DURATION_MINUTES
    max_duration: int = config.MAX_SERVICE_DURATION_MINUTES


DEFAULT_RULES = SchedulingRules()


class Reasons(NamedTuple):
    outside_hours: str
    appointment_conflict: str
    blocked: str
    advance_notice: str


# Short labels rendered next to each slot in the picker.
SLOT_REASONS = Reasons(
    outside_hours='Outside business hours',
    appointment_conflict='Time slot unavailable',
    blocked='Time slot blocked',
    advance_notice='Insufficient advance notice',
)

SERVICE_UNAVAILABLE_REASON = 'Service not found or inactive'


def validator_reasons(rules: SchedulingRules = DEFAULT_RULES) -> Reasons:
    # The admin conflict detector classifies on the substrings
    # "business hours", "conflict", "blocked" and "advance notice".
    return Reasons(
        outside_hours='Outside business hours',
        appointment_conflict='Time slot conflicts with existing appointment',
        blocked='Time slot is blocked',
        advance_notice=(
            f'Insufficient advance notice: must be booked at least '
            f'{rules.min_advance_hours} hours in advance'
        ),
    )


def parse_time_to_minutes(value: str) -> int:
    """Convert a stored ``HH:MM`` string to minutes since midnight.

    ``24:00`` is accepted as the end of the day. Anything else outside
    00:00-23:59, or not in ``HH:MM`` form, raises ``InvalidTimeFormatError``.
    """
    if not isinstance(value, str):
        raise InvalidTimeFormatError(value)

    parts = value.strip().split(':')
    if len(parts) != 2 or not all(part.isdigit() for part in parts):
        raise InvalidTimeFormatError(value)

    hours, minutes = (int(part) for part in parts)
    if hours == 24 and minutes == 0:
        return MINUTES_PER_DAY
    if hours > 23 or minutes > 59:
        raise InvalidTimeFormatError(value)

    return hours * 60 + minutes


def day_of_week(value: date) -> int:
    """Day index with Sunday as 0, the convention availability windows are stored in."""
    return (value.weekday() + 1) % 7


def minutes_since_midnight(value: datetime) -> int:
    return value.hour * 60 + value.minute


def start_of_day(value: date) -> datetime:
    return datetime.combine(value, datetime.min.time())


def overlaps(start1: datetime, end1: datetime, start2: datetime, end2: datetime) -> bool:
    return not (end1 <= start2 or start1 >= end2)


def is_within_availability(instant: datetime, windows: Iterable[AvailabilityWindow]) -> bool:
    """True when ``instant`` falls in ``[start, end)`` of a window for its weekday."""
    weekday = day_of_week(instant.date())
    instant_minutes = minutes_since_midnight(instant)

    return any(
        window.day_of_week == weekday
        and window.start_minutes <= instant_minutes < window.end_minutes
        for window in windows
    )


def fits_within_availability(
    instant: datetime,
    duration: int,
    windows: Iterable[AvailabilityWindow],
) -> bool:
    """True when a session of ``duration`` minutes starting at ``instant`` ends inside the same window."""
    weekday = day_of_week(instant.date())
    instant_minutes = minutes_since_midnight(instant)

    return any(
        window.day_of_week == weekday
        and window.start_minutes <= instant_minutes < window.end_minutes
        and instant_minutes + duration <= window.end_minutes
        for window in windows
    )


def find_conflicting_appointments(
    start: datetime,
    duration: int,
    appointments: Iterable[OccupiedInterval],
    buffer_minutes: int,
) -> list[OccupiedInterval]:
    end = start + timedelta(minutes=duration)
    buffer = timedelta(minutes=buffer_minutes)

    return [
        appointment
        for appointment in appointments
        if overlaps(start, end, appointment.date_time - buffer, appointment.end + buffer)
    ]


def has_appointment_conflict(
    start: datetime,
    duration: int,
    appointments: Iterable[OccupiedInterval],
    buffer_minutes: int,
) -> bool:
    return bool(find_conflicting_appointments(start, duration, appointments, buffer_minutes))


def has_blocked_conflict(
    start: datetime,
    duration: int,
    blocked_periods: Iterable[OccupiedInterval],
) -> bool:
    end = start + timedelta(minutes=duration)
    return any(overlaps(start, end, blocked.date_time, blocked.end) for blocked in blocked_periods)


def meets_advance_notice(instant: datetime, now: datetime, min_advance_hours: int) -> bool:
    return instant >= now + timedelta(hours=min_advance_hours)


def occupancy_lookup_range(
    range_start: datetime,
    range_end: datetime,
    rules: SchedulingRules = DEFAULT_RULES,
) -> tuple[datetime, datetime]:
    """Widen a range so every interval that could reach into it is fetched.

    Stored intervals are keyed by their start, so anything that began up to
    one maximum duration plus a buffer earlier may still overlap.
    """
    lead = timedelta(minutes=rules.max_duration + rules.buffer_minutes)
    trail = timedelta(minutes=rules.buffer_minutes)
    return range_start - lead, range_end + trail


def evaluate_candidate(
    start: datetime,
    duration: int,
    *,
    windows: list[AvailabilityWindow],
    appointments: list[OccupiedInterval],
    blocked_periods: list[OccupiedInterval],
    now: datetime,
    rules: SchedulingRules,
    reasons: Reasons,
    require_fit: bool = False,
) -> str | None:
    """Apply the booking rules in order and return the first failure's reason, or None."""
    within_hours = (
        fits_within_availability(start, duration, windows)
        if require_fit
        else is_within_availability(start, windows)
    )
    if not within_hours:
        return reasons.outside_hours

    if has_appointment_conflict(start, duration, appointments, rules.buffer_minutes):
        return reasons.appointment_conflict

    if has_blocked_conflict(start, duration, blocked_periods):
        return reasons.blocked

    if not meets_advance_notice(start, now, rules.min_advance_hours):
        return reasons.advance_notice

    return None
