"""
Slot generation for the booking picker.

Walks every active availability window for a day in fixed steps and tags
each candidate start with a verdict. The verdicts are advisory: the booking
path always re-checks a chosen slot with ``is_time_slot_available``.
"""

import logging
from datetime import date, datetime, timedelta

from backend.scheduling.domain import TimeSlot
from backend.scheduling.errors import ServiceNotFoundError
from backend.scheduling.repository import SchedulingRepository
from backend.scheduling.rules import (
    DEFAULT_RULES,
    SLOT_REASONS,
    SchedulingRules,
    day_of_week,
    evaluate_candidate,
    occupancy_lookup_range,
    start_of_day,
)

logger = logging.getLogger(__name__)


def resolve_service_duration(
    repository: SchedulingRepository,
    service_id: int | None,
    rules: SchedulingRules = DEFAULT_RULES,
) -> int:
    if service_id is None:
        return rules.default_service_duration

    service = repository.get_service(service_id)
    if service is None or not service.is_active:
        raise ServiceNotFoundError(service_id)

    return service.duration


def generate_time_slots(
    repository: SchedulingRepository,
    target_date: date,
    service_id: int | None = None,
    *,
    now: datetime,
    rules: SchedulingRules = DEFAULT_RULES,
) -> list[TimeSlot]:
    """Return every candidate start time on ``target_date``, available or not.

    Candidates that would run past the close of their window are left out
    entirely. The rest carry ``available`` and, when unavailable, the reason
    of the first rule they failed. Raises ``ServiceNotFoundError`` when
    ``service_id`` does not name an active service.
    """
    service_duration = resolve_service_duration(repository, service_id, rules)

    weekday = day_of_week(target_date)
    windows = repository.get_active_availability_windows(weekday)
    if not windows:
        logger.info('No availability configured for day %s (%s)', weekday, target_date.isoformat())
        return []

    day_start = start_of_day(target_date)
    range_start, range_end = occupancy_lookup_range(day_start, day_start + timedelta(days=1), rules)
    appointments = repository.get_occupying_appointments(range_start, range_end)
    blocked_periods = repository.get_blocked_periods(range_start, range_end)

    slots: dict[datetime, TimeSlot] = {}
    step = rules.slot_interval_minutes

    for window in windows:
        minutes = window.start_minutes
        while minutes < window.end_minutes and minutes + service_duration <= window.end_minutes:
            slot_start = day_start + timedelta(minutes=minutes)
            minutes += step

            # Overlapping windows would otherwise yield the same start twice.
            if slot_start in slots:
                continue

            reason = evaluate_candidate(
                slot_start,
                service_duration,
                windows=windows,
                appointments=appointments,
                blocked_periods=blocked_periods,
                now=now,
                rules=rules,
                reasons=SLOT_REASONS,
            )
            slots[slot_start] = TimeSlot(date_time=slot_start, available=reason is None, reason=reason)

    ordered = sorted(slots.values(), key=lambda slot: slot.date_time)

    logger.info(
        'Generated time slots for %s (service=%s): %d total, %d available',
        target_date.isoformat(),
        service_id,
        len(ordered),
        sum(1 for slot in ordered if slot.available),
    )

    return ordered


def get_available_slots(
    repository: SchedulingRepository,
    target_date: date,
    service_id: int | None = None,
    *,
    now: datetime,
    rules: SchedulingRules = DEFAULT_RULES,
) -> list[datetime]:
    return [
        slot.date_time
        for slot in generate_time_slots(repository, target_date, service_id, now=now, rules=rules)
        if slot.available
    ]
