"""Single-slot availability check, the final gate before any appointment write."""

from datetime import datetime, timedelta

from backend.scheduling.domain import AvailabilityResult
from backend.scheduling.repository import SchedulingRepository
from backend.scheduling.rules import (
    DEFAULT_RULES,
    SERVICE_UNAVAILABLE_REASON,
    SchedulingRules,
    day_of_week,
    evaluate_candidate,
    occupancy_lookup_range,
    validator_reasons,
)


def is_time_slot_available(
    repository: SchedulingRepository,
    date_time: datetime,
    service_id: int,
    exclude_appointment_id: int | None = None,
    *,
    now: datetime,
    rules: SchedulingRules = DEFAULT_RULES,
) -> AvailabilityResult:
    """Check whether a session of ``service_id`` can start at ``date_time``.

    Applies the same rules, in the same order, as the slot generator. When
    rescheduling, pass the moving appointment as ``exclude_appointment_id``
    so it does not conflict with itself.
    """
    service = repository.get_service(service_id)
    if service is None or not service.is_active or not service.duration:
        return AvailabilityResult(available=False, reason=SERVICE_UNAVAILABLE_REASON)

    candidate_end = date_time + timedelta(minutes=service.duration)
    range_start, range_end = occupancy_lookup_range(date_time, candidate_end, rules)

    windows = repository.get_active_availability_windows(day_of_week(date_time.date()))
    appointments = repository.get_occupying_appointments(
        range_start,
        range_end,
        exclude_id=exclude_appointment_id,
    )
    blocked_periods = repository.get_blocked_periods(range_start, range_end)

    reason = evaluate_candidate(
        date_time,
        service.duration,
        windows=windows,
        appointments=appointments,
        blocked_periods=blocked_periods,
        now=now,
        rules=rules,
        reasons=validator_reasons(rules),
        require_fit=True,
    )

    if reason is not None:
        return AvailabilityResult(available=False, reason=reason)
    return AvailabilityResult(available=True)
