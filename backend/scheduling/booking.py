"""
Appointment writes guarded by the availability validator.

Every write that puts a session on the calendar runs inside one transaction
that first locks the schedule row, then re-runs ``is_time_slot_available``
on the same session, then writes the appointment and its history record.
Two bookers racing for the same slot serialize on the lock, so the second
one sees the first one's appointment when it re-validates.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.models.appointment import (
    APPOINTMENT_STATUSES,
    CANCELLED,
    OCCUPYING_STATUSES,
    PENDING,
    Appointment,
    AppointmentHistory,
)
from backend.models.schedule_lock import SCHEDULE_LOCK_ID, ScheduleLock
from backend.scheduling.domain import OccupiedInterval, TimeSlot
from backend.scheduling.errors import (
    AppointmentNotFoundError,
    BookingError,
    DuplicateBookingError,
    InvalidAppointmentStateError,
    SlotUnavailableError,
)
from backend.scheduling.repository import SchedulingRepository
from backend.scheduling.rules import (
    DEFAULT_RULES,
    SchedulingRules,
    find_conflicting_appointments,
    occupancy_lookup_range,
)
from backend.scheduling.slots import generate_time_slots
from backend.scheduling.validator import is_time_slot_available

logger = logging.getLogger(__name__)

ACTION_BOOKED = 'BOOKED'
ACTION_RESCHEDULED = 'RESCHEDULED'
ACTION_STATUS_CHANGED = 'STATUS_CHANGED'
ACTION_CANCELLED = 'CANCELLED'

MAX_SUGGESTED_ALTERNATIVES = 6


@dataclass
class Actor:
    id: int | None = None
    name: str | None = None


@dataclass
class ConflictReport:
    has_conflict: bool
    conflict_type: str | None = None
    reason: str = ''
    conflicting_appointments: list[OccupiedInterval] = field(default_factory=list)
    suggested_alternatives: list[TimeSlot] = field(default_factory=list)


def ensure_schedule_lock(db: Session) -> None:
    """Create the schedule lock row if this database does not have it yet."""
    if db.get(ScheduleLock, SCHEDULE_LOCK_ID) is None:
        db.add(ScheduleLock(id=SCHEDULE_LOCK_ID))
        db.commit()


def acquire_schedule_lock(db: Session) -> None:
    lock = db.query(ScheduleLock).filter(ScheduleLock.id == SCHEDULE_LOCK_ID).with_for_update().first()
    if lock is None:
        db.add(ScheduleLock(id=SCHEDULE_LOCK_ID))
        db.flush()
        db.query(ScheduleLock).filter(ScheduleLock.id == SCHEDULE_LOCK_ID).with_for_update().one()


def _require_available(
    db: Session,
    date_time: datetime,
    service_id: int,
    exclude_appointment_id: int | None,
    now: datetime,
    rules: SchedulingRules,
) -> None:
    result = is_time_slot_available(
        SchedulingRepository(db),
        date_time,
        service_id,
        exclude_appointment_id,
        now=now,
        rules=rules,
    )
    if not result.available:
        raise SlotUnavailableError(result.reason or 'Time slot is no longer available')


def book_appointment(
    db: Session,
    user_id: int,
    service_id: int,
    date_time: datetime,
    notes: str | None = None,
    *,
    now: datetime,
    rules: SchedulingRules = DEFAULT_RULES,
    actor: Actor | None = None,
) -> Appointment:
    try:
        acquire_schedule_lock(db)

        # Checked before the validator, which would report the client's own
        # session as an ordinary conflict.
        duplicate = db.query(Appointment.id).filter(
            Appointment.user_id == user_id,
            Appointment.date_time == date_time,
            Appointment.status.in_(OCCUPYING_STATUSES),
        ).first()
        if duplicate:
            raise DuplicateBookingError()

        _require_available(db, date_time, service_id, None, now, rules)

        appointment = Appointment(
            user_id=user_id,
            service_id=service_id,
            date_time=date_time,
            status=PENDING,
            notes=notes,
        )
        db.add(appointment)
        db.flush()

        actor = actor or Actor(id=user_id)
        db.add(AppointmentHistory(
            appointment_id=appointment.id,
            action=ACTION_BOOKED,
            new_date_time=date_time,
            new_status=PENDING,
            actor_id=actor.id,
            actor_name=actor.name,
        ))
        db.commit()
    except (BookingError, SQLAlchemyError):
        db.rollback()
        raise

    db.refresh(appointment)
    logger.info(
        'Appointment %s booked for user %s (service=%s, at=%s)',
        appointment.id,
        user_id,
        service_id,
        date_time.isoformat(),
    )
    return appointment


def reschedule_appointment(
    db: Session,
    appointment_id: int,
    new_date_time: datetime,
    reason: str | None = None,
    *,
    now: datetime,
    actor: Actor | None = None,
    owner_id: int | None = None,
    rules: SchedulingRules = DEFAULT_RULES,
) -> tuple[Appointment, AppointmentHistory]:
    """Move an appointment to ``new_date_time`` and reset it to PENDING.

    With ``owner_id`` set (a client moving their own session) the appointment
    must belong to that user and must itself still be more than the minimum
    notice period away.
    """
    try:
        acquire_schedule_lock(db)

        query = db.query(Appointment).filter(Appointment.id == appointment_id)
        if owner_id is not None:
            query = query.filter(Appointment.user_id == owner_id)
        appointment = query.first()
        if appointment is None:
            raise AppointmentNotFoundError(appointment_id)

        if appointment.status not in OCCUPYING_STATUSES:
            raise InvalidAppointmentStateError(
                'Cannot reschedule completed, cancelled, or no-show appointments'
            )

        if owner_id is not None and appointment.date_time <= now + timedelta(hours=rules.min_advance_hours):
            raise InvalidAppointmentStateError(
                f'Appointments cannot be rescheduled within {rules.min_advance_hours} hours '
                f'of the scheduled time.'
            )

        _require_available(db, new_date_time, appointment.service_id, appointment.id, now, rules)

        old_date_time = appointment.date_time
        old_status = appointment.status
        history = AppointmentHistory(
            appointment_id=appointment.id,
            action=ACTION_RESCHEDULED,
            old_date_time=old_date_time,
            new_date_time=new_date_time,
            old_status=old_status,
            new_status=PENDING,
            reason=reason,
            actor_id=actor.id if actor else owner_id,
            actor_name=actor.name if actor else None,
        )
        db.add(history)

        appointment.date_time = new_date_time
        appointment.status = PENDING
        appointment.updated_at = now
        db.commit()
    except (BookingError, SQLAlchemyError):
        db.rollback()
        raise

    db.refresh(appointment)
    db.refresh(history)
    logger.info(
        'Appointment %s rescheduled from %s to %s (history=%s)',
        appointment.id,
        old_date_time.isoformat(),
        new_date_time.isoformat(),
        history.id,
    )
    return appointment, history


def update_appointment_status(
    db: Session,
    appointment_id: int,
    status: str,
    *,
    reason: str | None = None,
    actor: Actor | None = None,
) -> Appointment:
    if status not in APPOINTMENT_STATUSES:
        raise InvalidAppointmentStateError(f'Unknown appointment status: {status}')

    try:
        appointment = db.query(Appointment).filter(Appointment.id == appointment_id).first()
        if appointment is None:
            raise AppointmentNotFoundError(appointment_id)

        old_status = appointment.status
        if old_status == status:
            return appointment

        # Reopening a terminal appointment would put it back on the calendar unchecked.
        if old_status not in OCCUPYING_STATUSES:
            raise InvalidAppointmentStateError(
                'Cannot change the status of a completed, cancelled, or no-show appointment'
            )

        appointment.status = status
        if status == CANCELLED:
            appointment.cancellation_reason = reason

        db.add(AppointmentHistory(
            appointment_id=appointment.id,
            action=ACTION_CANCELLED if status == CANCELLED else ACTION_STATUS_CHANGED,
            old_status=old_status,
            new_status=status,
            reason=reason,
            actor_id=actor.id if actor else None,
            actor_name=actor.name if actor else None,
        ))
        db.commit()
    except (BookingError, SQLAlchemyError):
        db.rollback()
        raise

    db.refresh(appointment)
    logger.info('Appointment %s status changed from %s to %s', appointment.id, old_status, status)
    return appointment


def classify_reason(reason: str | None) -> str:
    text = (reason or '').lower()
    if 'business hours' in text:
        return 'outside_hours'
    if 'blocked' in text:
        return 'blocked'
    if 'advance notice' in text:
        return 'advance_notice'
    if 'service' in text:
        return 'service'
    return 'appointment'


def _suggest_alternatives(
    repository: SchedulingRepository,
    date_time: datetime,
    service_id: int,
    now: datetime,
    rules: SchedulingRules,
) -> list[TimeSlot]:
    target_date = date_time.date()
    for candidate_date in (target_date, target_date + timedelta(days=1)):
        slots = generate_time_slots(repository, candidate_date, service_id, now=now, rules=rules)
        available = [slot for slot in slots if slot.available][:MAX_SUGGESTED_ALTERNATIVES]
        if available:
            return available
    return []


def detect_conflicts(
    repository: SchedulingRepository,
    date_time: datetime,
    service_id: int,
    exclude_appointment_id: int | None = None,
    *,
    now: datetime,
    rules: SchedulingRules = DEFAULT_RULES,
) -> ConflictReport:
    """Explain why a slot is unavailable and suggest nearby open slots."""
    result = is_time_slot_available(
        repository,
        date_time,
        service_id,
        exclude_appointment_id,
        now=now,
        rules=rules,
    )
    if result.available:
        return ConflictReport(has_conflict=False)

    report = ConflictReport(
        has_conflict=True,
        conflict_type=classify_reason(result.reason),
        reason=result.reason or 'Time slot not available',
    )

    if report.conflict_type == 'service':
        return report

    if report.conflict_type == 'appointment':
        service = repository.get_service(service_id)
        candidate_end = date_time + timedelta(minutes=service.duration)
        range_start, range_end = occupancy_lookup_range(date_time, candidate_end, rules)
        appointments = repository.get_occupying_appointments(
            range_start,
            range_end,
            exclude_id=exclude_appointment_id,
        )
        report.conflicting_appointments = find_conflicting_appointments(
            date_time,
            service.duration,
            appointments,
            rules.buffer_minutes,
        )

    report.suggested_alternatives = _suggest_alternatives(repository, date_time, service_id, now, rules)
    return report
