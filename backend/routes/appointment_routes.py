import logging
from datetime import date, datetime, timedelta

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.auth.dependencies import get_current_user
from backend.database import get_db
from backend.models.appointment import Appointment
from backend.models.service import Service
from backend.models.user import User
from backend.routes.common import database_unavailable, ensure_database_ready, scheduling_http_error
from backend.scheduling import booking
from backend.scheduling.domain import TimeSlot
from backend.scheduling.errors import SchedulingError
from backend.scheduling.repository import SchedulingRepository
from backend.scheduling.rules import DEFAULT_RULES
from backend.scheduling.slots import generate_time_slots

router = APIRouter(tags=['appointments'])

logger = logging.getLogger(__name__)

MAX_APPOINTMENT_NOTES_LENGTH = 500
MAX_RESCHEDULE_REASON_LENGTH = 200
DEFAULT_CLIENT_RESCHEDULE_REASON = 'Client requested reschedule'


def validate_booking_datetime(value: datetime) -> datetime:
    """Shared request-level checks for a requested session start."""
    normalized = value.replace(second=0, microsecond=0)
    now = datetime.now()

    if normalized < now + timedelta(hours=DEFAULT_RULES.min_advance_hours):
        raise ValueError(
            f'Appointments must be booked at least {DEFAULT_RULES.min_advance_hours} hours in advance'
        )

    if normalized > now + timedelta(days=DEFAULT_RULES.max_advance_days):
        raise ValueError(
            f'Appointments cannot be booked more than {DEFAULT_RULES.max_advance_days} days in advance'
        )

    if normalized.minute % DEFAULT_RULES.slot_interval_minutes != 0:
        raise ValueError(
            f'Appointments must start on {DEFAULT_RULES.slot_interval_minutes}-minute boundaries.'
        )

    return normalized


def normalize_optional_text(value: str | None, max_length: int, label: str) -> str | None:
    if value is None:
        return None

    normalized = value.strip()
    if not normalized:
        return None

    if len(normalized) > max_length:
        raise ValueError(f'{label} cannot exceed {max_length} characters')

    return normalized


class BookAppointmentRequest(BaseModel):
    service_id: int
    date_time: datetime
    notes: str | None = None

    @field_validator('date_time')
    @classmethod
    def validate_date_time(cls, value: datetime) -> datetime:
        return validate_booking_datetime(value)

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        return normalize_optional_text(value, MAX_APPOINTMENT_NOTES_LENGTH, 'Notes')


class RescheduleAppointmentRequest(BaseModel):
    new_date_time: datetime
    reason: str | None = None

    @field_validator('new_date_time')
    @classmethod
    def validate_new_date_time(cls, value: datetime) -> datetime:
        return validate_booking_datetime(value)

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, value: str | None) -> str | None:
        return normalize_optional_text(value, MAX_RESCHEDULE_REASON_LENGTH, 'Reason')


class TimeSlotResponse(BaseModel):
    date_time: datetime
    available: bool
    reason: str | None = None
    display_time: str


class AvailableSlotsResponse(BaseModel):
    date: date
    service_id: int | None = None
    slots: list[TimeSlotResponse]
    total_slots: int
    available_slots: int


class AppointmentResponse(BaseModel):
    id: int
    user_id: int
    service_id: int
    service_title: str | None = None
    duration: int | None = None
    date_time: datetime
    status: str
    notes: str | None = None
    cancellation_reason: str | None = None


def format_display_time(value: datetime) -> str:
    hour = value.hour % 12 or 12
    suffix = 'AM' if value.hour < 12 else 'PM'
    return f'{hour}:{value.minute:02d} {suffix}'


def to_slot_response(slot: TimeSlot) -> TimeSlotResponse:
    return TimeSlotResponse(
        date_time=slot.date_time,
        available=slot.available,
        reason=slot.reason,
        display_time=format_display_time(slot.date_time),
    )


def to_appointment_response(appointment: Appointment) -> AppointmentResponse:
    service = appointment.service
    return AppointmentResponse(
        id=appointment.id,
        user_id=appointment.user_id,
        service_id=appointment.service_id,
        service_title=service.title if service else None,
        duration=service.duration if service else None,
        date_time=appointment.date_time,
        status=appointment.status,
        notes=appointment.notes,
        cancellation_reason=appointment.cancellation_reason,
    )


@router.get('/available', response_model=AvailableSlotsResponse)
def list_available_slots(
    target_date: date = Query(..., alias='date'),
    service_id: int | None = Query(default=None),
    db: Session = Depends(get_db),
):
    if target_date < date.today():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Date cannot be in the past',
        )

    ensure_database_ready()

    try:
        slots = generate_time_slots(
            SchedulingRepository(db),
            target_date,
            service_id,
            now=datetime.now(),
        )
    except SchedulingError as exc:
        raise scheduling_http_error(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc

    slot_responses = [to_slot_response(slot) for slot in slots]
    return AvailableSlotsResponse(
        date=target_date,
        service_id=service_id,
        slots=slot_responses,
        total_slots=len(slot_responses),
        available_slots=sum(1 for slot in slot_responses if slot.available),
    )


@router.post('/book', response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def book_appointment(
    data: BookAppointmentRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        service = db.query(Service).filter(
            Service.id == data.service_id,
            Service.is_active.is_(True),
        ).first()
        if not service:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail='Service not found or inactive',
            )

        appointment = booking.book_appointment(
            db,
            current_user.id,
            data.service_id,
            data.date_time,
            data.notes,
            now=datetime.now(),
            actor=booking.Actor(id=current_user.id, name=current_user.name),
        )
    except SchedulingError as exc:
        raise scheduling_http_error(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable(exc) from exc

    return to_appointment_response(appointment)


@router.get('/mine', response_model=list[AppointmentResponse])
def list_my_appointments(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        appointments = db.query(Appointment).filter(
            Appointment.user_id == current_user.id,
        ).order_by(Appointment.date_time.asc()).all()

        return [to_appointment_response(appointment) for appointment in appointments]
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc


@router.put('/{appointment_id}/reschedule', response_model=AppointmentResponse)
def reschedule_my_appointment(
    appointment_id: int,
    data: RescheduleAppointmentRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        appointment, _history = booking.reschedule_appointment(
            db,
            appointment_id,
            data.new_date_time,
            data.reason or DEFAULT_CLIENT_RESCHEDULE_REASON,
            now=datetime.now(),
            actor=booking.Actor(id=current_user.id, name=current_user.name),
            owner_id=current_user.id,
        )
    except SchedulingError as exc:
        raise scheduling_http_error(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable(exc) from exc

    return to_appointment_response(appointment)
