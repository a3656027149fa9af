import logging
import re
from datetime import datetime, timedelta

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field, field_validator, model_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.auth.dependencies import require_admin
from backend.database import get_db
from backend.models.appointment import OCCUPYING_STATUSES, Appointment
from backend.models.availability import AvailabilityWindow
from backend.models.blocked_slot import BlockedSlot
from backend.models.service import Service
from backend.models.user import User
from backend.routes.common import database_unavailable, ensure_database_ready, scheduling_http_error
from backend.scheduling.booking import acquire_schedule_lock
from backend.scheduling.errors import SchedulingConfigurationError
from backend.scheduling.repository import build_availability_window
from backend.scheduling.rules import DAY_NAMES, DEFAULT_RULES, overlaps, parse_time_to_minutes

router = APIRouter(tags=['availability'])

logger = logging.getLogger(__name__)

TIME_PATTERN = re.compile(r'^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$')
MAX_BLOCK_REASON_LENGTH = 200


def normalize_time_string(value: str) -> str:
    normalized = value.strip()
    if not TIME_PATTERN.match(normalized):
        raise ValueError('Time must be in HH:MM format')
    hours, minutes = normalized.split(':')
    return f'{int(hours):02d}:{minutes}'


class AvailabilityWindowRequest(BaseModel):
    day_of_week: int = Field(ge=0, le=6)
    start_time: str
    end_time: str
    is_active: bool = True

    @field_validator('start_time', 'end_time')
    @classmethod
    def validate_time(cls, value: str) -> str:
        return normalize_time_string(value)

    @model_validator(mode='after')
    def validate_end_after_start(self):
        if parse_time_to_minutes(self.end_time) <= parse_time_to_minutes(self.start_time):
            raise ValueError('End time must be after start time')
        return self


class AvailabilityWindowResponse(BaseModel):
    id: int
    day_of_week: int
    day_name: str
    start_time: str
    end_time: str
    is_active: bool
    created_at: datetime | None = None
    updated_at: datetime | None = None


class AvailabilityListResponse(BaseModel):
    windows: list[AvailabilityWindowResponse]
    grouped: dict[str, list[AvailabilityWindowResponse]]
    total: int


class CreateBlockedSlotRequest(BaseModel):
    date_time: datetime
    duration: int = Field(ge=DEFAULT_RULES.min_duration)
    reason: str | None = None

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, value: str | None) -> str | None:
        if value is None:
            return None

        normalized = value.strip()
        if not normalized:
            return None

        if len(normalized) > MAX_BLOCK_REASON_LENGTH:
            raise ValueError(f'Reason cannot exceed {MAX_BLOCK_REASON_LENGTH} characters')

        return normalized


class BlockedSlotResponse(BaseModel):
    id: int
    date_time: datetime
    duration: int
    reason: str | None = None

    class Config:
        from_attributes = True


def to_window_response(window: AvailabilityWindow) -> AvailabilityWindowResponse:
    return AvailabilityWindowResponse(
        id=window.id,
        day_of_week=window.day_of_week,
        day_name=DAY_NAMES[window.day_of_week],
        start_time=window.start_time,
        end_time=window.end_time,
        is_active=window.is_active,
        created_at=window.created_at,
        updated_at=window.updated_at,
    )


def find_overlapping_window(
    db: Session,
    day_of_week: int,
    start_time: str,
    end_time: str,
    exclude_id: int | None = None,
) -> AvailabilityWindow | None:
    query = db.query(AvailabilityWindow).filter(
        AvailabilityWindow.day_of_week == day_of_week,
        AvailabilityWindow.is_active.is_(True),
    )
    if exclude_id is not None:
        query = query.filter(AvailabilityWindow.id != exclude_id)

    start_minutes = parse_time_to_minutes(start_time)
    end_minutes = parse_time_to_minutes(end_time)

    for row in query.all():
        existing = build_availability_window(row)
        if existing and overlaps(start_minutes, end_minutes, existing.start_minutes, existing.end_minutes):
            return row

    return None


@router.get('', response_model=AvailabilityListResponse)
def list_availability_windows(
    day_of_week: int | None = Query(default=None),
    active_only: bool = Query(default=False),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        query = db.query(AvailabilityWindow)
        if day_of_week is not None and 0 <= day_of_week <= 6:
            query = query.filter(AvailabilityWindow.day_of_week == day_of_week)
        if active_only:
            query = query.filter(AvailabilityWindow.is_active.is_(True))

        rows = query.order_by(
            AvailabilityWindow.day_of_week.asc(),
            AvailabilityWindow.start_time.asc(),
        ).all()
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc

    windows: list[AvailabilityWindowResponse] = []
    grouped: dict[str, list[AvailabilityWindowResponse]] = {}
    for row in rows:
        if row.day_of_week is None or not 0 <= row.day_of_week <= 6:
            logger.warning('Invalid day_of_week %r for availability window %s', row.day_of_week, row.id)
            continue

        response = to_window_response(row)
        windows.append(response)
        grouped.setdefault(response.day_name, []).append(response)

    return AvailabilityListResponse(windows=windows, grouped=grouped, total=len(windows))


@router.post('', response_model=AvailabilityWindowResponse, status_code=status.HTTP_201_CREATED)
def create_availability_window(
    data: AvailabilityWindowRequest,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        if data.is_active and find_overlapping_window(db, data.day_of_week, data.start_time, data.end_time):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail='New availability window overlaps with existing active window',
            )

        window = AvailabilityWindow(
            day_of_week=data.day_of_week,
            start_time=data.start_time,
            end_time=data.end_time,
            is_active=data.is_active,
        )
        db.add(window)
        db.commit()
        db.refresh(window)
    except SchedulingConfigurationError as exc:
        raise scheduling_http_error(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable(exc) from exc

    logger.info(
        'Availability window %s created for %s %s-%s by %s',
        window.id,
        DAY_NAMES[window.day_of_week],
        window.start_time,
        window.end_time,
        admin.id,
    )
    return to_window_response(window)


@router.put('/{window_id}', response_model=AvailabilityWindowResponse)
def update_availability_window(
    window_id: int,
    data: AvailabilityWindowRequest,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        window = db.query(AvailabilityWindow).filter(AvailabilityWindow.id == window_id).first()
        if not window:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail='Availability window not found.',
            )

        if data.is_active and find_overlapping_window(
            db,
            data.day_of_week,
            data.start_time,
            data.end_time,
            exclude_id=window_id,
        ):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail='Updated availability window overlaps with existing active window',
            )

        window.day_of_week = data.day_of_week
        window.start_time = data.start_time
        window.end_time = data.end_time
        window.is_active = data.is_active
        db.commit()
        db.refresh(window)
    except SchedulingConfigurationError as exc:
        raise scheduling_http_error(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable(exc) from exc

    logger.info('Availability window %s updated by %s', window.id, admin.id)
    return to_window_response(window)


@router.delete('/{window_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_availability_window(
    window_id: int,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        window = db.query(AvailabilityWindow).filter(AvailabilityWindow.id == window_id).first()
        if not window:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail='Availability window not found.',
            )

        db.delete(window)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable(exc) from exc

    logger.info('Availability window %s deleted by %s', window_id, admin.id)


@router.get('/blocked-slots', response_model=list[BlockedSlotResponse])
def list_blocked_slots(db: Session = Depends(get_db)):
    ensure_database_ready()

    now = datetime.now()

    try:
        blocked_slots = db.query(BlockedSlot).order_by(BlockedSlot.date_time.asc()).all()
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc

    # Blocks that are over are hidden, ones still in progress are kept.
    return [
        blocked_slot
        for blocked_slot in blocked_slots
        if blocked_slot.date_time + timedelta(minutes=blocked_slot.duration) > now
    ]


@router.post('/blocked-slots', response_model=BlockedSlotResponse, status_code=status.HTTP_201_CREATED)
def create_blocked_slot(
    data: CreateBlockedSlotRequest,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    start_time = data.date_time.replace(second=0, microsecond=0)
    end_time = start_time + timedelta(minutes=data.duration)

    try:
        acquire_schedule_lock(db)

        candidates = db.query(Appointment.id, Appointment.date_time, Service.duration).join(
            Service, Appointment.service_id == Service.id
        ).filter(
            Appointment.status.in_(OCCUPYING_STATUSES),
            Appointment.date_time < end_time,
            Appointment.date_time >= start_time - timedelta(minutes=DEFAULT_RULES.max_duration),
        ).all()
        for appointment_id, appointment_start, duration in candidates:
            if overlaps(start_time, end_time, appointment_start, appointment_start + timedelta(minutes=duration)):
                db.rollback()
                raise HTTPException(
                    status_code=status.HTTP_409_CONFLICT,
                    detail=f'This time is already booked by appointment {appointment_id}.',
                )

        blocked_slot = BlockedSlot(
            date_time=start_time,
            duration=data.duration,
            reason=data.reason,
        )
        db.add(blocked_slot)
        db.commit()
        db.refresh(blocked_slot)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable(exc) from exc

    logger.info(
        'Blocked slot %s created at %s for %s minutes by %s',
        blocked_slot.id,
        start_time.isoformat(),
        data.duration,
        admin.id,
    )
    return blocked_slot


@router.delete('/blocked-slots/{slot_id}', status_code=status.HTTP_204_NO_CONTENT)
def remove_blocked_slot(
    slot_id: int,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        blocked_slot = db.query(BlockedSlot).filter(BlockedSlot.id == slot_id).first()
        if not blocked_slot:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail='Blocked slot not found.',
            )

        db.delete(blocked_slot)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable(exc) from exc

    logger.info('Blocked slot %s removed by %s', slot_id, admin.id)
