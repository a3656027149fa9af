import logging
from datetime import date, datetime, timedelta

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.auth.dependencies import require_admin
from backend.database import get_db
from backend.models.appointment import APPOINTMENT_STATUSES, Appointment, AppointmentHistory
from backend.models.user import User
from backend.routes.appointment_routes import (
    AppointmentResponse,
    RescheduleAppointmentRequest,
    TimeSlotResponse,
    normalize_optional_text,
    to_appointment_response,
    to_slot_response,
)
from backend.routes.common import database_unavailable, ensure_database_ready, scheduling_http_error
from backend.scheduling import booking
from backend.scheduling.errors import SchedulingError
from backend.scheduling.repository import SchedulingRepository

router = APIRouter(tags=['admin-appointments'])

logger = logging.getLogger(__name__)

MAX_CANCELLATION_REASON_LENGTH = 200


class UpdateAppointmentStatusRequest(BaseModel):
    status: str
    reason: str | None = None

    @field_validator('status')
    @classmethod
    def validate_status(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in APPOINTMENT_STATUSES:
            raise ValueError('Invalid appointment status.')
        return normalized

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, value: str | None) -> str | None:
        return normalize_optional_text(value, MAX_CANCELLATION_REASON_LENGTH, 'Cancellation reason')


class ConflictCheckRequest(BaseModel):
    date_time: datetime
    service_id: int
    exclude_appointment_id: int | None = None


class ConflictingAppointmentResponse(BaseModel):
    id: int
    date_time: datetime
    status: str
    service_title: str | None = None
    duration: int
    client_name: str | None = None


class ConflictReportResponse(BaseModel):
    has_conflict: bool
    conflict_type: str | None = None
    reason: str
    conflicting_appointments: list[ConflictingAppointmentResponse]
    suggested_alternatives: list[TimeSlotResponse]


class AppointmentHistoryResponse(BaseModel):
    id: int
    appointment_id: int
    action: str
    old_date_time: datetime | None = None
    new_date_time: datetime | None = None
    old_status: str | None = None
    new_status: str | None = None
    reason: str | None = None
    actor_id: int | None = None
    actor_name: str | None = None
    created_at: datetime | None = None

    class Config:
        from_attributes = True


class RescheduleResultResponse(BaseModel):
    appointment: AppointmentResponse
    history: AppointmentHistoryResponse


def actor_for(admin: User) -> booking.Actor:
    return booking.Actor(id=admin.id, name=admin.name or 'Admin')


@router.get('', response_model=list[AppointmentResponse])
def list_appointments(
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    appointment_status: str | None = Query(default=None, alias='status'),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    del admin
    ensure_database_ready()

    try:
        query = db.query(Appointment)
        if start_date is not None:
            query = query.filter(Appointment.date_time >= datetime.combine(start_date, datetime.min.time()))
        if end_date is not None:
            query = query.filter(
                Appointment.date_time < datetime.combine(end_date + timedelta(days=1), datetime.min.time())
            )
        if appointment_status:
            query = query.filter(Appointment.status == appointment_status.strip().upper())

        appointments = query.order_by(Appointment.date_time.asc()).all()
        return [to_appointment_response(appointment) for appointment in appointments]
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc


@router.patch('/{appointment_id}', response_model=AppointmentResponse)
def update_appointment_status(
    appointment_id: int,
    data: UpdateAppointmentStatusRequest,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        appointment = booking.update_appointment_status(
            db,
            appointment_id,
            data.status,
            reason=data.reason,
            actor=actor_for(admin),
        )
    except SchedulingError as exc:
        raise scheduling_http_error(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable(exc) from exc

    return to_appointment_response(appointment)


@router.post('/{appointment_id}/reschedule', response_model=RescheduleResultResponse)
def reschedule_appointment(
    appointment_id: int,
    data: RescheduleAppointmentRequest,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        appointment, history = booking.reschedule_appointment(
            db,
            appointment_id,
            data.new_date_time,
            data.reason,
            now=datetime.now(),
            actor=actor_for(admin),
        )
    except SchedulingError as exc:
        http_error = scheduling_http_error(exc)
        if http_error.status_code == status.HTTP_409_CONFLICT:
            http_error.detail = f'New time slot is not available: {exc}'
        raise http_error from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable(exc) from exc

    return RescheduleResultResponse(
        appointment=to_appointment_response(appointment),
        history=AppointmentHistoryResponse.model_validate(history),
    )


@router.get('/{appointment_id}/history', response_model=list[AppointmentHistoryResponse])
def list_appointment_history(
    appointment_id: int,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    del admin
    ensure_database_ready()

    try:
        if not db.query(Appointment.id).filter(Appointment.id == appointment_id).first():
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail='Appointment not found.',
            )

        return db.query(AppointmentHistory).filter(
            AppointmentHistory.appointment_id == appointment_id,
        ).order_by(AppointmentHistory.created_at.desc(), AppointmentHistory.id.desc()).all()
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc


@router.post('/conflicts', response_model=ConflictReportResponse)
def check_conflicts(
    data: ConflictCheckRequest,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        report = booking.detect_conflicts(
            SchedulingRepository(db),
            data.date_time,
            data.service_id,
            data.exclude_appointment_id,
            now=datetime.now(),
        )

        appointment_ids = [
            interval.appointment_id
            for interval in report.conflicting_appointments
            if interval.appointment_id is not None
        ]
        appointments = db.query(Appointment).filter(Appointment.id.in_(appointment_ids)).all() if appointment_ids else []
    except SchedulingError as exc:
        raise scheduling_http_error(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc

    logger.info(
        'Conflict check at %s by %s: conflict=%s type=%s suggestions=%d',
        data.date_time.isoformat(),
        admin.id,
        report.has_conflict,
        report.conflict_type,
        len(report.suggested_alternatives),
    )

    return ConflictReportResponse(
        has_conflict=report.has_conflict,
        conflict_type=report.conflict_type,
        reason=report.reason,
        conflicting_appointments=[
            ConflictingAppointmentResponse(
                id=appointment.id,
                date_time=appointment.date_time,
                status=appointment.status,
                service_title=appointment.service.title if appointment.service else None,
                duration=appointment.service.duration if appointment.service else 0,
                client_name=appointment.user.name if appointment.user else None,
            )
            for appointment in sorted(appointments, key=lambda item: item.date_time)
        ],
        suggested_alternatives=[to_slot_response(slot) for slot in report.suggested_alternatives],
    )
