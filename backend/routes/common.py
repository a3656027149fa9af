import logging

from fastapi import HTTPException, status
from sqlalchemy.exc import SQLAlchemyError

from backend.database import ensure_scheduling_schema
from backend.scheduling.errors import (
    AppointmentNotFoundError,
    BookingError,
    DuplicateBookingError,
    InvalidAppointmentStateError,
    SchedulingConfigurationError,
    SchedulingError,
    ServiceNotFoundError,
    SlotUnavailableError,
)

logger = logging.getLogger(__name__)

DATABASE_UNAVAILABLE_DETAIL = 'Database unavailable. Verify DATABASE_URL and database credentials.'
CONFIGURATION_ERROR_DETAIL = 'Scheduling configuration is invalid. Please contact the practice.'


def database_unavailable(exc: SQLAlchemyError) -> HTTPException:
    logger.error('Database error: %s', exc)
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=DATABASE_UNAVAILABLE_DETAIL,
    )


def ensure_database_ready() -> None:
    try:
        ensure_scheduling_schema()
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc


def scheduling_http_error(exc: SchedulingError) -> HTTPException:
    """Map a scheduling exception onto the HTTP error the client sees."""
    if isinstance(exc, ServiceNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, SchedulingConfigurationError):
        logger.error('Scheduling configuration error: %s', exc)
        return HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=CONFIGURATION_ERROR_DETAIL,
        )
    if isinstance(exc, AppointmentNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, (SlotUnavailableError, DuplicateBookingError)):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    if isinstance(exc, (InvalidAppointmentStateError, BookingError)):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    logger.error('Unexpected scheduling error: %s', exc)
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))
