"""Read access to the data the scheduling rules consume.

Rows are turned into plain values here so that malformed admin data is
caught once, at the storage boundary, and never reaches rule evaluation.
"""

import logging
from datetime import datetime

from sqlalchemy.orm import Session

from backend.models.appointment import OCCUPYING_STATUSES, Appointment
from backend.models.availability import AvailabilityWindow as AvailabilityWindowRow
from backend.models.blocked_slot import BlockedSlot
from backend.models.service import Service
from backend.scheduling.domain import AvailabilityWindow, OccupiedInterval, ServiceInfo
from backend.scheduling.rules import parse_time_to_minutes

logger = logging.getLogger(__name__)


def build_availability_window(row) -> AvailabilityWindow | None:
    """Convert a stored window into a domain value.

    Returns None, after logging, for rows whose weekday is out of range or
    whose end does not come after the start. A malformed time string raises
    ``InvalidTimeFormatError``.
    """
    if row.day_of_week is None or not 0 <= row.day_of_week <= 6:
        logger.warning(
            'Skipping availability window %s with invalid day_of_week %r',
            row.id,
            row.day_of_week,
        )
        return None

    start_minutes = parse_time_to_minutes(row.start_time)
    end_minutes = parse_time_to_minutes(row.end_time)

    if end_minutes <= start_minutes:
        logger.warning(
            'Skipping availability window %s: end %s is not after start %s',
            row.id,
            row.end_time,
            row.start_time,
        )
        return None

    return AvailabilityWindow(
        id=row.id,
        day_of_week=row.day_of_week,
        start_minutes=start_minutes,
        end_minutes=end_minutes,
    )


class SchedulingRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_active_availability_windows(self, day_of_week: int) -> list[AvailabilityWindow]:
        rows = self.db.query(AvailabilityWindowRow).filter(
            AvailabilityWindowRow.day_of_week == day_of_week,
            AvailabilityWindowRow.is_active.is_(True),
        ).order_by(AvailabilityWindowRow.start_time.asc()).all()

        windows = (build_availability_window(row) for row in rows)
        return [window for window in windows if window is not None]

    def get_occupying_appointments(
        self,
        range_start: datetime,
        range_end: datetime,
        exclude_id: int | None = None,
    ) -> list[OccupiedInterval]:
        query = self.db.query(Appointment.id, Appointment.date_time, Service.duration).join(
            Service, Appointment.service_id == Service.id
        ).filter(
            Appointment.status.in_(OCCUPYING_STATUSES),
            Appointment.date_time >= range_start,
            Appointment.date_time < range_end,
        )
        if exclude_id is not None:
            query = query.filter(Appointment.id != exclude_id)

        return [
            OccupiedInterval(date_time=date_time, duration=duration, appointment_id=appointment_id)
            for appointment_id, date_time, duration in query.order_by(Appointment.date_time.asc()).all()
        ]

    def get_blocked_periods(self, range_start: datetime, range_end: datetime) -> list[OccupiedInterval]:
        """Blocked periods overlapping ``[range_start, range_end)``.

        Blocks have no upper bound on duration, so every block starting
        before ``range_end`` is fetched and filtered on its end here.
        """
        rows = self.db.query(BlockedSlot.date_time, BlockedSlot.duration).filter(
            BlockedSlot.date_time < range_end,
        ).order_by(BlockedSlot.date_time.asc()).all()

        periods = (OccupiedInterval(date_time=date_time, duration=duration) for date_time, duration in rows)
        return [period for period in periods if period.end > range_start]

    def get_service(self, service_id: int) -> ServiceInfo | None:
        service = self.db.get(Service, service_id)
        if service is None:
            return None
        return ServiceInfo(id=service.id, duration=service.duration, is_active=bool(service.is_active))
