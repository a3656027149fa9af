"""Plain value types passed between the repository and the rule helpers."""

from dataclasses import dataclass
from datetime import datetime, timedelta


@dataclass(frozen=True)
class AvailabilityWindow:
    day_of_week: int
    start_minutes: int
    end_minutes: int
    id: int | None = None


@dataclass(frozen=True)
class OccupiedInterval:
    date_time: datetime
    duration: int
    appointment_id: int | None = None

    @property
    def end(self) -> datetime:
        return self.date_time + timedelta(minutes=self.duration)


@dataclass(frozen=True)
class ServiceInfo:
    id: int
    duration: int
    is_active: bool


@dataclass(frozen=True)
class TimeSlot:
    date_time: datetime
    available: bool
    reason: str | None = None


@dataclass(frozen=True)
class AvailabilityResult:
    available: bool
    reason: str | None = None
