import os
from datetime import datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')

from backend.database import Base  # noqa: E402
from backend.models.appointment import CONFIRMED, Appointment  # noqa: E402
from backend.models.availability import AvailabilityWindow  # noqa: E402
from backend.models.blocked_slot import BlockedSlot  # noqa: E402
from backend.models.schedule_lock import ScheduleLock  # noqa: E402
from backend.models.service import Service  # noqa: E402
from backend.models.user import User  # noqa: E402


@pytest.fixture
def scheduling_db():
    engine = create_engine('sqlite:///:memory:')
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    db = testing_session_local()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


class SchedulingFactory:
    def __init__(self, db):
        self.db = db

    def user(self, email='client@example.com', name='Casey Client', role='client') -> User:
        user = User(email=email, name=name, hashed_password='', role=role)
        self.db.add(user)
        self.db.commit()
        return user

    def service(self, duration=60, is_active=True, title='Individual Counseling') -> Service:
        service = Service(title=title, duration=duration, price=120, is_active=is_active)
        self.db.add(service)
        self.db.commit()
        return service

    def window(self, day_of_week, start_time, end_time, is_active=True) -> AvailabilityWindow:
        window = AvailabilityWindow(
            day_of_week=day_of_week,
            start_time=start_time,
            end_time=end_time,
            is_active=is_active,
        )
        self.db.add(window)
        self.db.commit()
        return window

    def appointment(self, user, service, date_time: datetime, status=CONFIRMED) -> Appointment:
        appointment = Appointment(
            user_id=user.id,
            service_id=service.id,
            date_time=date_time,
            status=status,
        )
        self.db.add(appointment)
        self.db.commit()
        return appointment

    def blocked(self, date_time: datetime, duration: int, reason='Holiday') -> BlockedSlot:
        blocked_slot = BlockedSlot(date_time=date_time, duration=duration, reason=reason)
        self.db.add(blocked_slot)
        self.db.commit()
        return blocked_slot

    def schedule_lock(self) -> ScheduleLock:
        lock = ScheduleLock(id=1)
        self.db.add(lock)
        self.db.commit()
        return lock


@pytest.fixture
def factory(scheduling_db):
    return SchedulingFactory(scheduling_db)
