from datetime import date, datetime, time, timedelta

import pytest
from fastapi import HTTPException
from pydantic import ValidationError

from backend.routes.admin_appointment_routes import (
    ConflictCheckRequest,
    UpdateAppointmentStatusRequest,
    check_conflicts,
    list_appointment_history,
    reschedule_appointment,
    update_appointment_status,
)
from backend.routes.appointment_routes import RescheduleAppointmentRequest
from backend.scheduling.rules import day_of_week

TARGET_DATE = date.today() + timedelta(days=3)


def on_target(hour: int, minute: int = 0) -> datetime:
    return datetime.combine(TARGET_DATE, time(hour, minute))


@pytest.fixture(autouse=True)
def skip_schema_checks(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr('backend.routes.admin_appointment_routes.ensure_database_ready', lambda: None)


@pytest.fixture
def admin(factory):
    return factory.user(email='admin@practice.com', name='Dr. Admin', role='admin')


@pytest.fixture
def service(factory):
    factory.window(day_of_week(TARGET_DATE), '09:00', '17:00')
    return factory.service(duration=60)


def test_update_status_request_normalizes_status() -> None:
    assert UpdateAppointmentStatusRequest(status=' confirmed ').status == 'CONFIRMED'

    with pytest.raises(ValidationError):
        UpdateAppointmentStatusRequest(status='archived')


def test_update_appointment_status_route(scheduling_db, factory, admin, service) -> None:
    appointment = factory.appointment(factory.user(), service, on_target(9, 0), status='PENDING')

    response = update_appointment_status(
        appointment.id,
        UpdateAppointmentStatusRequest(status='CONFIRMED'),
        admin=admin,
        db=scheduling_db,
    )

    assert response.status == 'CONFIRMED'


def test_update_appointment_status_route_returns_not_found(scheduling_db, admin) -> None:
    with pytest.raises(HTTPException) as exception_info:
        update_appointment_status(
            404,
            UpdateAppointmentStatusRequest(status='CANCELLED'),
            admin=admin,
            db=scheduling_db,
        )

    assert exception_info.value.status_code == 404


def test_reschedule_route_writes_history(scheduling_db, factory, admin, service) -> None:
    appointment = factory.appointment(factory.user(), service, on_target(9, 0))

    result = reschedule_appointment(
        appointment.id,
        RescheduleAppointmentRequest(new_date_time=on_target(14, 0), reason='Room change'),
        admin=admin,
        db=scheduling_db,
    )

    assert result.appointment.date_time == on_target(14, 0)
    assert result.appointment.status == 'PENDING'
    assert result.history.reason == 'Room change'
    assert result.history.actor_name == 'Dr. Admin'

    history = list_appointment_history(appointment.id, admin=admin, db=scheduling_db)
    assert [entry.action for entry in history] == ['RESCHEDULED']


def test_reschedule_route_reports_unavailable_slot(scheduling_db, factory, admin, service) -> None:
    client = factory.user()
    appointment = factory.appointment(client, service, on_target(9, 0))
    factory.appointment(client, service, on_target(14, 0))

    with pytest.raises(HTTPException) as exception_info:
        reschedule_appointment(
            appointment.id,
            RescheduleAppointmentRequest(new_date_time=on_target(14, 30)),
            admin=admin,
            db=scheduling_db,
        )

    assert exception_info.value.status_code == 409
    assert exception_info.value.detail.startswith('New time slot is not available: ')


def test_list_appointment_history_returns_not_found(scheduling_db, admin) -> None:
    with pytest.raises(HTTPException) as exception_info:
        list_appointment_history(404, admin=admin, db=scheduling_db)

    assert exception_info.value.status_code == 404


def test_check_conflicts_includes_client_details(scheduling_db, factory, admin, service) -> None:
    client = factory.user(name='Jordan Client')
    existing = factory.appointment(client, service, on_target(10, 0))

    report = check_conflicts(
        ConflictCheckRequest(date_time=on_target(10, 30), service_id=service.id),
        admin=admin,
        db=scheduling_db,
    )

    assert report.has_conflict
    assert report.conflict_type == 'appointment'
    assert [item.id for item in report.conflicting_appointments] == [existing.id]
    assert report.conflicting_appointments[0].client_name == 'Jordan Client'
    assert report.suggested_alternatives[0].date_time == on_target(11, 15)
    assert len(report.suggested_alternatives) == 6


def test_check_conflicts_excluding_the_moving_appointment(scheduling_db, factory, admin, service) -> None:
    existing = factory.appointment(factory.user(), service, on_target(10, 0))

    report = check_conflicts(
        ConflictCheckRequest(
            date_time=on_target(10, 30),
            service_id=service.id,
            exclude_appointment_id=existing.id,
        ),
        admin=admin,
        db=scheduling_db,
    )

    assert not report.has_conflict
    assert report.conflicting_appointments == []
