from decimal import Decimal

import pytest
from pydantic import ValidationError

from backend.routes.service_routes import CreateServiceRequest, create_service, list_services


@pytest.fixture(autouse=True)
def skip_schema_checks(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr('backend.routes.service_routes.ensure_database_ready', lambda: None)


def test_create_service_request_validation() -> None:
    request = CreateServiceRequest(title='  Couples Session ', duration=90, price=Decimal('150'))

    assert request.title == 'Couples Session'

    for invalid in (
        {'title': '   ', 'duration': 60},
        {'title': 'Quick check-in', 'duration': 10},
        {'title': 'Retreat', 'duration': 600},
        {'title': 'Free', 'duration': 60, 'price': Decimal('-1')},
    ):
        with pytest.raises(ValidationError):
            CreateServiceRequest(**invalid)


def test_create_service_and_list_active_only(scheduling_db, factory) -> None:
    admin = factory.user(email='admin@practice.com', role='admin')
    factory.service(title='Retired Group', is_active=False)

    created = create_service(
        CreateServiceRequest(title='Intake Consultation', duration=30),
        admin=admin,
        db=scheduling_db,
    )

    services = list_services(db=scheduling_db)

    assert created.id is not None
    assert [service.title for service in services] == ['Intake Consultation']
