import logging
from decimal import Decimal

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.auth.dependencies import require_admin
from backend.database import get_db
from backend.models.service import Service
from backend.models.user import User
from backend.routes.common import database_unavailable, ensure_database_ready
from backend.scheduling.rules import DEFAULT_RULES

router = APIRouter(tags=['services'])

logger = logging.getLogger(__name__)


class CreateServiceRequest(BaseModel):
    title: str
    description: str | None = None
    duration: int = Field(
        ge=DEFAULT_RULES.min_duration,
        le=DEFAULT_RULES.max_duration,
    )
    price: Decimal = Field(default=Decimal('0'), ge=0)
    is_active: bool = True

    @field_validator('title')
    @classmethod
    def validate_title(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Title is required.')
        return normalized


class ServiceResponse(BaseModel):
    id: int
    title: str
    description: str | None = None
    duration: int
    price: Decimal
    is_active: bool

    class Config:
        from_attributes = True


@router.get('', response_model=list[ServiceResponse])
def list_services(db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        return db.query(Service).filter(Service.is_active.is_(True)).order_by(Service.title.asc()).all()
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc


@router.post('', response_model=ServiceResponse, status_code=status.HTTP_201_CREATED)
def create_service(
    data: CreateServiceRequest,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        service = Service(
            title=data.title,
            description=data.description,
            duration=data.duration,
            price=data.price,
            is_active=data.is_active,
        )
        db.add(service)
        db.commit()
        db.refresh(service)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable(exc) from exc

    logger.info('Service %s (%s, %s minutes) created by %s', service.id, service.title, service.duration, admin.id)
    return service
