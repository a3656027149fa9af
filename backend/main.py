import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from backend.core import config
from backend.database import Base, SessionLocal, engine, ensure_scheduling_schema
from backend.models import appointment, availability, blocked_slot, schedule_lock, service, user  # noqa: F401
from backend.routes import admin_appointment_routes, appointment_routes, availability_routes, service_routes
from backend.scheduling.booking import ensure_schedule_lock

logging.basicConfig(
    level=config.LOG_LEVEL.upper(),
    format='%(asctime)s %(levelname)s %(name)s: %(message)s',
)

logger = logging.getLogger(__name__)

config.validate_runtime_config()

app = FastAPI()

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)


@app.on_event('startup')
def initialize_database() -> None:
    try:
        Base.metadata.create_all(bind=engine)
        ensure_scheduling_schema()
        db = SessionLocal()
        try:
            ensure_schedule_lock(db)
        finally:
            db.close()
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL and database credentials.')


@app.get('/')
def root():
    return {'status': 'Counseling Practice API Running'}


app.include_router(appointment_routes.router, prefix='/appointments')
app.include_router(admin_appointment_routes.router, prefix='/admin/appointments')
app.include_router(availability_routes.router, prefix='/availability')
app.include_router(service_routes.router, prefix='/services')
