from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import declarative_base, sessionmaker

from backend.core import config

engine_kwargs = {'echo': config.SQL_ECHO}
if config.DATABASE_URL.startswith('sqlite'):
    engine_kwargs['connect_args'] = {'check_same_thread': False}

engine = create_engine(config.DATABASE_URL, **engine_kwargs)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_scheduling_schema_checked = False


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def ensure_scheduling_schema() -> None:
    """Add the lookup indexes the slot queries rely on to an existing database."""
    global _scheduling_schema_checked

    if _scheduling_schema_checked:
        return

    with _schema_lock:
        if _scheduling_schema_checked:
            return

        inspector = inspect(engine)
        table_names = set(inspector.get_table_names())

        index_statements = []
        if 'availability' in table_names:
            index_statements.append(
                'CREATE INDEX IF NOT EXISTS idx_availability_day_active ON availability(day_of_week, is_active)'
            )
        if 'appointments' in table_names:
            index_statements.append(
                'CREATE INDEX IF NOT EXISTS idx_appointments_status_time ON appointments(status, date_time)'
            )
        if 'blocked_slots' in table_names:
            index_statements.append(
                'CREATE INDEX IF NOT EXISTS idx_blocked_slots_time ON blocked_slots(date_time)'
            )

        if index_statements:
            with engine.begin() as connection:
                for statement in index_statements:
                    connection.execute(text(statement))

        _scheduling_schema_checked = True
