import logging
from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker

from dental_backend.core import config
from dental_backend.core.errors import StorageUnavailableError

logger = logging.getLogger(__name__)

DATABASE_URL = config.DATABASE_URL

connect_args = {'check_same_thread': False} if DATABASE_URL.startswith('sqlite') else {}
engine = create_engine(DATABASE_URL, connect_args=connect_args)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

ACTIVE_APPOINTMENT_PREDICATE = "status <> 'cancelled'"

_schema_lock = Lock()
_availability_schema_checked = False
_appointment_schema_checked = False


def ensure_availability_schema() -> None:
    global _availability_schema_checked

    if _availability_schema_checked:
        return

    with _schema_lock:
        if _availability_schema_checked:
            return

        inspector = inspect(engine)

        table_names = set(inspector.get_table_names())
        if 'dentist_availability' not in table_names:
            _availability_schema_checked = True
            return

        existing_columns = {column['name'] for column in inspector.get_columns('dentist_availability')}
        migration_steps = [
            ('break_start_time', 'ALTER TABLE dentist_availability ADD COLUMN break_start_time VARCHAR(5)'),
            ('break_end_time', 'ALTER TABLE dentist_availability ADD COLUMN break_end_time VARCHAR(5)'),
        ]

        with engine.begin() as connection:
            for column_name, statement in migration_steps:
                if column_name not in existing_columns:
                    connection.execute(text(statement))
            connection.execute(
                text(
                    'CREATE INDEX IF NOT EXISTS idx_dentist_availability_day '
                    'ON dentist_availability(dentist_id, day_of_week, clinic_branch_id)'
                )
            )
            for table_name in ('specific_dentist_availability', 'dentist_leaves'):
                if table_name in table_names:
                    connection.execute(
                        text(
                            f'CREATE INDEX IF NOT EXISTS idx_{table_name}_range '
                            f'ON {table_name}(dentist_id, start_date_time, end_date_time)'
                        )
                    )

        _availability_schema_checked = True


def ensure_appointment_schema() -> None:
    global _appointment_schema_checked

    if _appointment_schema_checked:
        return

    with _schema_lock:
        if _appointment_schema_checked:
            return

        inspector = inspect(engine)

        if 'appointments' not in inspector.get_table_names():
            _appointment_schema_checked = True
            return

        existing_columns = {column['name'] for column in inspector.get_columns('appointments')}
        migration_steps = [
            ('notif_content', 'ALTER TABLE appointments ADD COLUMN notif_content TEXT'),
            ('clinic_branch_id', 'ALTER TABLE appointments ADD COLUMN clinic_branch_id INTEGER'),
            ('detailed_notes', 'ALTER TABLE appointments ADD COLUMN detailed_notes TEXT'),
        ]

        with engine.begin() as connection:
            for column_name, statement in migration_steps:
                if column_name not in existing_columns:
                    connection.execute(text(statement))
            connection.execute(
                text(
                    'CREATE INDEX IF NOT EXISTS idx_appointments_dentist_date '
                    'ON appointments(dentist_id, appointment_date)'
                )
            )
            connection.execute(
                text(
                    'CREATE UNIQUE INDEX IF NOT EXISTS uq_appointments_dentist_start_active '
                    f'ON appointments(dentist_id, start_time) WHERE {ACTIVE_APPOINTMENT_PREDICATE}'
                )
            )

        _appointment_schema_checked = True


def ensure_database_ready() -> None:
    try:
        ensure_availability_schema()
        ensure_appointment_schema()
    except SQLAlchemyError as exc:
        logger.exception('Database schema check failed.')
        raise StorageUnavailableError(
            'Database unavailable. Verify DATABASE_URL and database credentials.',
        ) from exc


def get_db():
    ensure_database_ready()
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
