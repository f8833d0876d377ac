import os

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault('DATABASE_URL', 'sqlite:///:memory:')
os.environ.setdefault('CLINIC_TIMEZONE', 'Asia/Manila')

from dental_backend.core.civil_time import CivilClock  # noqa: E402
from dental_backend.database import Base  # noqa: E402
from dental_backend.models import appointment  # noqa: E402,F401
from dental_backend.models.availability import WeeklyAvailability  # noqa: E402
from dental_backend.models.clinic_branch import ClinicBranch  # noqa: E402
from dental_backend.models.user import Dentist, User  # noqa: E402


@pytest.fixture
def clock() -> CivilClock:
    return CivilClock('Asia/Manila')


@pytest.fixture
def db():
    engine = create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    session = testing_session_local()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def clinic(db):
    """A branch, a patient, a secretary and one dentist with Monday hours 09:00-17:00, break 12:00-13:00."""
    branch = ClinicBranch(id=1, name='Makati Branch', address='123 Ayala Ave')
    patient = User(id='patient1', name='Juan Dela Cruz', email='juan@example.com', role='patient')
    secretary = User(id='secretary1', name='Maria Santos', email='maria@example.com', role='secretary')
    dentist_user = User(id='dentistuser1', name='Ana Reyes', email='ana@example.com', role='dentist')
    other_dentist_user = User(id='dentistuser2', name='Ben Cruz', email='ben@example.com', role='dentist')
    dentist = Dentist(id='dentist1', user_id=dentist_user.id, specialization='Orthodontics')
    other_dentist = Dentist(id='dentist2', user_id=other_dentist_user.id)
    db.add_all([branch, patient, secretary, dentist_user, other_dentist_user, dentist, other_dentist])
    db.flush()

    db.add_all([
        WeeklyAvailability(
            id='weekly1',
            dentist_id=dentist.id,
            day_of_week='monday',
            standard_start_time='09:00',
            standard_end_time='17:00',
            break_start_time='12:00',
            break_end_time='13:00',
            clinic_branch_id=branch.id,
        ),
        WeeklyAvailability(
            id='weekly2',
            dentist_id=other_dentist.id,
            day_of_week='monday',
            standard_start_time='09:00',
            standard_end_time='17:00',
            clinic_branch_id=branch.id,
        ),
    ])
    db.commit()

    return {
        'branch': branch,
        'patient': patient,
        'secretary': secretary,
        'dentist': dentist,
        'other_dentist': other_dentist,
    }

