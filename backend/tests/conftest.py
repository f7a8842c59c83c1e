"""Shared fixtures: isolated in-memory database and patient factory."""
import os

# Keep the test run off the on-disk database and the demo seeder
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("SEED_DEMO_DATA", "false")
os.environ.setdefault("AI_MOCK_MODE", "true")

from datetime import datetime  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

# Import all models so SQLAlchemy mapper relationships resolve correctly
from app.models.base import Base, generate_uuid  # noqa: E402
from app.models.patient import AdmissionType, AgeUnit, Gender, Patient, PatientOutcome, Unit  # noqa: E402
import app.models.progress_note  # noqa: F401, E402
import app.models.audit  # noqa: F401, E402

INSTITUTION_ID = "inst-1"


@pytest.fixture()
def in_memory_db(monkeypatch):
    """Provide an isolated in-memory SQLite database for each test."""
    test_engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    TestSession = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)
    Base.metadata.create_all(bind=test_engine)

    # Patch the module-level engine/SessionLocal used outside request scope
    import app.core.audit_middleware as am
    import app.models.base as mb
    import app.seed_demo as sd

    monkeypatch.setattr(mb, "engine", test_engine)
    monkeypatch.setattr(mb, "SessionLocal", TestSession)
    monkeypatch.setattr(sd, "engine", test_engine)
    monkeypatch.setattr(sd, "SessionLocal", TestSession)
    monkeypatch.setattr(am, "SessionLocal", TestSession)

    db = TestSession()
    yield db
    db.close()


@pytest.fixture()
def make_patient():
    """Factory for unsaved Patient records with ward defaults."""

    def _make(**overrides) -> Patient:
        fields = dict(
            id=generate_uuid(),
            ntid=None,
            institution_id=INSTITUTION_ID,
            institution_name="City Hospital",
            name="Baby of Asha",
            age=2,
            age_unit=AgeUnit.DAYS,
            gender=Gender.MALE,
            mother_name="Asha",
            unit=Unit.NICU,
            admission_type=AdmissionType.INBORN,
            diagnosis="Respiratory distress syndrome",
            referring_hospital=None,
            admission_date=datetime(2025, 1, 10, 8, 0),
            release_date=None,
            outcome=PatientOutcome.IN_PROGRESS,
            step_down_date=None,
            step_down_from=None,
            step_down_location=None,
            is_step_down=False,
            readmission_from_step_down=False,
            final_discharge_date=None,
            referral_reason=None,
            referred_to=None,
            date_of_death=None,
            diagnosis_at_death=None,
            is_draft=False,
            edit_history=[],
        )
        fields.update(overrides)
        return Patient(**fields)

    return _make
