"""
Demo data seeder for NeoLink.

Creates a demo ward for the default institution: NICU and PICU patients
covering every outcome (In Progress, Step Down, Discharged, Referred,
Deceased) with a few progress notes, so the dashboard, analytics and AI
walkthrough work immediately after a fresh start.

Development bearer tokens for a demo doctor and admin are printed to stdout
on first run; identities are otherwise issued by the identity provider.

This seeder is idempotent and safe to call on every startup.
"""
from datetime import timedelta

from .core.config import settings
from .core.security import CurrentUser, create_access_token
from .models.base import Base, SessionLocal, engine, generate_uuid, utcnow
from .models.patient import AdmissionType, AgeUnit, Gender, Patient, PatientOutcome, Unit
from .models.progress_note import ProgressNote
from .models.user import UserRole
from .services.edit_tracking import add_edit_history
from .services.lifecycle import apply_outcome

DEMO_DOCTOR = CurrentUser(
    id="demo-doctor-1",
    email="doctor@neolink.demo",
    name="Dr. Demo Doctor",
    role=UserRole.DOCTOR,
    institution_id=settings.DEFAULT_INSTITUTION_ID,
    institution_name=settings.DEFAULT_INSTITUTION_NAME,
)

DEMO_ADMIN = CurrentUser(
    id="demo-admin-1",
    email="admin@neolink.demo",
    name="Demo Admin",
    role=UserRole.ADMIN,
    institution_id=settings.DEFAULT_INSTITUTION_ID,
    institution_name=settings.DEFAULT_INSTITUTION_NAME,
)

# (ntid, name, unit, age, age_unit, gender, admission_type, diagnosis, days_ago, outcome, outcome_days_ago)
DEMO_PATIENTS = [
    ("DEM2025010001", "Baby of Sunita Devi", Unit.NICU, 2, AgeUnit.DAYS, Gender.MALE,
     AdmissionType.INBORN, "Respiratory distress syndrome", 3, PatientOutcome.IN_PROGRESS, None),
    ("DEM2025010002", "Baby of Meena Kumari", Unit.NICU, 5, AgeUnit.DAYS, Gender.FEMALE,
     AdmissionType.OUTBORN_HEALTH_FACILITY, "Neonatal sepsis", 9, PatientOutcome.STEP_DOWN, 2),
    ("DEM2025010003", "Baby of Rekha Singh", Unit.NICU, 1, AgeUnit.DAYS, Gender.MALE,
     AdmissionType.INBORN, "Neonatal jaundice", 14, PatientOutcome.DISCHARGED, 8),
    ("DEM2025010004", "Baby of Anita Yadav", Unit.NICU, 3, AgeUnit.DAYS, Gender.FEMALE,
     AdmissionType.OUTBORN_COMMUNITY, "Birth asphyxia", 6, PatientOutcome.DECEASED, 4),
    ("DEM2025010005", "Rohan Kumar", Unit.PICU, 3, AgeUnit.YEARS, Gender.MALE,
     None, "Severe pneumonia", 4, PatientOutcome.IN_PROGRESS, None),
    ("DEM2025010006", "Priya Sharma", Unit.PICU, 8, AgeUnit.MONTHS, Gender.FEMALE,
     None, "Dengue shock syndrome", 10, PatientOutcome.REFERRED, 7),
]

DEMO_REFERRING_HOSPITAL = "Community Health Centre, Rampur"


def seed_demo_data() -> None:
    """Create the demo ward if it does not already exist."""
    # Ensure tables exist (no-op when already created by main.py)
    Base.metadata.create_all(bind=engine)

    db = SessionLocal()
    try:
        created = _seed_patients(db)
        if created:
            _print_tokens()
    finally:
        db.close()


# ── helpers ──────────────────────────────────────────────────────────────────

def _seed_patients(db) -> int:
    now = utcnow()
    created = 0
    for (ntid, name, unit, age, age_unit, gender, admission_type, diagnosis,
         days_ago, outcome, outcome_days_ago) in DEMO_PATIENTS:
        if db.query(Patient).filter(Patient.ntid == ntid).first():
            continue

        admitted = now - timedelta(days=days_ago)
        patient = Patient(
            id=generate_uuid(),
            ntid=ntid,
            institution_id=settings.DEFAULT_INSTITUTION_ID,
            institution_name=settings.DEFAULT_INSTITUTION_NAME,
            name=name,
            age=age,
            age_unit=age_unit,
            gender=gender,
            mother_name=name.replace("Baby of ", "") if name.startswith("Baby of ") else None,
            unit=unit,
            admission_type=admission_type,
            referring_hospital=DEMO_REFERRING_HOSPITAL if AdmissionType.is_outborn(admission_type) else None,
            diagnosis=diagnosis,
            doctor_in_charge=DEMO_DOCTOR.name,
            admission_date=admitted,
            outcome=PatientOutcome.IN_PROGRESS,
            created_by=DEMO_DOCTOR.role,
            created_by_email=DEMO_DOCTOR.email,
            created_by_name=DEMO_DOCTOR.name,
            edit_history=[],
        )
        add_edit_history(patient, DEMO_DOCTOR, None)
        patient.progress_notes = _demo_notes(patient, admitted, min(days_ago, 3))

        if outcome != PatientOutcome.IN_PROGRESS:
            apply_outcome(
                patient,
                outcome,
                at=now - timedelta(days=outcome_days_ago),
                location="Mother side" if outcome == PatientOutcome.STEP_DOWN else None,
                reason="Needs paediatric surgical review" if outcome == PatientOutcome.REFERRED else None,
                referred_to="District Medical College" if outcome == PatientOutcome.REFERRED else None,
                diagnosis_at_death=diagnosis if outcome == PatientOutcome.DECEASED else None,
            )

        db.add(patient)
        db.commit()
        created += 1
        print(f"[seed] Created demo patient: {name} ({unit}, {patient.outcome}, NTID: {ntid})")
    return created


def _demo_notes(patient: Patient, admitted, count: int):
    notes = []
    for day in range(count):
        notes.append(ProgressNote(
            id=generate_uuid(),
            patient_id=patient.id,
            date=admitted + timedelta(days=day, hours=9),
            note=f"Day {day + 1} review. {patient.diagnosis}; tolerating feeds, monitoring continued.",
            vitals={"temperature": "36.8", "hr": str(140 - day * 4), "rr": "48", "spo2": str(93 + day)},
            medications=[{"name": "Ampicillin", "dose": "50 mg/kg", "route": "IV", "frequency": "12 hourly"}],
            added_by=DEMO_DOCTOR.name,
            added_by_email=DEMO_DOCTOR.email,
        ))
    return notes


def _print_tokens() -> None:
    for user in (DEMO_DOCTOR, DEMO_ADMIN):
        token = create_access_token({
            "sub": user.id,
            "email": user.email,
            "name": user.name,
            "role": user.role,
            "institution_id": user.institution_id,
            "institution_name": user.institution_name,
        })
        print(f"[seed] Demo {user.role} token: {token}")
