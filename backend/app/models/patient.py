from sqlalchemy import Column, String, Integer, DateTime, Text, Boolean, JSON
from sqlalchemy.orm import relationship
from .base import Base, TimestampMixin, generate_uuid


class Unit:
    NICU = "NICU"
    PICU = "PICU"
    SNCU = "SNCU"
    HDU = "HDU"
    GENERAL_WARD = "GENERAL_WARD"

    ALL = [NICU, PICU, SNCU, HDU, GENERAL_WARD]

    LABELS = {
        NICU: "Neonatal Intensive Care Unit",
        PICU: "Pediatric Intensive Care Unit",
        SNCU: "Special New Born Care Unit",
        HDU: "High Dependency Unit",
        GENERAL_WARD: "General Ward",
    }


class AgeUnit:
    DAYS = "days"
    WEEKS = "weeks"
    MONTHS = "months"
    YEARS = "years"

    ALL = [DAYS, WEEKS, MONTHS, YEARS]


class Gender:
    MALE = "Male"
    FEMALE = "Female"
    OTHER = "Other"
    AMBIGUOUS = "Ambiguous"

    ALL = [MALE, FEMALE, OTHER, AMBIGUOUS]


class AdmissionType:
    INBORN = "Inborn"
    OUTBORN_HEALTH_FACILITY = "Outborn (Health Facility Referred)"
    OUTBORN_COMMUNITY = "Outborn (Community Referred)"

    ALL = [INBORN, OUTBORN_HEALTH_FACILITY, OUTBORN_COMMUNITY]

    @staticmethod
    def is_outborn(admission_type) -> bool:
        return bool(admission_type) and admission_type.startswith("Outborn")


class PatientOutcome:
    IN_PROGRESS = "In Progress"
    STEP_DOWN = "Step Down"
    DISCHARGED = "Discharged"
    REFERRED = "Referred"
    DECEASED = "Deceased"

    ALL = [IN_PROGRESS, STEP_DOWN, DISCHARGED, REFERRED, DECEASED]
    TERMINAL = {DISCHARGED, REFERRED, DECEASED}


class Patient(Base, TimestampMixin):
    __tablename__ = "patients"

    id = Column(String, primary_key=True, default=generate_uuid)
    ntid = Column(String(20), nullable=True, index=True)  # NeoLink tracking ID
    institution_id = Column(String(50), nullable=False, index=True)
    institution_name = Column(String(200), nullable=True)

    # Demographics
    name = Column(String(200), nullable=False)
    age = Column(Integer, nullable=False, default=0)
    age_unit = Column(String(10), nullable=False, default=AgeUnit.DAYS)
    gender = Column(String(20), nullable=False)
    mother_name = Column(String(200), nullable=True)

    # Clinical
    unit = Column(String(20), nullable=False, index=True)
    admission_type = Column(String(60), nullable=True)
    diagnosis = Column(Text, nullable=False, default="")
    doctor_in_charge = Column(String(200), nullable=True)
    referring_hospital = Column(String(200), nullable=True)

    # Lifecycle
    admission_date = Column(DateTime, nullable=False, index=True)
    release_date = Column(DateTime, nullable=True)
    outcome = Column(String(20), nullable=False, default=PatientOutcome.IN_PROGRESS, index=True)

    step_down_date = Column(DateTime, nullable=True)
    step_down_from = Column(String(20), nullable=True)
    step_down_location = Column(String(200), nullable=True)  # e.g. mother side, ward
    is_step_down = Column(Boolean, default=False, nullable=False)
    readmission_from_step_down = Column(Boolean, default=False, nullable=False)
    final_discharge_date = Column(DateTime, nullable=True)

    referral_reason = Column(Text, nullable=True)
    referred_to = Column(String(200), nullable=True)

    date_of_death = Column(DateTime, nullable=True)
    diagnosis_at_death = Column(Text, nullable=True)

    # Audit
    is_draft = Column(Boolean, default=False, nullable=False)
    created_by = Column(String(30), nullable=True)  # role
    created_by_email = Column(String(255), nullable=True)
    created_by_name = Column(String(200), nullable=True)
    last_updated_by = Column(String(30), nullable=True)
    last_updated_by_email = Column(String(255), nullable=True)
    last_updated_by_name = Column(String(200), nullable=True)
    last_edited_at = Column(DateTime, nullable=True)
    edit_history = Column(JSON, nullable=False, default=list)

    progress_notes = relationship(
        "ProgressNote",
        back_populates="patient",
        cascade="all, delete-orphan",
        order_by="ProgressNote.date",
    )
