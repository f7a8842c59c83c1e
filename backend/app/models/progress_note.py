from sqlalchemy import Column, String, DateTime, Text, ForeignKey, JSON
from sqlalchemy.orm import relationship
from .base import Base, TimestampMixin, generate_uuid


class SOAPSection:
    SUBJECTIVE = "subjective"
    OBJECTIVE = "objective"
    ASSESSMENT = "assessment"
    PLAN = "plan"

    ALL = [SUBJECTIVE, OBJECTIVE, ASSESSMENT, PLAN]


class ProgressNote(Base, TimestampMixin):
    """Timestamped clinical note. Notes are append-only."""

    __tablename__ = "progress_notes"

    id = Column(String, primary_key=True, default=generate_uuid)
    patient_id = Column(String, ForeignKey("patients.id"), nullable=False, index=True)
    date = Column(DateTime, nullable=False, index=True)
    note = Column(Text, nullable=True)

    vitals = Column(JSON, nullable=True)        # {temperature, hr, rr, bp, spo2, crt, weight}
    examination = Column(JSON, nullable=True)   # {cns, cvs, chest, per_abdomen, other_findings}
    medications = Column(JSON, nullable=True)   # [{name, dose, route, frequency}]
    soap = Column(JSON, nullable=True)          # {subjective, objective, assessment, plan}
    icd10_codes = Column(String(500), nullable=True)

    added_by = Column(String(200), nullable=True)
    added_by_email = Column(String(255), nullable=True)

    patient = relationship("Patient", back_populates="progress_notes")
