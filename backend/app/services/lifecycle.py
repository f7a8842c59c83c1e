"""
Admission lifecycle state machine.

In Progress may move to any other outcome. Step Down may be finally
discharged or readmitted to its original unit. Discharged, Referred and
Deceased are terminal.
"""
import logging
from datetime import datetime
from typing import Optional

from ..models.base import utcnow
from ..models.patient import Patient, PatientOutcome

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    PatientOutcome.IN_PROGRESS: {
        PatientOutcome.STEP_DOWN,
        PatientOutcome.DISCHARGED,
        PatientOutcome.REFERRED,
        PatientOutcome.DECEASED,
    },
    PatientOutcome.STEP_DOWN: {
        PatientOutcome.DISCHARGED,
        PatientOutcome.IN_PROGRESS,
    },
    PatientOutcome.DISCHARGED: set(),
    PatientOutcome.REFERRED: set(),
    PatientOutcome.DECEASED: set(),
}


class LifecycleError(ValueError):
    """Raised when an outcome change is not allowed."""


def _current(patient: Patient) -> str:
    return patient.outcome or PatientOutcome.IN_PROGRESS


def can_transition(current: Optional[str], target: str) -> bool:
    current = current or PatientOutcome.IN_PROGRESS
    if current == target:
        return True
    return target in ALLOWED_TRANSITIONS.get(current, set())


def apply_outcome(
    patient: Patient,
    outcome: str,
    at: Optional[datetime] = None,
    location: Optional[str] = None,
    reason: Optional[str] = None,
    referred_to: Optional[str] = None,
    diagnosis_at_death: Optional[str] = None,
) -> Patient:
    """Move a patient to a new outcome and stamp the matching dates."""
    if outcome not in PatientOutcome.ALL:
        raise LifecycleError(f"Unknown outcome: {outcome}")

    current = _current(patient)
    if current == outcome:
        return patient
    if not can_transition(current, outcome):
        raise LifecycleError(f"Cannot change outcome from {current} to {outcome}")
    if outcome == PatientOutcome.IN_PROGRESS:
        # Leaving Step Down back into the unit is a readmission
        return readmit_from_step_down(patient, at=at)

    at = at or utcnow()

    if outcome == PatientOutcome.STEP_DOWN:
        patient.is_step_down = True
        patient.step_down_date = at
        patient.step_down_from = patient.unit
        patient.step_down_location = location
    elif outcome == PatientOutcome.DISCHARGED:
        if current == PatientOutcome.STEP_DOWN:
            patient.final_discharge_date = at
            patient.is_step_down = False
        patient.release_date = at
    elif outcome == PatientOutcome.REFERRED:
        patient.release_date = at
        patient.referral_reason = reason
        patient.referred_to = referred_to
    elif outcome == PatientOutcome.DECEASED:
        patient.release_date = at
        patient.date_of_death = at
        patient.diagnosis_at_death = diagnosis_at_death

    patient.outcome = outcome
    logger.info("Patient %s outcome %s -> %s", patient.id, current, outcome)
    return patient


def readmit_from_step_down(
    patient: Patient,
    unit: Optional[str] = None,
    at: Optional[datetime] = None,
) -> Patient:
    """Return a stepped-down patient to active care. step_down_date is kept."""
    current = _current(patient)
    if current != PatientOutcome.STEP_DOWN:
        raise LifecycleError(f"Only Step Down patients can be readmitted (current: {current})")

    patient.outcome = PatientOutcome.IN_PROGRESS
    patient.is_step_down = False
    patient.readmission_from_step_down = True
    patient.unit = unit or patient.step_down_from or patient.unit
    patient.last_edited_at = at or utcnow()
    logger.info("Patient %s readmitted from step down to %s", patient.id, patient.unit)
    return patient
