import logging
from dataclasses import asdict
from datetime import date, datetime
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, ConfigDict
from sqlalchemy.orm import Session

from ..core.permissions import (
    PERM_ADD_NOTES,
    PERM_CREATE_PATIENT,
    PERM_DELETE_PATIENT,
    PERM_EDIT_PATIENT,
    PERM_VIEW_PATIENT_LEVEL_DATA,
    require_permission,
)
from ..core.security import CurrentUser, get_current_user
from ..models.base import generate_uuid, get_db, utcnow
from ..models.patient import AdmissionType, AgeUnit, Gender, Patient, PatientOutcome, Unit
from ..models.progress_note import ProgressNote, SOAPSection
from ..models.user import UserRole
from ..services.clinical_alerts import check_vitals, detect_deterioration
from ..services.edit_tracking import add_edit_history, snapshot
from ..services.lifecycle import LifecycleError, apply_outcome, readmit_from_step_down
from ..services.ntid import generate_ntid
from ..services.period_filter import (
    DateFilter,
    FilterMode,
    NicuView,
    PatientQuery,
    ShiftFilter,
    available_periods,
    filter_patients,
    parse_clock,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/patients", tags=["patients"])


class Medication(BaseModel):
    name: str
    dose: Optional[str] = None
    route: Optional[str] = None
    frequency: Optional[str] = None


class PatientCreate(BaseModel):
    name: str
    age: int
    age_unit: str = AgeUnit.DAYS
    gender: str
    mother_name: Optional[str] = None
    unit: str
    admission_type: Optional[str] = None
    diagnosis: str = ""
    doctor_in_charge: Optional[str] = None
    referring_hospital: Optional[str] = None
    admission_date: Optional[datetime] = None


class PatientUpdate(BaseModel):
    name: Optional[str] = None
    age: Optional[int] = None
    age_unit: Optional[str] = None
    gender: Optional[str] = None
    mother_name: Optional[str] = None
    unit: Optional[str] = None
    admission_type: Optional[str] = None
    diagnosis: Optional[str] = None
    doctor_in_charge: Optional[str] = None
    referring_hospital: Optional[str] = None
    admission_date: Optional[datetime] = None
    # Outcome changes are routed through the lifecycle
    outcome: Optional[str] = None
    outcome_date: Optional[datetime] = None
    step_down_location: Optional[str] = None
    referral_reason: Optional[str] = None
    referred_to: Optional[str] = None
    diagnosis_at_death: Optional[str] = None


class OutcomeChange(BaseModel):
    outcome: str
    at: Optional[datetime] = None
    location: Optional[str] = None
    reason: Optional[str] = None
    referred_to: Optional[str] = None
    diagnosis_at_death: Optional[str] = None


class ReadmitRequest(BaseModel):
    unit: Optional[str] = None
    at: Optional[datetime] = None


class ProgressNoteCreate(BaseModel):
    date: Optional[datetime] = None
    note: Optional[str] = None
    vitals: Optional[Dict] = None
    examination: Optional[Dict] = None
    medications: List[Medication] = []
    soap: Optional[Dict[str, str]] = None
    icd10_codes: Optional[str] = None


class ProgressNoteResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    patient_id: str
    date: datetime
    note: Optional[str]
    vitals: Optional[Dict]
    examination: Optional[Dict]
    medications: Optional[List[Dict]]
    soap: Optional[Dict]
    icd10_codes: Optional[str]
    added_by: Optional[str]
    added_by_email: Optional[str]


class ClinicalAlertResponse(BaseModel):
    alert_type: str
    severity: str
    title: str
    message: str
    vital: Optional[str] = None
    value: Optional[float] = None
    expected_min: Optional[float] = None
    expected_max: Optional[float] = None
    recommendation: Optional[str] = None


class ProgressNoteWithAlerts(BaseModel):
    note: ProgressNoteResponse
    alerts: List[ClinicalAlertResponse]


class PatientResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    ntid: Optional[str]
    institution_id: str
    name: str
    age: int
    age_unit: str
    gender: str
    mother_name: Optional[str]
    unit: str
    admission_type: Optional[str]
    diagnosis: str
    doctor_in_charge: Optional[str]
    referring_hospital: Optional[str]
    admission_date: datetime
    release_date: Optional[datetime]
    outcome: str
    step_down_date: Optional[datetime]
    step_down_from: Optional[str]
    step_down_location: Optional[str]
    is_step_down: bool
    readmission_from_step_down: bool
    final_discharge_date: Optional[datetime]
    referral_reason: Optional[str]
    referred_to: Optional[str]
    date_of_death: Optional[datetime]
    diagnosis_at_death: Optional[str]
    is_draft: bool
    created_by: Optional[str]
    created_by_name: Optional[str]
    last_updated_by_name: Optional[str]
    last_edited_at: Optional[datetime]


class PatientDetailResponse(PatientResponse):
    progress_notes: List[ProgressNoteResponse] = []


class EditHistoryEntry(BaseModel):
    timestamp: str
    edited_by: str
    edited_by_email: Optional[str] = None
    edited_by_role: Optional[str] = None
    summary: str
    changes: List[Dict] = []


# ── Shared helpers (also used by the analytics and AI routers) ─────────────

def institution_scope(current_user: CurrentUser, institution_id: Optional[str] = None) -> str:
    """SuperAdmins may look at another institution; everyone else sees their own."""
    if institution_id and current_user.role == UserRole.SUPER_ADMIN:
        return institution_id
    return current_user.institution_id


def institution_patients(db: Session, institution_id: str) -> List[Patient]:
    return (
        db.query(Patient)
        .filter(Patient.institution_id == institution_id)
        .order_by(Patient.admission_date.desc())
        .all()
    )


def get_patient_or_404(db: Session, patient_id: str, current_user: CurrentUser) -> Patient:
    patient = db.query(Patient).filter(Patient.id == patient_id).first()
    if not patient or patient.institution_id != institution_scope(current_user, patient.institution_id):
        raise HTTPException(status_code=404, detail="Patient not found")
    return patient


def patient_query_params(
    unit: Optional[str] = Query(None, description="Unit, e.g. NICU"),
    nicu_view: str = Query(NicuView.ALL, description="All, Inborn or Outborn"),
    outcome: Optional[str] = Query(None, description="All or a specific outcome"),
    search: Optional[str] = Query(None, description="Name, NTID, diagnosis or mother's name"),
    period: str = Query("All Time", description="All Time, Today, This Week, This Month, YYYY-MM or Custom"),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    shift_start: Optional[str] = Query(None, description="HH:MM"),
    shift_end: Optional[str] = Query(None, description="HH:MM"),
    mode: str = Query(FilterMode.ACTIVE, description="active, event or admission"),
) -> PatientQuery:
    if unit and unit not in Unit.ALL:
        raise HTTPException(status_code=400, detail=f"Invalid unit. Choose from: {Unit.ALL}")
    if outcome and outcome != "All" and outcome not in PatientOutcome.ALL:
        raise HTTPException(status_code=400, detail=f"Invalid outcome. Choose from: {PatientOutcome.ALL}")
    if mode not in FilterMode.ALL:
        raise HTTPException(status_code=400, detail=f"Invalid mode. Choose from: {FilterMode.ALL}")

    shift = None
    if shift_start and shift_end:
        try:
            parse_clock(shift_start)
            parse_clock(shift_end)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc))
        shift = ShiftFilter(start_time=shift_start, end_time=shift_end)

    return PatientQuery(
        unit=unit,
        nicu_view=nicu_view,
        outcome=outcome,
        search=search,
        date_filter=DateFilter(period=period, start_date=start_date, end_date=end_date),
        shift_filter=shift,
        mode=mode,
    )


def apply_query(patients: List[Patient], query: PatientQuery, now: datetime) -> List[Patient]:
    try:
        return filter_patients(patients, query, now)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))


# Columns a record can never be without
REQUIRED_FIELDS = ("name", "age", "age_unit", "gender", "unit", "diagnosis", "admission_date")


def _reject_cleared_required(data: dict) -> None:
    cleared = [field for field in REQUIRED_FIELDS if field in data and data[field] is None]
    if cleared:
        raise HTTPException(status_code=400, detail=f"Required fields cannot be cleared: {cleared}")


def _validate_choices(data: dict) -> None:
    choices = {
        "unit": Unit.ALL,
        "age_unit": AgeUnit.ALL,
        "gender": Gender.ALL,
        "admission_type": AdmissionType.ALL,
    }
    for field, allowed in choices.items():
        value = data.get(field)
        if value is not None and value not in allowed:
            raise HTTPException(status_code=400, detail=f"Invalid {field}. Choose from: {allowed}")


def _change_outcome(patient: Patient, change: OutcomeChange) -> None:
    if change.outcome not in PatientOutcome.ALL:
        raise HTTPException(status_code=400, detail=f"Invalid outcome. Choose from: {PatientOutcome.ALL}")
    try:
        apply_outcome(
            patient,
            change.outcome,
            at=change.at,
            location=change.location,
            reason=change.reason,
            referred_to=change.referred_to,
            diagnosis_at_death=change.diagnosis_at_death,
        )
    except LifecycleError as exc:
        raise HTTPException(status_code=409, detail=str(exc))


# ── Routes ──────────────────────────────────────────────────────────────────

@router.get("/periods")
def list_periods(current_user: CurrentUser = Depends(get_current_user)):
    """Period options offered by the dashboard's date filter."""
    return available_periods(utcnow())


@router.post("/", response_model=PatientResponse, status_code=status.HTTP_201_CREATED)
def create_patient(
    patient_in: PatientCreate,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    require_permission(current_user, PERM_CREATE_PATIENT, "Insufficient permissions to create patients")
    data = patient_in.dict()
    _validate_choices(data)
    data["admission_date"] = data["admission_date"] or utcnow()

    institution_name = current_user.institution_name or current_user.institution_id
    patient = Patient(
        id=generate_uuid(),
        ntid=generate_ntid(institution_name, data["admission_date"]),
        institution_id=current_user.institution_id,
        institution_name=current_user.institution_name,
        outcome=PatientOutcome.IN_PROGRESS,
        # Nurse entries wait for a doctor to complete them
        is_draft=current_user.role == UserRole.NURSE,
        created_by=current_user.role,
        created_by_email=current_user.email,
        created_by_name=current_user.name,
        edit_history=[],
        **data,
    )
    add_edit_history(patient, current_user, None)
    db.add(patient)
    db.commit()
    db.refresh(patient)
    logger.info("Patient %s created in %s by %s", patient.id, patient.unit, current_user.email)
    return patient


@router.get("/", response_model=List[PatientResponse])
def list_patients(
    query: PatientQuery = Depends(patient_query_params),
    institution_id: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    require_permission(current_user, PERM_VIEW_PATIENT_LEVEL_DATA, "Insufficient permissions to access patient data")
    patients = institution_patients(db, institution_scope(current_user, institution_id))
    return apply_query(patients, query, utcnow())


@router.get("/{patient_id}", response_model=PatientDetailResponse)
def get_patient(
    patient_id: str,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    require_permission(current_user, PERM_VIEW_PATIENT_LEVEL_DATA, "Insufficient permissions to access patient data")
    return get_patient_or_404(db, patient_id, current_user)


@router.put("/{patient_id}", response_model=PatientResponse)
def update_patient(
    patient_id: str,
    patient_in: PatientUpdate,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    require_permission(current_user, PERM_EDIT_PATIENT, "Insufficient permissions to edit patients")
    patient = get_patient_or_404(db, patient_id, current_user)
    data = patient_in.dict(exclude_unset=True)
    _reject_cleared_required(data)
    _validate_choices(data)
    before = snapshot(patient)

    outcome_fields = {"outcome", "outcome_date", "step_down_location", "referral_reason",
                      "referred_to", "diagnosis_at_death"}
    for field, value in data.items():
        if field not in outcome_fields:
            setattr(patient, field, value)

    target = data.get("outcome")
    if target and target != patient.outcome:
        if target == PatientOutcome.IN_PROGRESS and patient.outcome == PatientOutcome.STEP_DOWN:
            readmit_from_step_down(patient, unit=data.get("unit"), at=data.get("outcome_date"))
        else:
            _change_outcome(patient, OutcomeChange(
                outcome=target,
                at=data.get("outcome_date"),
                location=data.get("step_down_location"),
                reason=data.get("referral_reason"),
                referred_to=data.get("referred_to"),
                diagnosis_at_death=data.get("diagnosis_at_death"),
            ))

    if patient.is_draft and current_user.role != UserRole.NURSE:
        patient.is_draft = False

    add_edit_history(patient, current_user, before)
    db.commit()
    db.refresh(patient)
    return patient


@router.delete("/{patient_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_patient(
    patient_id: str,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    require_permission(current_user, PERM_DELETE_PATIENT, "Only doctors and administrators can delete patients")
    patient = get_patient_or_404(db, patient_id, current_user)
    db.delete(patient)
    db.commit()
    logger.info("Patient %s deleted by %s", patient_id, current_user.email)


@router.post("/{patient_id}/outcome", response_model=PatientResponse)
def change_outcome(
    patient_id: str,
    change: OutcomeChange,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Step down, discharge, refer or record the death of a patient."""
    require_permission(current_user, PERM_EDIT_PATIENT, "Insufficient permissions to edit patients")
    patient = get_patient_or_404(db, patient_id, current_user)
    before = snapshot(patient)
    _change_outcome(patient, change)
    add_edit_history(patient, current_user, before)
    db.commit()
    db.refresh(patient)
    return patient


@router.post("/{patient_id}/readmit", response_model=PatientResponse)
def readmit_patient(
    patient_id: str,
    request: ReadmitRequest,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Readmit a stepped-down patient to their original unit (or ``unit``)."""
    require_permission(current_user, PERM_EDIT_PATIENT, "Insufficient permissions to edit patients")
    if request.unit and request.unit not in Unit.ALL:
        raise HTTPException(status_code=400, detail=f"Invalid unit. Choose from: {Unit.ALL}")
    patient = get_patient_or_404(db, patient_id, current_user)
    before = snapshot(patient)
    try:
        readmit_from_step_down(patient, unit=request.unit, at=request.at)
    except LifecycleError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    add_edit_history(patient, current_user, before)
    db.commit()
    db.refresh(patient)
    return patient


@router.post("/{patient_id}/notes", response_model=ProgressNoteWithAlerts, status_code=status.HTTP_201_CREATED)
def add_progress_note(
    patient_id: str,
    note_in: ProgressNoteCreate,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Append a progress note and return any vitals alerts it raises."""
    require_permission(current_user, PERM_ADD_NOTES, "Insufficient permissions to add progress notes")
    patient = get_patient_or_404(db, patient_id, current_user)
    if note_in.soap:
        unknown = set(note_in.soap) - set(SOAPSection.ALL)
        if unknown:
            raise HTTPException(status_code=400, detail=f"Invalid SOAP sections: {sorted(unknown)}")
    if not (note_in.note or note_in.vitals or note_in.soap or note_in.medications):
        raise HTTPException(status_code=400, detail="Progress note is empty")

    note = ProgressNote(
        id=generate_uuid(),
        patient_id=patient.id,
        date=note_in.date or utcnow(),
        note=note_in.note,
        vitals=note_in.vitals,
        examination=note_in.examination,
        medications=[m.dict() for m in note_in.medications],
        soap=note_in.soap,
        icd10_codes=note_in.icd10_codes,
        added_by=current_user.name,
        added_by_email=current_user.email,
    )
    db.add(note)
    db.commit()
    db.refresh(note)
    db.refresh(patient)

    alerts = check_vitals(note.vitals, patient.age, patient.age_unit)
    alerts.extend(detect_deterioration(patient.progress_notes))
    return ProgressNoteWithAlerts(
        note=ProgressNoteResponse.model_validate(note),
        alerts=[ClinicalAlertResponse(**asdict(alert)) for alert in alerts],
    )


@router.get("/{patient_id}/notes", response_model=List[ProgressNoteResponse])
def list_progress_notes(
    patient_id: str,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    require_permission(current_user, PERM_VIEW_PATIENT_LEVEL_DATA, "Insufficient permissions to access patient data")
    patient = get_patient_or_404(db, patient_id, current_user)
    return patient.progress_notes


@router.get("/{patient_id}/edit-history", response_model=List[EditHistoryEntry])
def get_edit_history(
    patient_id: str,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    require_permission(current_user, PERM_VIEW_PATIENT_LEVEL_DATA, "Insufficient permissions to access patient data")
    patient = get_patient_or_404(db, patient_id, current_user)
    return list(reversed(patient.edit_history or []))
