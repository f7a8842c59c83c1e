"""AI assistant endpoints: per-patient text generation and ward-wide batches."""
import logging
from dataclasses import asdict
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..core.permissions import PERM_USE_AI_ASSISTANT, require_permission
from ..core.security import CurrentUser, get_current_user
from ..models.base import get_db
from ..models.patient import Unit
from ..services.ai_assistant import AIAssistant, Shift, ai_assistant
from ..services.ai_client import AIServiceError
from .patients import get_patient_or_404, institution_patients

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ai", tags=["ai"])


class TextResponse(BaseModel):
    patient_id: Optional[str] = None
    text: str


class RiskResponse(BaseModel):
    patient_id: str
    level: str
    justification: str


class HandoffRequest(BaseModel):
    shift: str = Shift.DAY


class QuestionRequest(BaseModel):
    question: str


class ReferralSummaryRequest(BaseModel):
    referred_to: Optional[str] = None
    reason: Optional[str] = None


class RiskMonitoringRequest(BaseModel):
    unit: Optional[str] = None


class PatientRiskResponse(BaseModel):
    patient_id: str
    patient_name: str
    unit: str
    level: str
    justification: str
    failed: bool


class HandoffsRequest(BaseModel):
    shift: str = Shift.DAY
    unit: Optional[str] = None
    patient_ids: Optional[List[str]] = None


class HandoffResponse(BaseModel):
    patient_id: str
    patient_name: str
    note: str
    failed: bool


class RoundingSheetRequest(BaseModel):
    unit: str


def get_ai_assistant() -> AIAssistant:
    return ai_assistant


def _require_ai(current_user: CurrentUser) -> None:
    require_permission(current_user, PERM_USE_AI_ASSISTANT, "Insufficient permissions to use the AI assistant")


def _check_unit(unit: Optional[str]) -> None:
    if unit and unit not in Unit.ALL:
        raise HTTPException(status_code=400, detail=f"Invalid unit. Choose from: {Unit.ALL}")


def _check_shift(shift: str) -> None:
    if shift not in Shift.ALL:
        raise HTTPException(status_code=400, detail=f"Invalid shift. Choose from: {Shift.ALL}")


def _ward(db: Session, current_user: CurrentUser, unit: Optional[str]):
    patients = institution_patients(db, current_user.institution_id)
    if unit:
        patients = [p for p in patients if p.unit == unit]
    return patients


def _provider_failure(exc: AIServiceError) -> HTTPException:
    return HTTPException(status_code=502, detail=f"AI service unavailable: {exc}")


@router.post("/patients/{patient_id}/summary", response_model=TextResponse)
def patient_summary(
    patient_id: str,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
    assistant: AIAssistant = Depends(get_ai_assistant),
):
    _require_ai(current_user)
    patient = get_patient_or_404(db, patient_id, current_user)
    try:
        return TextResponse(patient_id=patient.id, text=assistant.generate_summary(patient))
    except AIServiceError as exc:
        raise _provider_failure(exc)


@router.post("/patients/{patient_id}/insights", response_model=TextResponse)
def patient_insights(
    patient_id: str,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
    assistant: AIAssistant = Depends(get_ai_assistant),
):
    _require_ai(current_user)
    patient = get_patient_or_404(db, patient_id, current_user)
    try:
        return TextResponse(patient_id=patient.id, text=assistant.clinical_insights(patient))
    except AIServiceError as exc:
        raise _provider_failure(exc)


@router.post("/patients/{patient_id}/risk", response_model=RiskResponse)
def patient_risk(
    patient_id: str,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
    assistant: AIAssistant = Depends(get_ai_assistant),
):
    _require_ai(current_user)
    patient = get_patient_or_404(db, patient_id, current_user)
    try:
        risk = assistant.predict_risk(patient)
    except AIServiceError as exc:
        raise _provider_failure(exc)
    return RiskResponse(patient_id=patient.id, level=risk.level, justification=risk.justification)


@router.post("/patients/{patient_id}/handoff", response_model=TextResponse)
def patient_handoff(
    patient_id: str,
    request: HandoffRequest,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
    assistant: AIAssistant = Depends(get_ai_assistant),
):
    _require_ai(current_user)
    _check_shift(request.shift)
    patient = get_patient_or_404(db, patient_id, current_user)
    try:
        return TextResponse(patient_id=patient.id, text=assistant.handoff_note(patient, request.shift))
    except AIServiceError as exc:
        raise _provider_failure(exc)


@router.post("/patients/{patient_id}/question", response_model=TextResponse)
def patient_question(
    patient_id: str,
    request: QuestionRequest,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
    assistant: AIAssistant = Depends(get_ai_assistant),
):
    _require_ai(current_user)
    if not request.question.strip():
        raise HTTPException(status_code=400, detail="Question must not be empty")
    patient = get_patient_or_404(db, patient_id, current_user)
    try:
        return TextResponse(patient_id=patient.id, text=assistant.answer_question(patient, request.question))
    except AIServiceError as exc:
        raise _provider_failure(exc)


@router.post("/patients/{patient_id}/referral-summary", response_model=TextResponse)
def patient_referral_summary(
    patient_id: str,
    request: ReferralSummaryRequest,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
    assistant: AIAssistant = Depends(get_ai_assistant),
):
    _require_ai(current_user)
    patient = get_patient_or_404(db, patient_id, current_user)
    try:
        text = assistant.referral_summary(patient, referred_to=request.referred_to, reason=request.reason)
    except AIServiceError as exc:
        raise _provider_failure(exc)
    return TextResponse(patient_id=patient.id, text=text)


@router.post("/risk-monitoring", response_model=List[PatientRiskResponse])
def risk_monitoring(
    request: RiskMonitoringRequest,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
    assistant: AIAssistant = Depends(get_ai_assistant),
):
    """Risk for every active patient, highest first. Failed items are marked, never fatal."""
    _require_ai(current_user)
    _check_unit(request.unit)
    results = assistant.assess_ward_risk(_ward(db, current_user, request.unit))
    return [asdict(r) for r in results]


@router.post("/handoffs", response_model=List[HandoffResponse])
def shift_handoffs(
    request: HandoffsRequest,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
    assistant: AIAssistant = Depends(get_ai_assistant),
):
    _require_ai(current_user)
    _check_shift(request.shift)
    _check_unit(request.unit)
    results = assistant.generate_handoffs(
        _ward(db, current_user, request.unit),
        request.shift,
        patient_ids=request.patient_ids,
    )
    return [asdict(r) for r in results]


@router.post("/rounding-sheet", response_model=TextResponse)
def rounding_sheet(
    request: RoundingSheetRequest,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
    assistant: AIAssistant = Depends(get_ai_assistant),
):
    _require_ai(current_user)
    _check_unit(request.unit)
    try:
        text = assistant.rounding_sheet(_ward(db, current_user, request.unit), request.unit)
    except AIServiceError as exc:
        raise _provider_failure(exc)
    return TextResponse(text=text)
