from dataclasses import asdict
from datetime import date, datetime
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..core.permissions import (
    PERM_VIEW_ANALYTICS,
    PERM_VIEW_PATIENT_LEVEL_DATA,
    has_permission,
    require_permission,
)
from ..core.security import CurrentUser, get_current_user
from ..models.base import get_db, utcnow
from ..models.patient import Unit
from ..services.analytics import analytics_service
from ..services.period_filter import DateFilter, PatientQuery, resolve_window
from .patients import apply_query, institution_patients, institution_scope, patient_query_params

router = APIRouter(prefix="/analytics", tags=["analytics"])


class OutcomeStatsResponse(BaseModel):
    total: int
    in_progress: int
    step_down: int
    discharged: int
    referred: int
    deceased: int
    mortality_rate: float
    discharge_rate: float
    referral_rate: float


class NicuBreakdownResponse(BaseModel):
    inborn_admissions: int
    outborn_admissions: int
    inborn_deaths: int
    outborn_deaths: int
    inborn_mortality_rate: float
    outborn_mortality_rate: float


class UnitCensusResponse(BaseModel):
    total: int
    in_progress: int
    occupied: int


class DashboardResponse(BaseModel):
    outcomes: OutcomeStatsResponse
    admissions_today: int
    admissions_last_7_days: int
    units: Dict[str, UnitCensusResponse]
    nicu_inborn: int
    nicu_outborn: int


class MonthlyTrendResponse(BaseModel):
    month: str
    label: str
    admissions: int
    discharges: int
    deaths: int


class RankedItem(BaseModel):
    name: str
    count: int


class SummaryResponse(BaseModel):
    outcomes: OutcomeStatsResponse
    nicu: NicuBreakdownResponse
    average_length_of_stay_days: Optional[float]
    outcome_distribution: Dict[str, int]
    gender_distribution: Dict[str, int]
    unit_distribution: Dict[str, int]
    top_diagnoses: List[RankedItem]
    top_referring_hospitals: List[RankedItem]
    monthly_trends: List[MonthlyTrendResponse]


class DeathRecordResponse(BaseModel):
    patient_id: str
    name: str
    unit: str
    admission_type: Optional[str]
    admission_date: Optional[datetime]
    death_date: Optional[datetime]
    diagnosis_at_death: Optional[str]
    length_of_stay_days: Optional[float]


class MortalityResponse(BaseModel):
    total_deaths: int
    deaths_by_unit: Dict[str, int]
    nicu_inborn_deaths: int
    nicu_outborn_deaths: int
    average_length_of_stay_days: Optional[float]
    records: List[DeathRecordResponse]


@router.get("/dashboard", response_model=DashboardResponse)
def get_dashboard(
    institution_id: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Ward census: outcome totals, recent admissions and per-unit occupancy."""
    if not (
        has_permission(current_user.role, PERM_VIEW_ANALYTICS)
        or has_permission(current_user.role, PERM_VIEW_PATIENT_LEVEL_DATA)
    ):
        raise HTTPException(status_code=403, detail="Insufficient permissions to view the dashboard")
    patients = institution_patients(db, institution_scope(current_user, institution_id))
    return asdict(analytics_service.dashboard_stats(patients, utcnow()))


@router.get("/summary", response_model=SummaryResponse)
def get_summary(
    query: PatientQuery = Depends(patient_query_params),
    months: int = Query(12, ge=1, le=36),
    institution_id: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Comprehensive summary over the filtered patient set."""
    require_permission(current_user, PERM_VIEW_ANALYTICS, "Insufficient permissions to view analytics")
    now = utcnow()
    all_patients = institution_patients(db, institution_scope(current_user, institution_id))
    patients = apply_query(all_patients, query, now)

    return SummaryResponse(
        outcomes=asdict(analytics_service.outcome_stats(patients)),
        nicu=asdict(analytics_service.nicu_breakdown(patients)),
        average_length_of_stay_days=analytics_service.average_length_of_stay(patients),
        outcome_distribution=analytics_service.distribution(patients, "outcome"),
        gender_distribution=analytics_service.distribution(patients, "gender"),
        unit_distribution=analytics_service.distribution(patients, "unit"),
        top_diagnoses=analytics_service.top_diagnoses(patients),
        top_referring_hospitals=analytics_service.top_referring_hospitals(patients),
        # Trends cover the whole unit history, not just the selected period
        monthly_trends=[
            asdict(t) for t in analytics_service.monthly_trends(
                apply_query(all_patients, PatientQuery(unit=query.unit, nicu_view=query.nicu_view), now),
                now,
                months=months,
            )
        ],
    )


@router.get("/mortality", response_model=MortalityResponse)
def get_mortality(
    unit: Optional[str] = None,
    period: str = Query("All Time"),
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    institution_id: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Deaths in the selected period, by unit and NICU admission type."""
    require_permission(current_user, PERM_VIEW_ANALYTICS, "Insufficient permissions to view analytics")
    if unit and unit not in Unit.ALL:
        raise HTTPException(status_code=400, detail=f"Invalid unit. Choose from: {Unit.ALL}")
    try:
        window = resolve_window(DateFilter(period=period, start_date=start_date, end_date=end_date), utcnow())
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    patients = institution_patients(db, institution_scope(current_user, institution_id))
    if unit:
        patients = [p for p in patients if p.unit == unit]
    return asdict(analytics_service.mortality_analysis(patients, window))
