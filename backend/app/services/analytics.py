"""
Ward analytics - outcome statistics, NICU breakdown, length of stay,
monthly trends and mortality reporting.
"""
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional

import numpy as np

from ..models.patient import AdmissionType, PatientOutcome, Unit
from .period_filter import TimeWindow, month_start, next_month, outcome_date


@dataclass
class OutcomeStats:
    total: int
    in_progress: int
    step_down: int
    discharged: int
    referred: int
    deceased: int
    mortality_rate: float
    discharge_rate: float
    referral_rate: float


@dataclass
class NicuBreakdown:
    inborn_admissions: int
    outborn_admissions: int
    inborn_deaths: int
    outborn_deaths: int
    inborn_mortality_rate: float
    outborn_mortality_rate: float


@dataclass
class UnitCensus:
    total: int = 0
    in_progress: int = 0
    occupied: int = 0


@dataclass
class DashboardStats:
    outcomes: OutcomeStats
    admissions_today: int
    admissions_last_7_days: int
    units: Dict[str, UnitCensus]
    nicu_inborn: int
    nicu_outborn: int


@dataclass
class MonthlyTrend:
    month: str   # YYYY-MM
    label: str
    admissions: int
    discharges: int
    deaths: int


@dataclass
class DeathRecord:
    patient_id: str
    name: str
    unit: str
    admission_type: Optional[str]
    admission_date: Optional[datetime]
    death_date: Optional[datetime]
    diagnosis_at_death: Optional[str]
    length_of_stay_days: Optional[float]


@dataclass
class MortalityAnalysis:
    total_deaths: int
    deaths_by_unit: Dict[str, int]
    nicu_inborn_deaths: int
    nicu_outborn_deaths: int
    average_length_of_stay_days: Optional[float]
    records: List[DeathRecord] = field(default_factory=list)


def _is_in_progress(patient) -> bool:
    return patient.outcome in (None, "", PatientOutcome.IN_PROGRESS)


def _rate(part: int, whole: int) -> float:
    if whole <= 0:
        return 0.0
    return round(part / whole * 100, 1)


def _days_between(start: Optional[datetime], end: Optional[datetime]) -> Optional[float]:
    if start is None or end is None:
        return None
    return round((end - start).total_seconds() / 86400, 1)


def death_date(patient) -> Optional[datetime]:
    return patient.date_of_death or patient.release_date or patient.admission_date


class AnalyticsService:
    """
    Aggregate statistics over a list of patients.
    Every method is a pure function of its inputs; callers filter first.
    """

    TOP_N = 5

    def outcome_stats(self, patients: Iterable) -> OutcomeStats:
        patients = list(patients)
        total = len(patients)
        counts = Counter(
            PatientOutcome.IN_PROGRESS if _is_in_progress(p) else p.outcome for p in patients
        )
        deceased = counts[PatientOutcome.DECEASED]
        discharged = counts[PatientOutcome.DISCHARGED]
        referred = counts[PatientOutcome.REFERRED]
        return OutcomeStats(
            total=total,
            in_progress=counts[PatientOutcome.IN_PROGRESS],
            step_down=counts[PatientOutcome.STEP_DOWN],
            discharged=discharged,
            referred=referred,
            deceased=deceased,
            mortality_rate=_rate(deceased, total),
            discharge_rate=_rate(discharged, total),
            referral_rate=_rate(referred, total),
        )

    def nicu_breakdown(self, patients: Iterable) -> NicuBreakdown:
        nicu = [p for p in patients if p.unit == Unit.NICU]
        inborn = [p for p in nicu if p.admission_type == AdmissionType.INBORN]
        outborn = [p for p in nicu if AdmissionType.is_outborn(p.admission_type)]
        inborn_deaths = sum(1 for p in inborn if p.outcome == PatientOutcome.DECEASED)
        outborn_deaths = sum(1 for p in outborn if p.outcome == PatientOutcome.DECEASED)
        return NicuBreakdown(
            inborn_admissions=len(inborn),
            outborn_admissions=len(outborn),
            inborn_deaths=inborn_deaths,
            outborn_deaths=outborn_deaths,
            inborn_mortality_rate=_rate(inborn_deaths, len(inborn)),
            outborn_mortality_rate=_rate(outborn_deaths, len(outborn)),
        )

    def dashboard_stats(self, patients: Iterable, now: datetime) -> DashboardStats:
        patients = list(patients)
        today = datetime.combine(now.date(), datetime.min.time())
        week_ago = today - timedelta(days=7)

        units = {unit: UnitCensus() for unit in Unit.ALL}
        admissions_today = 0
        admissions_week = 0
        for patient in patients:
            census = units.get(patient.unit)
            if census is not None:
                census.total += 1
                if _is_in_progress(patient):
                    census.in_progress += 1
                    census.occupied += 1
            admitted = patient.admission_date
            if admitted is not None:
                if today <= admitted < today + timedelta(days=1):
                    admissions_today += 1
                if admitted >= week_ago:
                    admissions_week += 1

        breakdown = self.nicu_breakdown(patients)
        return DashboardStats(
            outcomes=self.outcome_stats(patients),
            admissions_today=admissions_today,
            admissions_last_7_days=admissions_week,
            units=units,
            nicu_inborn=breakdown.inborn_admissions,
            nicu_outborn=breakdown.outborn_admissions,
        )

    def average_length_of_stay(self, patients: Iterable) -> Optional[float]:
        """Mean stay in days over patients that have left the unit."""
        stays = [
            _days_between(p.admission_date, p.release_date)
            for p in patients
            if p.release_date is not None and p.admission_date is not None
        ]
        if not stays:
            return None
        return round(float(np.mean(stays)), 1)

    def monthly_trends(self, patients: Iterable, now: datetime, months: int = 12) -> List[MonthlyTrend]:
        """Admissions, discharges and deaths per month, oldest month first."""
        patients = list(patients)
        starts = []
        year, month = now.year, now.month
        for _ in range(months):
            starts.append(month_start(year, month))
            month -= 1
            if month == 0:
                year, month = year - 1, 12

        trends = []
        for start in reversed(starts):
            window = TimeWindow(start, next_month(start))
            trends.append(MonthlyTrend(
                month=start.strftime("%Y-%m"),
                label=start.strftime("%b %Y"),
                admissions=sum(1 for p in patients if window.contains(p.admission_date)),
                discharges=sum(
                    1 for p in patients
                    if p.outcome == PatientOutcome.DISCHARGED and window.contains(outcome_date(p))
                ),
                deaths=sum(
                    1 for p in patients
                    if p.outcome == PatientOutcome.DECEASED and window.contains(death_date(p))
                ),
            ))
        return trends

    def distribution(self, patients: Iterable, field_name: str) -> Dict[str, int]:
        counts = Counter((getattr(p, field_name, None) or "Unknown") for p in patients)
        return dict(counts.most_common())

    def _top(self, values: Iterable[Optional[str]], n: int) -> List[Dict]:
        counts = Counter(v.strip() for v in values if v and v.strip())
        return [{"name": name, "count": count} for name, count in counts.most_common(n)]

    def top_diagnoses(self, patients: Iterable, n: int = TOP_N) -> List[Dict]:
        return self._top((p.diagnosis for p in patients), n)

    def top_referring_hospitals(self, patients: Iterable, n: int = TOP_N) -> List[Dict]:
        return self._top(
            (p.referring_hospital for p in patients if AdmissionType.is_outborn(p.admission_type)),
            n,
        )

    def mortality_analysis(self, patients: Iterable, window: Optional[TimeWindow]) -> MortalityAnalysis:
        """Deaths whose death date falls in ``window`` (all deaths when None)."""
        deaths = [
            p for p in patients
            if p.outcome == PatientOutcome.DECEASED
            and (window is None or window.contains(death_date(p)))
        ]

        by_unit = Counter(p.unit for p in deaths)
        records = [
            DeathRecord(
                patient_id=p.id,
                name=p.name,
                unit=p.unit,
                admission_type=p.admission_type,
                admission_date=p.admission_date,
                death_date=death_date(p),
                diagnosis_at_death=p.diagnosis_at_death or p.diagnosis,
                length_of_stay_days=_days_between(p.admission_date, death_date(p)),
            )
            for p in sorted(deaths, key=death_date, reverse=True)
        ]
        stays = [r.length_of_stay_days for r in records if r.length_of_stay_days is not None]

        nicu = [p for p in deaths if p.unit == Unit.NICU]
        return MortalityAnalysis(
            total_deaths=len(deaths),
            deaths_by_unit={unit: by_unit.get(unit, 0) for unit in Unit.ALL},
            nicu_inborn_deaths=sum(1 for p in nicu if p.admission_type == AdmissionType.INBORN),
            nicu_outborn_deaths=sum(1 for p in nicu if AdmissionType.is_outborn(p.admission_type)),
            average_length_of_stay_days=round(float(np.mean(stays)), 1) if stays else None,
            records=records,
        )


analytics_service = AnalyticsService()
