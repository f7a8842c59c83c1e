"""
Period filtering for ward lists and analytics.

A period resolves to a half-open window [start, end) at day granularity.
"Active during" means admitted before the window closes and not released
before it opens.
"""
import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Iterable, List, Optional, Union

from ..models.patient import AdmissionType, PatientOutcome, Unit


class Period:
    ALL_TIME = "All Time"
    TODAY = "Today"
    THIS_WEEK = "This Week"
    THIS_MONTH = "This Month"
    CUSTOM = "Custom"

    NAMED = [ALL_TIME, TODAY, THIS_WEEK, THIS_MONTH]


class NicuView:
    ALL = "All"
    INBORN = "Inborn"
    OUTBORN = "Outborn"


class FilterMode:
    ACTIVE = "active"
    EVENT = "event"
    ADMISSION = "admission"

    ALL = [ACTIVE, EVENT, ADMISSION]


MONTH_PATTERN = re.compile(r"^(\d{4})-(\d{2})$")
TIME_PATTERN = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")

DateLike = Union[date, datetime, str, None]


@dataclass
class TimeWindow:
    start: datetime
    end: datetime

    def contains(self, moment: Optional[datetime]) -> bool:
        return moment is not None and self.start <= moment < self.end


@dataclass
class DateFilter:
    period: str = Period.ALL_TIME
    start_date: DateLike = None
    end_date: DateLike = None


@dataclass
class ShiftFilter:
    start_time: str
    end_time: str

    def matches(self, moment: Optional[datetime]) -> bool:
        if moment is None:
            return False
        start = parse_clock(self.start_time)
        end = parse_clock(self.end_time)
        current = moment.time().replace(second=0, microsecond=0)
        if start <= end:
            return start <= current <= end
        # Overnight shift, e.g. 20:00 - 08:00
        return current >= start or current <= end


@dataclass
class PatientQuery:
    unit: Optional[str] = None
    nicu_view: str = NicuView.ALL
    outcome: Optional[str] = None
    search: Optional[str] = None
    date_filter: Optional[DateFilter] = None
    shift_filter: Optional[ShiftFilter] = None
    mode: str = FilterMode.ACTIVE


def parse_clock(value: str) -> time:
    match = TIME_PATTERN.match(value or "")
    if not match:
        raise ValueError(f"Invalid time of day: {value!r} (expected HH:MM)")
    return time(int(match.group(1)), int(match.group(2)))


def _as_date(value: DateLike) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def _midnight(day: date) -> datetime:
    return datetime.combine(day, time.min)


def month_start(year: int, month: int) -> datetime:
    return datetime(year, month, 1)


def next_month(start: datetime) -> datetime:
    if start.month == 12:
        return datetime(start.year + 1, 1, 1)
    return datetime(start.year, start.month + 1, 1)


def resolve_window(date_filter: Optional[DateFilter], now: datetime) -> Optional[TimeWindow]:
    """Turn a period selection into a window, or None for no filtering."""
    if date_filter is None:
        return None
    period = date_filter.period
    today = _midnight(now.date())

    if period == Period.TODAY:
        return TimeWindow(today, today + timedelta(days=1))

    if period == Period.THIS_WEEK:
        # Weeks start on Sunday
        start = today - timedelta(days=(today.weekday() + 1) % 7)
        return TimeWindow(start, start + timedelta(days=7))

    if period == Period.THIS_MONTH:
        start = month_start(now.year, now.month)
        return TimeWindow(start, next_month(start))

    if period == Period.CUSTOM:
        start_day = _as_date(date_filter.start_date)
        end_day = _as_date(date_filter.end_date)
        if start_day is None or end_day is None:
            return None
        if end_day < start_day:
            raise ValueError("Custom range end date precedes its start date")
        return TimeWindow(_midnight(start_day), _midnight(end_day) + timedelta(days=1))

    match = MONTH_PATTERN.match(period or "")
    if match:
        year, month = int(match.group(1)), int(match.group(2))
        if 1 <= month <= 12:
            start = month_start(year, month)
            return TimeWindow(start, next_month(start))

    return None


def available_periods(now: datetime, months: int = 12) -> List[dict]:
    """Options offered by the period picker, most recent month first."""
    options = [{"value": p, "label": p} for p in Period.NAMED]
    year, month = now.year, now.month
    for _ in range(months):
        start = month_start(year, month)
        options.append({"value": start.strftime("%Y-%m"), "label": start.strftime("%B %Y")})
        month -= 1
        if month == 0:
            year, month = year - 1, 12
    options.append({"value": Period.CUSTOM, "label": "Custom Range"})
    return options


def outcome_date(patient) -> Optional[datetime]:
    if patient.release_date:
        return patient.release_date
    if patient.final_discharge_date:
        return patient.final_discharge_date
    if patient.outcome == PatientOutcome.STEP_DOWN and patient.step_down_date:
        return patient.step_down_date
    return None


def event_date(patient) -> Optional[datetime]:
    """The date that places the patient's current status in time."""
    outcome = patient.outcome
    if outcome == PatientOutcome.DISCHARGED:
        found = patient.final_discharge_date or patient.release_date
    elif outcome == PatientOutcome.STEP_DOWN:
        found = patient.step_down_date
    elif outcome in (PatientOutcome.REFERRED, PatientOutcome.DECEASED):
        found = patient.release_date
    else:
        found = None
    return found or patient.admission_date


def was_active_during(patient, window: Optional[TimeWindow]) -> bool:
    if window is None:
        return True
    admitted = patient.admission_date
    if admitted is None or admitted >= window.end:
        return False
    ended = outcome_date(patient)
    return ended is None or ended >= window.start


def admitted_within(patient, window: Optional[TimeWindow]) -> bool:
    if window is None:
        return True
    return window.contains(patient.admission_date)


def event_within(patient, window: Optional[TimeWindow]) -> bool:
    if window is None:
        return True
    if patient.outcome in (None, "", PatientOutcome.IN_PROGRESS):
        return was_active_during(patient, window)
    return window.contains(event_date(patient))


def _matches_outcome(patient, outcome: Optional[str]) -> bool:
    if not outcome or outcome == "All":
        return True
    if outcome == PatientOutcome.IN_PROGRESS:
        return patient.outcome in (None, "", PatientOutcome.IN_PROGRESS)
    return patient.outcome == outcome


def _matches_nicu_view(patient, view: Optional[str]) -> bool:
    if not view or view == NicuView.ALL:
        return True
    if view == NicuView.INBORN:
        return patient.admission_type == AdmissionType.INBORN
    if view == NicuView.OUTBORN:
        return AdmissionType.is_outborn(patient.admission_type)
    return True


def _matches_search(patient, term: Optional[str]) -> bool:
    if not term or not term.strip():
        return True
    needle = term.strip().lower()
    haystack = (patient.name, patient.ntid, patient.diagnosis, patient.mother_name)
    return any(needle in value.lower() for value in haystack if value)


def filter_patients(patients: Iterable, query: PatientQuery, now: datetime) -> List:
    """Apply every selection in ``query`` to ``patients`` in one pass."""
    window = resolve_window(query.date_filter, now)
    if query.mode == FilterMode.EVENT:
        in_window = event_within
    elif query.mode == FilterMode.ADMISSION:
        in_window = admitted_within
    else:
        in_window = was_active_during

    selected = []
    for patient in patients:
        if query.unit and patient.unit != query.unit:
            continue
        # Inborn/Outborn split only exists for the NICU
        if query.unit == Unit.NICU and not _matches_nicu_view(patient, query.nicu_view):
            continue
        if not _matches_outcome(patient, query.outcome):
            continue
        if not _matches_search(patient, query.search):
            continue
        if not in_window(patient, window):
            continue
        if query.shift_filter and not query.shift_filter.matches(event_date(patient)):
            continue
        selected.append(patient)
    return selected
