"""
Rule-based clinical alerts for progress-note vitals.
Evaluated when a progress note is added; alerts are returned with the note.
"""
import logging
import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

import numpy as np

from ..models.patient import AgeUnit

logger = logging.getLogger(__name__)


class AlertSeverity:
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


class AlertType:
    VITAL_ABNORMAL = "vital_abnormal"
    DETERIORATION = "deterioration"


class AgeGroup:
    PRETERM = "preterm"
    NEWBORN = "newborn"
    INFANT = "infant"
    TODDLER = "toddler"
    CHILD = "child"


@dataclass
class VitalRange:
    min: Optional[float] = None
    max: Optional[float] = None
    critical_min: Optional[float] = None
    critical_max: Optional[float] = None


# Age-specific normal and critical limits
VITAL_RANGES: Dict[str, Dict[str, VitalRange]] = {
    AgeGroup.PRETERM: {
        "temperature": VitalRange(36.5, 37.5, 35.5, 38.5),
        "hr": VitalRange(120, 170, 100, 200),
        "rr": VitalRange(40, 60, 30, 80),
        "spo2": VitalRange(min=90, critical_min=85),
        "crt": VitalRange(max=3, critical_max=5),
    },
    AgeGroup.NEWBORN: {
        "temperature": VitalRange(36.5, 37.5, 35.5, 38.5),
        "hr": VitalRange(100, 160, 80, 200),
        "rr": VitalRange(30, 60, 20, 70),
        "spo2": VitalRange(min=92, critical_min=88),
        "crt": VitalRange(max=3, critical_max=5),
    },
    AgeGroup.INFANT: {
        "temperature": VitalRange(36.5, 37.5, 35.5, 39),
        "hr": VitalRange(80, 140, 60, 180),
        "rr": VitalRange(25, 50, 15, 60),
        "spo2": VitalRange(min=94, critical_min=90),
        "bp_systolic": VitalRange(70, 100),
        "crt": VitalRange(max=2, critical_max=4),
    },
    AgeGroup.TODDLER: {
        "temperature": VitalRange(36.5, 37.5, 35.5, 39.5),
        "hr": VitalRange(70, 120, 50, 160),
        "rr": VitalRange(20, 40, 12, 50),
        "spo2": VitalRange(min=95, critical_min=92),
        "bp_systolic": VitalRange(80, 110),
        "crt": VitalRange(max=2, critical_max=4),
    },
    AgeGroup.CHILD: {
        "temperature": VitalRange(36.5, 37.5, 35, 40),
        "hr": VitalRange(60, 100, 40, 140),
        "rr": VitalRange(16, 30, 10, 40),
        "spo2": VitalRange(min=96, critical_min=93),
        "bp_systolic": VitalRange(90, 120),
        "crt": VitalRange(max=2, critical_max=3),
    },
}

VITAL_LABELS = {
    "temperature": "Temperature",
    "hr": "Heart rate",
    "rr": "Respiratory rate",
    "spo2": "SpO2",
    "bp_systolic": "Systolic BP",
    "crt": "Capillary refill time",
}

RECOMMENDATIONS = {
    "temperature": "Check thermal environment and screen for sepsis.",
    "hr": "Reassess perfusion and cardiac status; review medications.",
    "rr": "Assess work of breathing and consider respiratory support.",
    "spo2": "Check probe placement, airway and oxygen delivery.",
    "bp_systolic": "Repeat measurement with appropriate cuff size and assess perfusion.",
    "crt": "Assess perfusion and consider fluid bolus per protocol.",
}

DAYS_PER_UNIT = {
    AgeUnit.DAYS: 1,
    AgeUnit.WEEKS: 7,
    AgeUnit.MONTHS: 30,
    AgeUnit.YEARS: 365,
}

# Minimum slope per note to count as a worsening trend
SPO2_DECLINE_SLOPE = -1.0
HR_RISE_SLOPE = 5.0
TREND_WINDOW = 5

NUMBER_PATTERN = re.compile(r"-?\d+(?:\.\d+)?")


@dataclass
class ClinicalAlert:
    alert_type: str
    severity: str
    title: str
    message: str
    vital: Optional[str] = None
    value: Optional[float] = None
    expected_min: Optional[float] = None
    expected_max: Optional[float] = None
    recommendation: Optional[str] = None


def age_in_days(age: float, age_unit: Optional[str]) -> float:
    return age * DAYS_PER_UNIT.get(age_unit or AgeUnit.DAYS, 1)


def age_group(age: float, age_unit: Optional[str]) -> str:
    days = age_in_days(age, age_unit)
    if days < 0:
        return AgeGroup.PRETERM
    if days <= 28:
        return AgeGroup.NEWBORN
    if days <= 365:
        return AgeGroup.INFANT
    if days <= 1095:
        return AgeGroup.TODDLER
    return AgeGroup.CHILD


def parse_vital(value) -> Optional[float]:
    """Vitals are entered as free text ("37.2", "142 bpm", "3 sec")."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    match = NUMBER_PATTERN.search(str(value))
    return float(match.group()) if match else None


def _systolic(vitals: dict) -> Optional[float]:
    bp = vitals.get("bp")
    if not bp:
        return None
    return parse_vital(str(bp).split("/")[0])


def vital_severity(value: float, limits: VitalRange) -> Optional[str]:
    if limits.critical_min is not None and value < limits.critical_min:
        return AlertSeverity.CRITICAL
    if limits.critical_max is not None and value > limits.critical_max:
        return AlertSeverity.CRITICAL
    if limits.min is not None and value < limits.min:
        return AlertSeverity.WARNING
    if limits.max is not None and value > limits.max:
        return AlertSeverity.WARNING
    return None


def check_vitals(vitals: Optional[dict], age: float, age_unit: Optional[str]) -> List[ClinicalAlert]:
    """Compare one set of vitals against the ranges for the patient's age."""
    if not vitals:
        return []
    group = age_group(age, age_unit)
    ranges = VITAL_RANGES[group]

    alerts = []
    for vital, limits in ranges.items():
        if vital == "bp_systolic":
            value = _systolic(vitals)
        else:
            value = parse_vital(vitals.get(vital))
        if value is None:
            continue
        severity = vital_severity(value, limits)
        if severity is None:
            continue

        label = VITAL_LABELS[vital]
        direction = "low" if limits.min is not None and value < limits.min else "high"
        title = f"{'Critical' if severity == AlertSeverity.CRITICAL else 'Abnormal'} {label.lower()}"
        alerts.append(ClinicalAlert(
            alert_type=AlertType.VITAL_ABNORMAL,
            severity=severity,
            title=title,
            message=f"{label} {value:g} is {direction} for a {group} patient.",
            vital=vital,
            value=value,
            expected_min=limits.min,
            expected_max=limits.max,
            recommendation=RECOMMENDATIONS[vital],
        ))

    if alerts:
        logger.info("%d vital alert(s) raised for %s patient", len(alerts), group)
    return alerts


def _trend_slope(values: Sequence[float]) -> Optional[float]:
    """Slope of the best-fit line per reading, or None if not enough data."""
    if len(values) < 3:
        return None
    coeffs = np.polyfit(np.arange(len(values)), np.asarray(values, dtype=float), 1)
    return float(coeffs[0])


def _series(notes: Sequence, vital: str) -> List[float]:
    readings = []
    for note in notes:
        vitals = getattr(note, "vitals", None) or {}
        value = parse_vital(vitals.get(vital))
        if value is not None:
            readings.append(value)
    return readings


def detect_deterioration(notes: Sequence) -> List[ClinicalAlert]:
    """
    Flag a falling SpO2 or rising heart rate across the most recent notes.
    Notes must be in chronological order.
    """
    recent = list(notes)[-TREND_WINDOW:]
    alerts = []

    spo2 = _series(recent, "spo2")
    slope = _trend_slope(spo2)
    if slope is not None and slope <= SPO2_DECLINE_SLOPE:
        alerts.append(ClinicalAlert(
            alert_type=AlertType.DETERIORATION,
            severity=AlertSeverity.WARNING,
            title="Falling oxygen saturation",
            message=(
                f"SpO2 trending down by {abs(slope):.1f}% per note "
                f"over the last {len(spo2)} readings ({spo2[0]:g} to {spo2[-1]:g})."
            ),
            vital="spo2",
            value=spo2[-1],
            recommendation=RECOMMENDATIONS["spo2"],
        ))

    hr = _series(recent, "hr")
    slope = _trend_slope(hr)
    if slope is not None and slope >= HR_RISE_SLOPE:
        alerts.append(ClinicalAlert(
            alert_type=AlertType.DETERIORATION,
            severity=AlertSeverity.WARNING,
            title="Rising heart rate",
            message=(
                f"Heart rate trending up by {slope:.1f} bpm per note "
                f"over the last {len(hr)} readings ({hr[0]:g} to {hr[-1]:g})."
            ),
            vital="hr",
            value=hr[-1],
            recommendation=RECOMMENDATIONS["hr"],
        ))

    if alerts:
        logger.warning("Deterioration trend detected across %d notes", len(recent))
    return alerts
