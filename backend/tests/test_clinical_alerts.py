from datetime import datetime, timedelta

from app.models.patient import AgeUnit
from app.models.progress_note import ProgressNote
from app.services.clinical_alerts import (
    AgeGroup,
    AlertSeverity,
    AlertType,
    age_group,
    check_vitals,
    detect_deterioration,
    parse_vital,
)


def _notes(series):
    start = datetime(2025, 1, 10, 8)
    return [
        ProgressNote(date=start + timedelta(hours=6 * i), vitals=vitals)
        for i, vitals in enumerate(series)
    ]


class TestAgeGroups:
    def test_bands(self):
        assert age_group(10, AgeUnit.DAYS) == AgeGroup.NEWBORN
        assert age_group(4, AgeUnit.WEEKS) == AgeGroup.NEWBORN
        assert age_group(5, AgeUnit.WEEKS) == AgeGroup.INFANT
        assert age_group(12, AgeUnit.MONTHS) == AgeGroup.INFANT
        assert age_group(2, AgeUnit.YEARS) == AgeGroup.TODDLER
        assert age_group(3, AgeUnit.YEARS) == AgeGroup.TODDLER
        assert age_group(4, AgeUnit.YEARS) == AgeGroup.CHILD


class TestParseVital:
    def test_free_text_values(self):
        assert parse_vital("37.2") == 37.2
        assert parse_vital("142 bpm") == 142.0
        assert parse_vital(95) == 95.0
        assert parse_vital("") is None
        assert parse_vital("n/a") is None


class TestCheckVitals:
    def test_normal_newborn_vitals_raise_nothing(self):
        vitals = {"temperature": "36.9", "hr": "140", "rr": "45", "spo2": "96", "crt": "2"}
        assert check_vitals(vitals, 3, AgeUnit.DAYS) == []

    def test_warning_outside_normal_range(self):
        alerts = check_vitals({"hr": "170"}, 3, AgeUnit.DAYS)
        assert len(alerts) == 1
        assert alerts[0].severity == AlertSeverity.WARNING
        assert alerts[0].alert_type == AlertType.VITAL_ABNORMAL
        assert alerts[0].vital == "hr"
        assert alerts[0].expected_max == 160

    def test_critical_outside_critical_limits(self):
        alerts = check_vitals({"spo2": "85%"}, 3, AgeUnit.DAYS)
        assert alerts[0].severity == AlertSeverity.CRITICAL
        assert "low" in alerts[0].message
        assert alerts[0].recommendation

    def test_age_changes_thresholds(self):
        # 110 bpm is normal for a newborn but high for a school-age child
        assert check_vitals({"hr": "110"}, 5, AgeUnit.DAYS) == []
        alerts = check_vitals({"hr": "110"}, 6, AgeUnit.YEARS)
        assert alerts[0].severity == AlertSeverity.WARNING

    def test_systolic_from_bp_string(self):
        alerts = check_vitals({"bp": "60/40"}, 6, AgeUnit.MONTHS)
        assert [a.vital for a in alerts] == ["bp_systolic"]

    def test_empty_vitals(self):
        assert check_vitals(None, 3, AgeUnit.DAYS) == []
        assert check_vitals({}, 3, AgeUnit.DAYS) == []


class TestDeterioration:
    def test_falling_spo2_detected(self):
        notes = _notes([{"spo2": "97"}, {"spo2": "95"}, {"spo2": "93"}, {"spo2": "91"}])
        alerts = detect_deterioration(notes)
        assert len(alerts) == 1
        assert alerts[0].alert_type == AlertType.DETERIORATION
        assert alerts[0].vital == "spo2"
        assert alerts[0].value == 91.0

    def test_rising_heart_rate_detected(self):
        notes = _notes([{"hr": "130"}, {"hr": "142"}, {"hr": "155"}, {"hr": "168"}])
        alerts = detect_deterioration(notes)
        assert [a.vital for a in alerts] == ["hr"]

    def test_stable_trend_is_quiet(self):
        notes = _notes([{"spo2": "95", "hr": "140"}, {"spo2": "96", "hr": "138"}, {"spo2": "95", "hr": "141"}])
        assert detect_deterioration(notes) == []

    def test_needs_three_readings(self):
        notes = _notes([{"spo2": "97"}, {"spo2": "85"}])
        assert detect_deterioration(notes) == []
