"""
Edit tracking for patient records.
Every create or update appends an entry to ``Patient.edit_history``.
"""
from datetime import date, datetime
from typing import Dict, List, Optional

from ..models.base import utcnow
from ..models.patient import Patient

FIELD_LABELS = {
    "name": "Patient Name",
    "mother_name": "Mother Name",
    "gender": "Gender",
    "age": "Age",
    "age_unit": "Age Unit",
    "diagnosis": "Diagnosis",
    "outcome": "Outcome",
    "unit": "Unit",
    "admission_type": "Admission Type",
    "admission_date": "Admission Date/Time",
    "release_date": "Discharge Date/Time",
    "doctor_in_charge": "Doctor In Charge",
    "referring_hospital": "Referring Hospital",
    "step_down_location": "Step Down Location",
    "diagnosis_at_death": "Diagnosis at Death",
    "date_of_death": "Date of Death",
    "referral_reason": "Referral Reason",
    "referred_to": "Referred To",
}

TRACKED_FIELDS = list(FIELD_LABELS)

CREATED_SUMMARY = "Patient record created"


def snapshot(patient: Patient) -> Dict:
    """Copy of the tracked fields, taken before an update."""
    return {name: getattr(patient, name, None) for name in TRACKED_FIELDS}


def _display(value) -> Optional[str]:
    if value is None or value == "":
        return None
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


def compare_patients(old: Optional[Dict], new: Dict) -> List[Dict]:
    """List of {field, field_label, old_value, new_value} for changed fields."""
    old = old or {}
    changes = []
    for name in TRACKED_FIELDS:
        old_value = old.get(name)
        new_value = new.get(name)
        label = FIELD_LABELS[name]

        if isinstance(old_value, (list, tuple)) or isinstance(new_value, (list, tuple)):
            old_list = [str(v) for v in (old_value or [])]
            new_list = [str(v) for v in (new_value or [])]
            if old_list != new_list:
                changes.append({
                    "field": name,
                    "field_label": label,
                    "old_value": ", ".join(old_list) or "(none)",
                    "new_value": ", ".join(new_list) or "(none)",
                })
            continue

        old_str = _display(old_value)
        new_str = _display(new_value)
        if old_str != new_str:
            changes.append({
                "field": name,
                "field_label": label,
                "old_value": old_str or "(empty)",
                "new_value": new_str or "(empty)",
            })
    return changes


def changes_summary(changes: List[Dict]) -> str:
    if not changes:
        return "No changes detected"
    labels = [c["field_label"] for c in changes]
    if len(labels) <= 3:
        return f"Updated {', '.join(labels)}"
    return f"Updated {len(labels)} fields: {', '.join(labels[:3])} and {len(labels) - 3} more"


def add_edit_history(patient: Patient, user, old_snapshot: Optional[Dict]) -> Optional[Dict]:
    """
    Append an edit-history entry for ``user``'s change to ``patient``.
    ``old_snapshot`` is None for a newly created record.
    Returns the entry, or None when nothing tracked changed.
    """
    now = utcnow()
    if old_snapshot is None:
        changes = []
        summary = CREATED_SUMMARY
    else:
        changes = compare_patients(old_snapshot, snapshot(patient))
        if not changes:
            return None
        summary = changes_summary(changes)

    entry = {
        "timestamp": now.isoformat(),
        "edited_by": user.name,
        "edited_by_email": user.email,
        "edited_by_role": user.role,
        "summary": summary,
        "changes": changes,
    }
    # Reassign so SQLAlchemy sees the JSON column as modified
    patient.edit_history = list(patient.edit_history or []) + [entry]
    patient.last_edited_at = now
    patient.last_updated_by = user.role
    patient.last_updated_by_email = user.email
    patient.last_updated_by_name = user.name
    return entry
