"""
AI clinical assistant - prompt construction for summaries, insights,
risk scoring, shift handoffs and ward rounding sheets.

Single-patient operations raise AIServiceError; batch operations record
failures inline and keep going.
"""
import json
import logging
import re
import time
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

from ..core.config import settings
from ..models.patient import PatientOutcome, Unit
from .ai_client import AIClient, AIServiceError, ai_client

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are an experienced neonatologist and pediatric intensivist assisting "
    "clinicians in NICU, PICU and SNCU wards. Be concise, clinically precise and "
    "never invent findings that are not in the record."
)

ASSESSMENT_FAILED = "Assessment failed"
HANDOFF_FAILED = "Failed to generate handoff. Please try again."
NO_NOTES = "No progress notes recorded."


class RiskLevel:
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"

    ALL = [LOW, MEDIUM, HIGH]
    ORDER = {HIGH: 0, MEDIUM: 1, LOW: 2}


class Shift:
    DAY = "day"
    NIGHT = "night"

    ALL = [DAY, NIGHT]


@dataclass
class RiskAssessment:
    level: str
    justification: str


@dataclass
class PatientRisk:
    patient_id: str
    patient_name: str
    unit: str
    level: str
    justification: str
    failed: bool = False


@dataclass
class HandoffResult:
    patient_id: str
    patient_name: str
    note: str
    failed: bool = False


RISK_JSON_PATTERN = re.compile(r"\{.*\}", re.DOTALL)
RISK_LINE_PATTERN = re.compile(r"risk\s*level\s*[:\-]?\s*\**\s*(high|medium|low)", re.IGNORECASE)
JUSTIFICATION_PATTERN = re.compile(r"justification\s*[:\-]\s*\**\s*(.+)", re.IGNORECASE | re.DOTALL)


def _fmt_date(value) -> str:
    return value.strftime("%d %b %Y") if value else "unknown"


def _pairs(mapping: Optional[dict]) -> List[str]:
    return [f"{k}: {v}" for k, v in (mapping or {}).items() if v]


def format_progress_notes(notes: Sequence, limit: int = 10) -> str:
    """Chronological text rendering of the last ``limit`` notes."""
    if not notes:
        return NO_NOTES
    ordered = sorted(notes, key=lambda n: n.date)[-limit:]

    lines = []
    for index, note in enumerate(ordered, start=1):
        text = f"Day {index} ({_fmt_date(note.date)}):"
        if note.note:
            text += f" {note.note}"
        vitals = _pairs(note.vitals)
        if vitals:
            text += f" Vitals: {', '.join(vitals)}."
        if note.medications:
            meds = ", ".join(f"{m.get('name', '')} {m.get('dose', '')}".strip() for m in note.medications)
            text += f" Medications: {meds}."
        exam = _pairs(note.examination)
        if exam:
            text += f" Examination: {', '.join(exam)}."
        lines.append(text)
    return "\n".join(lines)


def extract_all_medications(notes: Iterable) -> List[dict]:
    """Unique medications by name and dose; the first occurrence wins."""
    seen = {}
    for note in notes:
        for med in note.medications or []:
            key = f"{med.get('name')}-{med.get('dose')}"
            if key not in seen:
                seen[key] = med
    return list(seen.values())


def _normalize_level(value) -> Optional[str]:
    if not isinstance(value, str):
        return None
    value = value.strip().capitalize()
    return value if value in RiskLevel.ALL else None


def parse_risk(text: str) -> RiskAssessment:
    """Read a risk level from a JSON object or a "Risk Level:" line; default Medium."""
    text = (text or "").strip()

    match = RISK_JSON_PATTERN.search(text)
    if match:
        try:
            data = json.loads(match.group())
        except ValueError:
            data = None
        if isinstance(data, dict):
            level = _normalize_level(data.get("riskLevel") or data.get("risk_level") or data.get("level"))
            if level:
                justification = data.get("justification") or data.get("reason") or ""
                return RiskAssessment(level=level, justification=str(justification).strip())

    match = RISK_LINE_PATTERN.search(text)
    if match:
        level = _normalize_level(match.group(1))
        found = JUSTIFICATION_PATTERN.search(text)
        justification = found.group(1).strip() if found else text
        return RiskAssessment(level=level, justification=justification)

    return RiskAssessment(level=RiskLevel.MEDIUM, justification=text)


def patient_context(patient) -> str:
    lines = [
        f"Name: {patient.name}",
        f"Unit: {Unit.LABELS.get(patient.unit, patient.unit)}",
        f"Age: {patient.age} {patient.age_unit}",
        f"Gender: {patient.gender}",
        f"Admission Type: {patient.admission_type or 'Not recorded'}",
        f"Admission Date: {_fmt_date(patient.admission_date)}",
        f"Primary Diagnosis: {patient.diagnosis or 'Not recorded'}",
        f"Current Status: {patient.outcome or PatientOutcome.IN_PROGRESS}",
    ]
    if patient.referring_hospital:
        lines.append(f"Referring Hospital: {patient.referring_hospital}")
    return "\n".join(lines)


def _is_active(patient) -> bool:
    return patient.outcome in (None, "", PatientOutcome.IN_PROGRESS)


class AIAssistant:
    """Builds prompts from patient records and sends them to the AI client."""

    def __init__(
        self,
        client: Optional[AIClient] = None,
        risk_delay: Optional[float] = None,
        handoff_delay: Optional[float] = None,
    ):
        self.client = client or ai_client
        self.risk_delay = settings.AI_RISK_BATCH_DELAY_SECONDS if risk_delay is None else risk_delay
        self.handoff_delay = settings.AI_HANDOFF_BATCH_DELAY_SECONDS if handoff_delay is None else handoff_delay

    def _ask(self, prompt: str, max_output_tokens: Optional[int] = None) -> str:
        return self.client.generate(prompt, system_prompt=SYSTEM_PROMPT, max_output_tokens=max_output_tokens)

    def _record(self, patient) -> str:
        notes = list(patient.progress_notes or [])
        meds = extract_all_medications(notes)
        med_text = ", ".join(f"{m.get('name', '')} {m.get('dose', '')}".strip() for m in meds) or "None recorded"
        return (
            f"{patient_context(patient)}\n"
            f"Medications: {med_text}\n"
            f"Progress Notes:\n{format_progress_notes(notes)}"
        )

    # ── Single-patient operations ───────────────────────────────────────────

    def generate_summary(self, patient) -> str:
        prompt = (
            "Generate a concise clinical summary for this patient in a single paragraph, "
            "highlighting the most critical information.\n\n"
            f"{self._record(patient)}"
        )
        return self._ask(prompt)

    def clinical_insights(self, patient) -> str:
        prompt = (
            "Review this patient's course and provide clinical insights: key concerns, "
            "trends in vitals, and suggested investigations or management changes. "
            "Use short bullet points.\n\n"
            f"{self._record(patient)}"
        )
        return self._ask(prompt)

    def predict_risk(self, patient) -> RiskAssessment:
        prompt = (
            "Assess this patient's risk of clinical deterioration in the next 24-48 hours. "
            'Respond with JSON only: {"riskLevel": "Low" | "Medium" | "High", '
            '"justification": "<one or two sentences>"}.\n\n'
            f"{self._record(patient)}"
        )
        return parse_risk(self._ask(prompt, max_output_tokens=512))

    def handoff_note(self, patient, shift: str) -> str:
        if shift not in Shift.ALL:
            raise ValueError(f"Unknown shift: {shift}")
        prompt = (
            f"Write a {shift}-shift handoff note for this patient in SBAR format "
            "(Situation, Background, Assessment, Recommendation). "
            "Keep each section to one or two lines.\n\n"
            f"{self._record(patient)}"
        )
        return self._ask(prompt, max_output_tokens=1024)

    def answer_question(self, patient, question: str) -> str:
        if not question or not question.strip():
            raise ValueError("Question must not be empty")
        prompt = (
            "Answer the clinician's question using only the patient record below. "
            "If the record does not contain the answer, say so.\n\n"
            f"{self._record(patient)}\n\nQuestion: {question.strip()}"
        )
        return self._ask(prompt)

    def referral_summary(self, patient, referred_to: Optional[str] = None, reason: Optional[str] = None) -> str:
        destination = referred_to or patient.referred_to or "the receiving facility"
        prompt = (
            f"Write a referral summary for transfer to {destination}. Include reason for referral, "
            "clinical course, current condition, current medications and pending issues.\n"
            f"Reason for Referral: {reason or patient.referral_reason or 'Not specified'}\n\n"
            f"{self._record(patient)}"
        )
        return self._ask(prompt)

    # ── Batch operations ────────────────────────────────────────────────────

    def assess_ward_risk(self, patients: Iterable) -> List[PatientRisk]:
        """Risk for every In Progress patient, one request at a time, High first."""
        active = [p for p in patients if _is_active(p)]
        results = []
        for index, patient in enumerate(active):
            if index and self.risk_delay:
                time.sleep(self.risk_delay)
            try:
                risk = self.predict_risk(patient)
                results.append(PatientRisk(
                    patient_id=patient.id,
                    patient_name=patient.name,
                    unit=patient.unit,
                    level=risk.level,
                    justification=risk.justification,
                ))
            except AIServiceError:
                logger.exception("Risk assessment failed for patient %s", patient.id)
                results.append(PatientRisk(
                    patient_id=patient.id,
                    patient_name=patient.name,
                    unit=patient.unit,
                    level=RiskLevel.MEDIUM,
                    justification=ASSESSMENT_FAILED,
                    failed=True,
                ))
        results.sort(key=lambda r: RiskLevel.ORDER.get(r.level, 1))
        return results

    def generate_handoffs(
        self,
        patients: Iterable,
        shift: str,
        patient_ids: Optional[Sequence[str]] = None,
    ) -> List[HandoffResult]:
        if shift not in Shift.ALL:
            raise ValueError(f"Unknown shift: {shift}")
        selected = [p for p in patients if _is_active(p)]
        if patient_ids is not None:
            wanted = set(patient_ids)
            selected = [p for p in selected if p.id in wanted]

        results = []
        for index, patient in enumerate(selected):
            if index and self.handoff_delay:
                time.sleep(self.handoff_delay)
            try:
                note = self.handoff_note(patient, shift)
                results.append(HandoffResult(patient_id=patient.id, patient_name=patient.name, note=note))
            except AIServiceError:
                logger.exception("Handoff generation failed for patient %s", patient.id)
                results.append(HandoffResult(
                    patient_id=patient.id,
                    patient_name=patient.name,
                    note=HANDOFF_FAILED,
                    failed=True,
                ))
        return results

    def rounding_sheet(self, patients: Iterable, unit: str) -> str:
        """One prompt covering every active patient in ``unit``."""
        active = [p for p in patients if p.unit == unit and _is_active(p)]
        if not active:
            return f"No active patients in {unit}."
        sections = "\n\n".join(
            f"Patient {i}:\n{self._record(p)}" for i, p in enumerate(active, start=1)
        )
        prompt = (
            f"Prepare a ward rounding sheet for the {Unit.LABELS.get(unit, unit)}. For each patient "
            "give a one-line status, active problems and today's plan. Order patients by acuity.\n\n"
            f"{sections}"
        )
        return self._ask(prompt, max_output_tokens=4096)


ai_assistant = AIAssistant()
