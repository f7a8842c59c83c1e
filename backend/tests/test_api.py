"""End-to-end API tests against an isolated in-memory database."""
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from app.api.ai import get_ai_assistant
from app.core.security import CurrentUser, create_access_token
from app.main import app as api
from app.models.base import get_db
from app.models.patient import PatientOutcome, Unit
from app.models.user import UserRole
from app.services.ai_assistant import AIAssistant, RiskLevel
from app.services.ai_client import AIClient
from app.services.ntid import is_valid_ntid


def _user(role, institution_id="inst-1", suffix=""):
    return CurrentUser(
        id=f"{role.lower().replace(' ', '-')}{suffix}",
        email=f"{role.lower().replace(' ', '.')}{suffix}@hospital.test",
        name=f"Test {role}",
        role=role,
        institution_id=institution_id,
        institution_name="City Hospital",
    )


DOCTOR = _user(UserRole.DOCTOR)
NURSE = _user(UserRole.NURSE)
ADMIN = _user(UserRole.ADMIN)
DISTRICT_ADMIN = _user(UserRole.DISTRICT_ADMIN)
OTHER_DOCTOR = _user(UserRole.DOCTOR, institution_id="inst-2", suffix="-2")
OTHER_ADMIN = _user(UserRole.ADMIN, institution_id="inst-2", suffix="-2")
SUPER_ADMIN = _user(UserRole.SUPER_ADMIN, institution_id="inst-2", suffix="-2")


def auth(user: CurrentUser) -> dict:
    token = create_access_token({
        "sub": user.id,
        "email": user.email,
        "name": user.name,
        "role": user.role,
        "institution_id": user.institution_id,
        "institution_name": user.institution_name,
    })
    return {"Authorization": f"Bearer {token}"}


NEW_PATIENT = {
    "name": "Baby of Kavita",
    "age": 2,
    "age_unit": "days",
    "gender": "Female",
    "mother_name": "Kavita",
    "unit": Unit.NICU,
    "admission_type": "Inborn",
    "diagnosis": "Respiratory distress syndrome",
    "admission_date": "2025-01-10T08:00:00",
}


@pytest.fixture()
def client(in_memory_db):
    TestSession = sessionmaker(autocommit=False, autoflush=False, bind=in_memory_db.get_bind())

    def override_get_db():
        db = TestSession()
        try:
            yield db
        finally:
            db.close()

    api.dependency_overrides[get_db] = override_get_db
    api.dependency_overrides[get_ai_assistant] = lambda: AIAssistant(
        client=AIClient(mock_mode=True), risk_delay=0, handoff_delay=0
    )
    with TestClient(api) as test_client:
        yield test_client
    api.dependency_overrides.clear()


def _create(client, user=DOCTOR, **overrides):
    body = dict(NEW_PATIENT, **overrides)
    resp = client.post("/api/v1/patients/", json=body, headers=auth(user))
    assert resp.status_code == 201, resp.text
    return resp.json()


class TestAuth:
    def test_missing_token_rejected(self, client):
        assert client.get("/api/v1/patients/").status_code == 401

    def test_bad_token_rejected(self, client):
        resp = client.get("/api/v1/patients/", headers={"Authorization": "Bearer not-a-jwt"})
        assert resp.status_code == 401

    def test_health(self, client):
        assert client.get("/health").json()["status"] == "healthy"


class TestPatientCrud:
    def test_doctor_creates_final_record(self, client):
        patient = _create(client)
        assert is_valid_ntid(patient["ntid"])
        assert patient["ntid"].startswith("CIT202501")
        assert patient["outcome"] == PatientOutcome.IN_PROGRESS
        assert patient["is_draft"] is False
        assert patient["institution_id"] == "inst-1"

        history = client.get(f"/api/v1/patients/{patient['id']}/edit-history", headers=auth(DOCTOR)).json()
        assert history[0]["summary"] == "Patient record created"

    def test_nurse_creates_draft_doctor_completes(self, client):
        patient = _create(client, user=NURSE)
        assert patient["is_draft"] is True

        resp = client.put(
            f"/api/v1/patients/{patient['id']}",
            json={"diagnosis": "Transient tachypnoea of newborn"},
            headers=auth(DOCTOR),
        )
        assert resp.status_code == 200
        assert resp.json()["is_draft"] is False

    def test_district_admin_cannot_create(self, client):
        resp = client.post("/api/v1/patients/", json=NEW_PATIENT, headers=auth(DISTRICT_ADMIN))
        assert resp.status_code == 403

    def test_invalid_unit_rejected(self, client):
        resp = client.post("/api/v1/patients/", json=dict(NEW_PATIENT, unit="ICU"), headers=auth(DOCTOR))
        assert resp.status_code == 400

    def test_list_filters(self, client):
        _create(client)
        _create(client, name="Aarav", unit=Unit.PICU, admission_type=None, mother_name=None)

        resp = client.get("/api/v1/patients/", params={"unit": Unit.PICU}, headers=auth(DOCTOR))
        assert [p["name"] for p in resp.json()] == ["Aarav"]

        resp = client.get("/api/v1/patients/", params={"search": "kavita"}, headers=auth(DOCTOR))
        assert [p["name"] for p in resp.json()] == ["Baby of Kavita"]

        resp = client.get(
            "/api/v1/patients/",
            params={"period": "Custom", "start_date": "2025-01-01", "end_date": "2025-01-31", "mode": "admission"},
            headers=auth(DOCTOR),
        )
        assert len(resp.json()) == 2

    def test_list_rejects_inverted_range(self, client):
        resp = client.get(
            "/api/v1/patients/",
            params={"period": "Custom", "start_date": "2025-01-31", "end_date": "2025-01-01"},
            headers=auth(DOCTOR),
        )
        assert resp.status_code == 400

    def test_district_admin_sees_no_patient_records(self, client):
        assert client.get("/api/v1/patients/", headers=auth(DISTRICT_ADMIN)).status_code == 403

    def test_other_institution_cannot_read(self, client):
        patient = _create(client)
        resp = client.get(f"/api/v1/patients/{patient['id']}", headers=auth(OTHER_DOCTOR))
        assert resp.status_code == 404
        assert client.get("/api/v1/patients/", headers=auth(OTHER_DOCTOR)).json() == []

    def test_update_records_edit_history(self, client):
        patient = _create(client)
        client.put(
            f"/api/v1/patients/{patient['id']}",
            json={"diagnosis": "Early onset sepsis", "age": 3},
            headers=auth(DOCTOR),
        )
        history = client.get(f"/api/v1/patients/{patient['id']}/edit-history", headers=auth(DOCTOR)).json()
        assert len(history) == 2
        assert history[0]["summary"] == "Updated Age, Diagnosis"
        assert history[0]["edited_by"] == "Test Doctor"

    def test_delete_permissions(self, client):
        patient = _create(client)
        url = f"/api/v1/patients/{patient['id']}"
        assert client.delete(url, headers=auth(NURSE)).status_code == 403
        assert client.delete(url, headers=auth(DOCTOR)).status_code == 204
        assert client.get(url, headers=auth(DOCTOR)).status_code == 404

    def test_periods(self, client):
        options = client.get("/api/v1/patients/periods", headers=auth(NURSE)).json()
        assert options[0]["value"] == "All Time"
        assert options[-1]["value"] == "Custom"


class TestLifecycleEndpoints:
    def test_step_down_then_readmit(self, client):
        patient = _create(client)
        url = f"/api/v1/patients/{patient['id']}"

        resp = client.post(f"{url}/outcome", json={
            "outcome": PatientOutcome.STEP_DOWN,
            "at": "2025-01-12T10:00:00",
            "location": "Mother side",
        }, headers=auth(DOCTOR))
        body = resp.json()
        assert body["is_step_down"] is True
        assert body["step_down_from"] == Unit.NICU
        assert body["step_down_date"] == "2025-01-12T10:00:00"

        body = client.post(f"{url}/readmit", json={}, headers=auth(DOCTOR)).json()
        assert body["outcome"] == PatientOutcome.IN_PROGRESS
        assert body["readmission_from_step_down"] is True
        assert body["unit"] == Unit.NICU

    def test_final_discharge_from_step_down(self, client):
        patient = _create(client)
        url = f"/api/v1/patients/{patient['id']}/outcome"
        client.post(url, json={"outcome": PatientOutcome.STEP_DOWN, "at": "2025-01-12T10:00:00"},
                    headers=auth(DOCTOR))
        body = client.post(url, json={"outcome": PatientOutcome.DISCHARGED, "at": "2025-01-14T09:00:00"},
                           headers=auth(DOCTOR)).json()
        assert body["final_discharge_date"] == "2025-01-14T09:00:00"
        assert body["release_date"] == "2025-01-14T09:00:00"
        assert body["is_step_down"] is False

    def test_terminal_outcome_conflict(self, client):
        patient = _create(client)
        url = f"/api/v1/patients/{patient['id']}/outcome"
        client.post(url, json={"outcome": PatientOutcome.DECEASED, "diagnosis_at_death": "Sepsis"},
                    headers=auth(DOCTOR))
        resp = client.post(url, json={"outcome": PatientOutcome.DISCHARGED}, headers=auth(DOCTOR))
        assert resp.status_code == 409

    def test_readmit_requires_step_down(self, client):
        patient = _create(client)
        resp = client.post(f"/api/v1/patients/{patient['id']}/readmit", json={}, headers=auth(DOCTOR))
        assert resp.status_code == 409

    def test_outcome_change_through_update(self, client):
        patient = _create(client)
        body = client.put(f"/api/v1/patients/{patient['id']}", json={
            "outcome": PatientOutcome.REFERRED,
            "outcome_date": "2025-01-13T15:00:00",
            "referred_to": "District Medical College",
            "referral_reason": "Surgical opinion",
        }, headers=auth(DOCTOR)).json()
        assert body["outcome"] == PatientOutcome.REFERRED
        assert body["referred_to"] == "District Medical College"
        assert body["release_date"] == "2025-01-13T15:00:00"


    def test_readmit_through_update_keeps_requested_unit(self, client):
        patient = _create(client)
        url = f"/api/v1/patients/{patient['id']}"
        client.post(f"{url}/outcome", json={"outcome": PatientOutcome.STEP_DOWN, "at": "2025-01-12T10:00:00"},
                    headers=auth(DOCTOR))

        body = client.put(url, json={"outcome": PatientOutcome.IN_PROGRESS, "unit": Unit.PICU},
                          headers=auth(DOCTOR)).json()
        assert body["outcome"] == PatientOutcome.IN_PROGRESS
        assert body["unit"] == Unit.PICU
        assert body["readmission_from_step_down"] is True

    def test_update_combines_field_edits_with_outcome(self, client):
        patient = _create(client)
        url = f"/api/v1/patients/{patient['id']}"
        body = client.put(url, json={
            "diagnosis": "Early onset sepsis",
            "outcome": PatientOutcome.DISCHARGED,
            "outcome_date": "2025-01-15T11:00:00",
        }, headers=auth(DOCTOR)).json()
        assert body["diagnosis"] == "Early onset sepsis"
        assert body["outcome"] == PatientOutcome.DISCHARGED
        assert body["release_date"] == "2025-01-15T11:00:00"

        history = client.get(f"{url}/edit-history", headers=auth(DOCTOR)).json()
        changed = {change["field"] for change in history[0]["changes"]}
        assert {"diagnosis", "outcome", "release_date"} <= changed

    def test_clearing_required_field_rejected(self, client):
        patient = _create(client)
        url = f"/api/v1/patients/{patient['id']}"
        for field in ("name", "age", "unit", "admission_date"):
            resp = client.put(url, json={field: None}, headers=auth(DOCTOR))
            assert resp.status_code == 400, field
        assert client.get(url, headers=auth(DOCTOR)).json()["name"] == "Baby of Kavita"

    def test_optional_field_can_be_cleared(self, client):
        patient = _create(client)
        body = client.put(f"/api/v1/patients/{patient['id']}", json={"mother_name": None},
                          headers=auth(DOCTOR)).json()
        assert body["mother_name"] is None


class TestProgressNotes:
    def test_note_returns_vital_alerts(self, client):
        patient = _create(client)
        resp = client.post(f"/api/v1/patients/{patient['id']}/notes", json={
            "date": "2025-01-11T09:00:00",
            "note": "Desaturating on room air",
            "vitals": {"spo2": "85", "hr": "150", "temperature": "36.9"},
            "medications": [{"name": "Caffeine citrate", "dose": "20 mg/kg"}],
            "soap": {"assessment": "Apnoea of prematurity", "plan": "Start CPAP"},
        }, headers=auth(NURSE))
        assert resp.status_code == 201
        body = resp.json()
        assert body["note"]["added_by"] == "Test Nurse"
        assert [a["vital"] for a in body["alerts"]] == ["spo2"]
        assert body["alerts"][0]["severity"] == "critical"

        notes = client.get(f"/api/v1/patients/{patient['id']}/notes", headers=auth(DOCTOR)).json()
        assert len(notes) == 1
        assert notes[0]["medications"][0]["name"] == "Caffeine citrate"

    def test_invalid_soap_section_rejected(self, client):
        patient = _create(client)
        resp = client.post(f"/api/v1/patients/{patient['id']}/notes", json={
            "soap": {"history": "x"},
        }, headers=auth(DOCTOR))
        assert resp.status_code == 400

    def test_empty_note_rejected(self, client):
        patient = _create(client)
        resp = client.post(f"/api/v1/patients/{patient['id']}/notes", json={}, headers=auth(DOCTOR))
        assert resp.status_code == 400


class TestAnalyticsEndpoints:
    def test_dashboard(self, client):
        _create(client)
        _create(client, name="Aarav", unit=Unit.PICU, admission_type=None)
        body = client.get("/api/v1/analytics/dashboard", headers=auth(NURSE)).json()
        assert body["outcomes"]["total"] == 2
        assert body["units"]["PICU"]["occupied"] == 1
        assert body["nicu_inborn"] == 1

    def test_summary_for_district_admin(self, client):
        patient = _create(client)
        client.post(f"/api/v1/patients/{patient['id']}/outcome",
                    json={"outcome": PatientOutcome.DECEASED, "at": "2025-01-12T04:00:00"},
                    headers=auth(DOCTOR))
        _create(client, name="Baby of Sita")

        body = client.get("/api/v1/analytics/summary", headers=auth(DISTRICT_ADMIN)).json()
        assert body["outcomes"]["deceased"] == 1
        assert body["outcomes"]["mortality_rate"] == 50.0
        assert body["nicu"]["inborn_deaths"] == 1
        assert body["top_diagnoses"][0] == {"name": "Respiratory distress syndrome", "count": 2}
        assert len(body["monthly_trends"]) == 12

    def test_nurse_cannot_view_summary(self, client):
        assert client.get("/api/v1/analytics/summary", headers=auth(NURSE)).status_code == 403

    def test_mortality(self, client):
        patient = _create(client)
        client.post(f"/api/v1/patients/{patient['id']}/outcome",
                    json={"outcome": PatientOutcome.DECEASED, "at": "2025-01-12T08:00:00"},
                    headers=auth(DOCTOR))
        body = client.get(
            "/api/v1/analytics/mortality",
            params={"period": "2025-01"},
            headers=auth(DOCTOR),
        ).json()
        assert body["total_deaths"] == 1
        assert body["deaths_by_unit"]["NICU"] == 1
        assert body["records"][0]["length_of_stay_days"] == 2.0

        body = client.get("/api/v1/analytics/mortality", params={"period": "2024-12"},
                          headers=auth(DOCTOR)).json()
        assert body["total_deaths"] == 0


class TestAIEndpoints:
    def test_summary_in_mock_mode(self, client):
        patient = _create(client)
        resp = client.post(f"/api/v1/ai/patients/{patient['id']}/summary", headers=auth(DOCTOR))
        assert resp.status_code == 200
        assert resp.json()["patient_id"] == patient["id"]
        assert resp.json()["text"]

    def test_risk_level_is_normalised(self, client):
        patient = _create(client)
        body = client.post(f"/api/v1/ai/patients/{patient['id']}/risk", headers=auth(DOCTOR)).json()
        assert body["level"] in RiskLevel.ALL

    def test_invalid_shift_rejected(self, client):
        patient = _create(client)
        resp = client.post(f"/api/v1/ai/patients/{patient['id']}/handoff",
                           json={"shift": "evening"}, headers=auth(DOCTOR))
        assert resp.status_code == 400

    def test_batch_endpoints(self, client):
        _create(client)
        _create(client, name="Baby of Sita")
        risks = client.post("/api/v1/ai/risk-monitoring", json={"unit": Unit.NICU}, headers=auth(NURSE)).json()
        assert len(risks) == 2
        handoffs = client.post("/api/v1/ai/handoffs", json={"shift": "night"}, headers=auth(NURSE)).json()
        assert len(handoffs) == 2
        assert all(not h["failed"] for h in handoffs)
        sheet = client.post("/api/v1/ai/rounding-sheet", json={"unit": Unit.NICU}, headers=auth(DOCTOR)).json()
        assert sheet["text"]

    def test_district_admin_cannot_use_ai(self, client):
        resp = client.post("/api/v1/ai/risk-monitoring", json={}, headers=auth(DISTRICT_ADMIN))
        assert resp.status_code == 403


class TestAuditLog:
    def test_patient_access_is_audited(self, client):
        patient = _create(client)
        client.get(f"/api/v1/patients/{patient['id']}", headers=auth(DOCTOR))

        logs = client.get("/api/v1/admin/audit-logs", params={"resource_id": patient["id"]},
                          headers=auth(ADMIN)).json()
        assert [entry["action"] for entry in logs] == ["view"]
        assert logs[0]["user_id"] == DOCTOR.id
        assert logs[0]["resource_type"] == "patients"

        creates = client.get("/api/v1/admin/audit-logs", params={"action": "create"},
                             headers=auth(ADMIN)).json()
        assert len(creates) == 1

    def test_audit_log_admin_only(self, client):
        assert client.get("/api/v1/admin/audit-logs", headers=auth(DOCTOR)).status_code == 403

    def test_logs_scoped_to_caller_institution(self, client):
        patient = _create(client)
        client.get(f"/api/v1/patients/{patient['id']}", headers=auth(DOCTOR))

        own = client.get("/api/v1/admin/audit-logs", headers=auth(ADMIN)).json()
        assert {entry["institution_id"] for entry in own} == {"inst-1"}
        assert len(own) == 2

        assert client.get("/api/v1/admin/audit-logs", headers=auth(OTHER_ADMIN)).json() == []
        # Only a SuperAdmin may look across institutions
        assert client.get("/api/v1/admin/audit-logs", params={"institution_id": "inst-1"},
                          headers=auth(OTHER_ADMIN)).json() == []
        across = client.get("/api/v1/admin/audit-logs", params={"institution_id": "inst-1"},
                            headers=auth(SUPER_ADMIN)).json()
        assert len(across) == 2
