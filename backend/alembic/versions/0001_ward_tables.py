"""Create patients, progress_notes and audit_logs tables.

Revision ID: 0001_ward_tables
Revises:
Create Date: 2026-10-18
"""
from alembic import op
import sqlalchemy as sa

revision = "0001_ward_tables"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "patients",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("ntid", sa.String(20), nullable=True),
        sa.Column("institution_id", sa.String(50), nullable=False),
        sa.Column("institution_name", sa.String(200), nullable=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("age", sa.Integer(), nullable=False),
        sa.Column("age_unit", sa.String(10), nullable=False),
        sa.Column("gender", sa.String(20), nullable=False),
        sa.Column("mother_name", sa.String(200), nullable=True),
        sa.Column("unit", sa.String(20), nullable=False),
        sa.Column("admission_type", sa.String(60), nullable=True),
        sa.Column("diagnosis", sa.Text(), nullable=False),
        sa.Column("doctor_in_charge", sa.String(200), nullable=True),
        sa.Column("referring_hospital", sa.String(200), nullable=True),
        sa.Column("admission_date", sa.DateTime(), nullable=False),
        sa.Column("release_date", sa.DateTime(), nullable=True),
        sa.Column("outcome", sa.String(20), nullable=False),
        sa.Column("step_down_date", sa.DateTime(), nullable=True),
        sa.Column("step_down_from", sa.String(20), nullable=True),
        sa.Column("step_down_location", sa.String(200), nullable=True),
        sa.Column("is_step_down", sa.Boolean(), nullable=False),
        sa.Column("readmission_from_step_down", sa.Boolean(), nullable=False),
        sa.Column("final_discharge_date", sa.DateTime(), nullable=True),
        sa.Column("referral_reason", sa.Text(), nullable=True),
        sa.Column("referred_to", sa.String(200), nullable=True),
        sa.Column("date_of_death", sa.DateTime(), nullable=True),
        sa.Column("diagnosis_at_death", sa.Text(), nullable=True),
        sa.Column("is_draft", sa.Boolean(), nullable=False),
        sa.Column("created_by", sa.String(30), nullable=True),
        sa.Column("created_by_email", sa.String(255), nullable=True),
        sa.Column("created_by_name", sa.String(200), nullable=True),
        sa.Column("last_updated_by", sa.String(30), nullable=True),
        sa.Column("last_updated_by_email", sa.String(255), nullable=True),
        sa.Column("last_updated_by_name", sa.String(200), nullable=True),
        sa.Column("last_edited_at", sa.DateTime(), nullable=True),
        sa.Column("edit_history", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_patients_ntid", "patients", ["ntid"])
    op.create_index("ix_patients_institution_id", "patients", ["institution_id"])
    op.create_index("ix_patients_unit", "patients", ["unit"])
    op.create_index("ix_patients_admission_date", "patients", ["admission_date"])
    op.create_index("ix_patients_outcome", "patients", ["outcome"])

    op.create_table(
        "progress_notes",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("patient_id", sa.String(), sa.ForeignKey("patients.id"), nullable=False),
        sa.Column("date", sa.DateTime(), nullable=False),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("vitals", sa.JSON(), nullable=True),
        sa.Column("examination", sa.JSON(), nullable=True),
        sa.Column("medications", sa.JSON(), nullable=True),
        sa.Column("soap", sa.JSON(), nullable=True),
        sa.Column("icd10_codes", sa.String(500), nullable=True),
        sa.Column("added_by", sa.String(200), nullable=True),
        sa.Column("added_by_email", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_progress_notes_patient_id", "progress_notes", ["patient_id"])
    op.create_index("ix_progress_notes_date", "progress_notes", ["date"])

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("user_id", sa.String(100), nullable=False),
        sa.Column("institution_id", sa.String(100), nullable=True),
        sa.Column("action", sa.String(20), nullable=False),
        sa.Column("resource_type", sa.String(50), nullable=False),
        sa.Column("resource_id", sa.String(100), nullable=False),
        sa.Column("ip_address", sa.String(64), nullable=True),
        sa.Column("request_method", sa.String(10), nullable=True),
        sa.Column("request_path", sa.String(500), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_audit_logs_user_id", "audit_logs", ["user_id"])
    op.create_index("ix_audit_logs_action", "audit_logs", ["action"])
    op.create_index("ix_audit_logs_institution_id", "audit_logs", ["institution_id"])


def downgrade() -> None:
    op.drop_table("audit_logs")
    op.drop_table("progress_notes")
    op.drop_table("patients")
