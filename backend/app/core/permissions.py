"""
Role-based permission matrix for the ward service.
Defines what each clinical role is allowed to do.
"""
from fastapi import HTTPException

from ..models.user import UserRole

# Permission constants
PERM_CREATE_PATIENT = "create_patient"
PERM_EDIT_PATIENT = "edit_patient"
PERM_DELETE_PATIENT = "delete_patient"
PERM_ADD_NOTES = "add_notes"
PERM_VIEW_PATIENT_LEVEL_DATA = "view_patient_level_data"
PERM_VIEW_ANALYTICS = "view_analytics"
PERM_USE_AI_ASSISTANT = "use_ai_assistant"
PERM_VIEW_AUDIT_LOGS = "view_audit_logs"

# Role permission matrix
ROLE_PERMISSIONS: dict = {
    UserRole.NURSE: {
        PERM_CREATE_PATIENT,
        PERM_EDIT_PATIENT,
        PERM_ADD_NOTES,
        PERM_VIEW_PATIENT_LEVEL_DATA,
        PERM_USE_AI_ASSISTANT,
    },
    UserRole.DOCTOR: {
        PERM_CREATE_PATIENT,
        PERM_EDIT_PATIENT,
        PERM_DELETE_PATIENT,
        PERM_ADD_NOTES,
        PERM_VIEW_PATIENT_LEVEL_DATA,
        PERM_VIEW_ANALYTICS,
        PERM_USE_AI_ASSISTANT,
    },
    UserRole.ADMIN: {
        PERM_EDIT_PATIENT,
        PERM_DELETE_PATIENT,
        PERM_VIEW_PATIENT_LEVEL_DATA,
        PERM_VIEW_ANALYTICS,
        PERM_USE_AI_ASSISTANT,
        PERM_VIEW_AUDIT_LOGS,
    },
    UserRole.SUPER_ADMIN: {
        PERM_EDIT_PATIENT,
        PERM_DELETE_PATIENT,
        PERM_VIEW_PATIENT_LEVEL_DATA,
        PERM_VIEW_ANALYTICS,
        PERM_USE_AI_ASSISTANT,
        PERM_VIEW_AUDIT_LOGS,
    },
    UserRole.DISTRICT_ADMIN: {
        PERM_VIEW_ANALYTICS,
        # District officials see aggregates only, never patient-level records
    },
}


def has_permission(role: str, permission: str) -> bool:
    """Check if a role has a specific permission."""
    return permission in ROLE_PERMISSIONS.get(role, set())


def require_permission(current_user, permission: str, detail: str = "Insufficient permissions") -> None:
    if not has_permission(current_user.role, permission):
        raise HTTPException(status_code=403, detail=detail)
