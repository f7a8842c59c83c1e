"""Administration: patient-data access log for the caller's institution."""
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict
from sqlalchemy.orm import Session

from ..core.permissions import PERM_VIEW_AUDIT_LOGS, require_permission
from ..core.security import CurrentUser, get_current_user
from ..models.audit import AuditLog
from ..models.base import get_db
from .patients import institution_scope

router = APIRouter(prefix="/admin", tags=["admin"])


class AuditLogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    institution_id: Optional[str]
    action: str
    resource_type: str
    resource_id: str
    ip_address: Optional[str]
    request_method: Optional[str]
    request_path: Optional[str]
    created_at: datetime


@router.get("/audit-logs", response_model=List[AuditLogResponse])
def get_audit_logs(
    user_id: Optional[str] = Query(None, description="Staff member who made the request"),
    action: Optional[str] = Query(None, description="view, create, update or delete"),
    resource_type: Optional[str] = Query(None, description="patients, ai or analytics"),
    resource_id: Optional[str] = Query(None, description="Patient ID"),
    since: Optional[datetime] = Query(None),
    until: Optional[datetime] = Query(None),
    institution_id: Optional[str] = Query(None, description="SuperAdmin only"),
    skip: int = 0,
    limit: int = Query(100, le=500),
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Who touched which patient records, newest first."""
    require_permission(current_user, PERM_VIEW_AUDIT_LOGS, "Only administrators can view audit logs")
    q = db.query(AuditLog).filter(AuditLog.institution_id == institution_scope(current_user, institution_id))
    if user_id:
        q = q.filter(AuditLog.user_id == user_id)
    if action:
        q = q.filter(AuditLog.action == action)
    if resource_type:
        q = q.filter(AuditLog.resource_type == resource_type)
    if resource_id:
        q = q.filter(AuditLog.resource_id == resource_id)
    if since:
        q = q.filter(AuditLog.created_at >= since)
    if until:
        q = q.filter(AuditLog.created_at <= until)
    return q.order_by(AuditLog.created_at.desc()).offset(skip).limit(limit).all()
