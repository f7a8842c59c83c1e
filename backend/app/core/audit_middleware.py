"""
Patient-data access audit middleware.
Auto-logs all requests to endpoints that expose patient records.
"""
import logging
from typing import Tuple

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from ..models.audit import AuditLog
from ..models.base import SessionLocal, generate_uuid
from .config import settings
from .security import decode_access_token

logger = logging.getLogger(__name__)

# Requests under these prefixes are logged
AUDITED_PATH_PREFIXES = (
    "/api/v1/patients",
    "/api/v1/ai",
    "/api/v1/analytics",
)

ACTION_MAP = {
    "GET": "view",
    "POST": "create",
    "PUT": "update",
    "PATCH": "update",
    "DELETE": "delete",
}


def resource_from_path(path: str) -> Tuple[str, str]:
    """("patients", "<id>") for /api/v1/patients/<id>/..., ("ai", "<id>") for AI patient calls."""
    parts = [p for p in path.split("/") if p]
    resource_type = parts[2] if len(parts) >= 3 else "unknown"
    resource_id = parts[3] if len(parts) >= 4 else "collection"
    if resource_type == "ai" and resource_id == "patients" and len(parts) >= 5:
        resource_id = parts[4]
    return resource_type, resource_id


class AuditMiddleware(BaseHTTPMiddleware):
    """Middleware that auto-logs access to patient-data endpoints."""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)

        if not settings.AUDIT_LOG_ENABLED:
            return response
        path = request.url.path
        if not path.startswith(AUDITED_PATH_PREFIXES):
            return response
        if request.method not in ACTION_MAP:
            return response

        user_id = "anonymous"
        institution_id = None
        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            payload = decode_access_token(auth_header[7:])
            if payload:
                user_id = payload.get("sub", "anonymous")
                institution_id = payload.get("institution_id")

        resource_type, resource_id = resource_from_path(path)
        ip_address = request.client.host if request.client else None

        db = SessionLocal()
        try:
            db.add(AuditLog(
                id=generate_uuid(),
                user_id=user_id,
                institution_id=institution_id,
                action=ACTION_MAP[request.method],
                resource_type=resource_type,
                resource_id=resource_id,
                ip_address=ip_address,
                request_method=request.method,
                request_path=path,
            ))
            db.commit()
        except Exception as exc:
            db.rollback()
            logger.warning(
                "Audit log write failed for %s %s (user=%s): %s",
                request.method, path, user_id, exc,
            )
        finally:
            db.close()

        return response
