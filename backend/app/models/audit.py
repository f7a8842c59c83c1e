from sqlalchemy import Column, String
from .base import Base, TimestampMixin, generate_uuid


class AuditLog(Base, TimestampMixin):
    """Access record for endpoints that touch patient data."""

    __tablename__ = "audit_logs"

    id = Column(String, primary_key=True, default=generate_uuid)
    user_id = Column(String(100), nullable=False, index=True)
    institution_id = Column(String(100), nullable=True, index=True)  # from the caller's token
    action = Column(String(20), nullable=False, index=True)  # view, create, update, delete
    resource_type = Column(String(50), nullable=False)
    resource_id = Column(String(100), nullable=False)
    ip_address = Column(String(64), nullable=True)
    request_method = Column(String(10), nullable=True)
    request_path = Column(String(500), nullable=True)
