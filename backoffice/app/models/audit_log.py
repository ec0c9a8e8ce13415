"""
Audit Log Database Models.

`permission_audit_log` records admin actions (allowed and denied) with the
before/after values; `activity_log` is the older free-text feed still read
by the dashboard.
"""

from sqlalchemy import Column, Integer, String, DateTime, JSON, Text
from sqlalchemy.sql import func
from backoffice.app.db.session import Base


class PermissionAuditLog(Base):
    """
    Audit log model for admin actions.

    Events logged:
    - provider approve / reject / suspend / reactivate / commission change
    - user ban / unban / role change
    - order cancel / refund / status change
    - settlement generation and payment
    """
    __tablename__ = "permission_audit_log"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    admin_id = Column(Integer, index=True, nullable=True)

    resource_code = Column(String(50), nullable=False)
    action_code = Column(String(100), nullable=False, index=True)
    permission_code = Column(String(160), nullable=False)

    entity_type = Column(String(50), nullable=False, index=True)
    entity_id = Column(String(64), nullable=False, index=True)
    entity_name = Column(String(200), nullable=True)

    old_data = Column(JSON, nullable=True)
    new_data = Column(JSON, nullable=True)
    changes = Column(JSON, nullable=True)
    reason = Column(Text, nullable=True)

    # success | denied
    status = Column(String(20), default="success", nullable=False)
    denial_reason = Column(Text, nullable=True)
    ip_address = Column(String(50), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    def __repr__(self):
        return f"<PermissionAuditLog(id={self.id}, action='{self.action_code}', entity={self.entity_type}:{self.entity_id})>"


class ActivityLog(Base):
    __tablename__ = "activity_log"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(Integer, index=True, nullable=True)
    activity_type = Column(String(60), nullable=False, index=True)
    description = Column(Text, nullable=False)
    meta_data = Column("metadata", JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)
