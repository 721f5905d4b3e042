"""
Audit trail of moderation and import actions
"""
from datetime import datetime, timezone
from uuid import uuid4

from app.core.database import Base
from sqlalchemy import JSON, Column, DateTime, Index, String


class AuditLogEntry(Base):
    """One recorded administrative action"""
    __tablename__ = "audit_log"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    action = Column(String(50), nullable=False, index=True)  # PROMPT_DELETED, BULK_IMPORT, ...
    actor = Column(String(255), nullable=True)
    entity_type = Column(String(50), nullable=True)
    entity_id = Column(String(36), nullable=True, index=True)
    details = Column(JSON, nullable=True)
    ip_address = Column(String(45), nullable=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)

    __table_args__ = (
        Index("ix_audit_log_created_at", "created_at"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "action": self.action,
            "actor": self.actor,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "details": self.details,
            "ip_address": self.ip_address,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<AuditLogEntry(action={self.action}, entity={self.entity_id})>"
