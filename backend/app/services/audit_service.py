"""
Audit Service for recording and listing administrative actions
"""
from enum import Enum
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from app.core.logging_config import LoggingConfig
from app.models.audit import AuditLogEntry

logger = LoggingConfig.get_logger(__name__)


class AuditAction(str, Enum):
    PROMPT_APPROVED = "PROMPT_APPROVED"
    PROMPT_REJECTED = "PROMPT_REJECTED"
    PROMPT_DELETED = "PROMPT_DELETED"
    PROMPT_RESTORED = "PROMPT_RESTORED"
    BULK_IMPORT = "BULK_IMPORT"
    BACKUP_EXPORTED = "BACKUP_EXPORTED"
    BACKUP_IMPORTED = "BACKUP_IMPORTED"


class AuditService:
    """Service for the audit trail"""

    def __init__(self, db: Session):
        self.db = db

    def log_action(
        self,
        action: AuditAction,
        actor: Optional[str] = None,
        entity_type: Optional[str] = None,
        entity_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        ip_address: Optional[str] = None,
    ) -> AuditLogEntry:
        """Record an action

        Args:
            action: What was done
            actor: Who did it, when known
            entity_type: Kind of object acted on (e.g. "prompt")
            entity_id: ID of that object
            details: Extra context; never put secrets here
            ip_address: Client address of the request

        Returns:
            Created AuditLogEntry
        """
        entry = AuditLogEntry(
            action=action.value,
            actor=actor,
            entity_type=entity_type,
            entity_id=entity_id,
            details=details or None,
            ip_address=ip_address,
        )
        try:
            self.db.add(entry)
            self.db.commit()
            self.db.refresh(entry)
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error writing audit entry {action.value}: {e}", exc_info=True)
            raise

        logger.info(
            f"Audit: {action.value}",
            extra={"action": action.value, "actor": actor, "entity_id": entity_id},
        )
        return entry

    def list_entries(
        self,
        action: Optional[str] = None,
        entity_id: Optional[str] = None,
        actor: Optional[str] = None,
        limit: int = 50,
    ) -> List[AuditLogEntry]:
        """Most recent entries first"""
        query = self.db.query(AuditLogEntry)
        if action:
            query = query.filter(AuditLogEntry.action == action)
        if entity_id:
            query = query.filter(AuditLogEntry.entity_id == entity_id)
        if actor:
            query = query.filter(AuditLogEntry.actor == actor)
        return (
            query.order_by(AuditLogEntry.created_at.desc(), AuditLogEntry.id.asc())
            .limit(limit)
            .all()
        )
