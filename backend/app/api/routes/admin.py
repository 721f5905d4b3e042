"""
API routes for library administration: moderation, bulk import, backups and the audit log
"""
from datetime import datetime, timezone
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.api.errors import to_http_error
from app.core.compound_errors import CompoundPromptError, PromptNotFoundError
from app.core.database import get_db
from app.core.logging_config import LoggingConfig
from app.core.rate_limit import get_client_ip
from app.models.prompt import Prompt
from app.services.audit_service import AuditAction, AuditService
from app.services.backup_service import BackupService
from app.services.bulk_import_service import (BulkImportService,
                                              parse_bulk_import)
from app.services.prompt_service import PromptService

router = APIRouter(prefix="/api/admin", tags=["admin"])
logger = LoggingConfig.get_logger(__name__)

DELETE_ACTIONS = ("delete", "restore")


class RejectRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=1000)


class DeleteRequest(BaseModel):
    action: str = "delete"


class ModeratedPromptResponse(BaseModel):
    id: str
    slug: str
    title: str
    status: str
    rejection_reason: Optional[str] = None
    deleted_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class AuditEntryResponse(BaseModel):
    id: str
    action: str
    actor: Optional[str] = None
    entity_type: Optional[str] = None
    entity_id: Optional[str] = None
    details: Optional[dict] = None
    ip_address: Optional[str] = None
    created_at: Optional[str] = None


def _audit_prompt(
    db: Session,
    action: AuditAction,
    prompt: Prompt,
    actor: Optional[str],
    request: Request,
    **details,
):
    AuditService(db).log_action(
        action,
        actor=actor,
        entity_type="prompt",
        entity_id=prompt.id,
        details={"title": prompt.title, "slug": prompt.slug, **details},
        ip_address=get_client_ip(request),
    )


def _not_found(prompt_id: str) -> HTTPException:
    return HTTPException(status_code=404, detail=PromptNotFoundError(prompt_id).to_dict())


@router.post("/prompts/{prompt_id}/approve", response_model=ModeratedPromptResponse)
async def approve_prompt(
    prompt_id: str,
    request: Request,
    actor: Optional[str] = Header(None, alias="X-Actor"),
    db: Session = Depends(get_db),
):
    """Approve a prompt for the public library"""
    prompt = PromptService(db).approve_prompt(prompt_id)
    if prompt is None:
        raise _not_found(prompt_id)
    _audit_prompt(db, AuditAction.PROMPT_APPROVED, prompt, actor, request)
    return prompt


@router.post("/prompts/{prompt_id}/reject", response_model=ModeratedPromptResponse)
async def reject_prompt(
    prompt_id: str,
    body: RejectRequest,
    request: Request,
    actor: Optional[str] = Header(None, alias="X-Actor"),
    db: Session = Depends(get_db),
):
    """Reject a prompt with a reason shown to its author"""
    prompt = PromptService(db).reject_prompt(prompt_id, body.reason)
    if prompt is None:
        raise _not_found(prompt_id)
    _audit_prompt(db, AuditAction.PROMPT_REJECTED, prompt, actor, request, reason=body.reason)
    return prompt


@router.post("/prompts/{prompt_id}/delete", response_model=ModeratedPromptResponse)
async def delete_or_restore_prompt(
    prompt_id: str,
    request: Request,
    body: Optional[DeleteRequest] = None,
    actor: Optional[str] = Header(None, alias="X-Actor"),
    db: Session = Depends(get_db),
):
    """Soft delete (``{"action": "delete"}``, the default) or restore a prompt"""
    action = body.action if body else "delete"
    if action not in DELETE_ACTIONS:
        raise HTTPException(
            status_code=400,
            detail={"code": "INVALID_ACTION", "message": f"Unknown action: {action}"},
        )

    service = PromptService(db)
    try:
        if action == "delete":
            prompt = service.soft_delete_prompt(prompt_id)
        else:
            prompt = service.restore_prompt(prompt_id)
    except CompoundPromptError as e:
        logger.warning(
            f"Refused to {action} prompt {prompt_id}: {e.message}",
            extra={"prompt_id": prompt_id, "error_code": e.code},
        )
        raise to_http_error(e)
    if prompt is None:
        raise _not_found(prompt_id)

    audit_action = AuditAction.PROMPT_DELETED if action == "delete" else AuditAction.PROMPT_RESTORED
    _audit_prompt(db, audit_action, prompt, actor, request)
    return prompt


@router.post("/bulk-import")
async def bulk_import(
    request: Request,
    actor: Optional[str] = Header(None, alias="X-Actor"),
    db: Session = Depends(get_db),
):
    """Import many leaf prompts from a JSON ``{"prompts": [...]}`` document; they are approved on arrival"""
    raw = await request.body()
    if not raw.strip():
        raise HTTPException(status_code=400, detail={"code": "EMPTY_BODY", "message": "Request body is empty"})

    payload, errors = parse_bulk_import(raw)
    if payload is None:
        logger.info(
            "Bulk import validation failed",
            extra={"error_count": len(errors), "errors": errors[:5]},
        )
        raise HTTPException(
            status_code=400,
            detail={"code": "VALIDATION_FAILED", "message": "Validation failed", "errors": errors},
        )

    result = BulkImportService(db).process(payload, actor=actor)
    AuditService(db).log_action(
        AuditAction.BULK_IMPORT,
        actor=actor,
        details={
            "total": result.total,
            "created": result.created,
            "skipped": result.skipped,
            "failed": result.failed,
        },
        ip_address=get_client_ip(request),
    )
    return result.to_dict()


@router.get("/export")
async def export_backup(
    request: Request,
    actor: Optional[str] = Header(None, alias="X-Actor"),
    db: Session = Depends(get_db),
):
    """Download every non-deleted prompt as a JSON backup"""
    data = BackupService(db).export_all()
    AuditService(db).log_action(
        AuditAction.BACKUP_EXPORTED,
        actor=actor,
        details={"count": data.total_count},
        ip_address=get_client_ip(request),
    )
    filename = f"prompts-export-{datetime.now(timezone.utc):%Y-%m-%d}.json"
    return JSONResponse(
        content=data.model_dump(mode="json"),
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/import")
async def import_backup(
    request: Request,
    on_duplicate: Literal["skip", "update", "error"] = Query("skip"),
    dry_run: bool = Query(False),
    actor: Optional[str] = Header(None, alias="X-Actor"),
    db: Session = Depends(get_db),
):
    """Load a JSON backup produced by the export endpoint"""
    raw = await request.body()
    if not raw.strip():
        raise HTTPException(status_code=400, detail={"code": "EMPTY_BODY", "message": "Request body is empty"})

    result = await BackupService(db).import_all(raw, on_duplicate=on_duplicate, dry_run=dry_run)
    if not dry_run and result.success:
        AuditService(db).log_action(
            AuditAction.BACKUP_IMPORTED,
            actor=actor,
            details={"total": result.total, "imported": result.imported, "skipped": result.skipped},
            ip_address=get_client_ip(request),
        )
    if not result.success:
        return JSONResponse(status_code=400, content=result.to_dict())
    return result.to_dict()


@router.get("/audit-log", response_model=List[AuditEntryResponse])
async def list_audit_log(
    action: Optional[str] = Query(None, description="Filter by action"),
    entity_id: Optional[str] = Query(None, description="Filter by prompt ID"),
    limit: int = Query(50, ge=1, le=200, description="Maximum number of entries to return"),
    db: Session = Depends(get_db),
):
    """Recent administrative actions, newest first"""
    entries = AuditService(db).list_entries(action=action, entity_id=entity_id, limit=limit)
    return [AuditEntryResponse(**entry.to_dict()) for entry in entries]
