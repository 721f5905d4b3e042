"""
API routes for compound prompts
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.api.errors import to_http_error
from app.core.compound_errors import CompoundPromptError, PromptNotFoundError
from app.core.compound_types import ComponentRef
from app.core.database import get_db
from app.core.logging_config import LoggingConfig
from app.services.compound_resolution import (get_prompt_dependencies,
                                              preview_components,
                                              resolve_with_details)
from app.services.prompt_service import PromptService

router = APIRouter(prefix="/api/compound-prompts", tags=["compound-prompts"])
prompts_router = APIRouter(prefix="/api/prompts", tags=["prompts"])
logger = LoggingConfig.get_logger(__name__)


class ComponentRequest(BaseModel):
    """One slot of a compound prompt"""
    position: int = Field(..., ge=0)
    component_prompt_id: Optional[str] = None
    custom_text_before: Optional[str] = None
    custom_text_after: Optional[str] = None

    def to_ref(self) -> ComponentRef:
        return ComponentRef(
            position=self.position,
            component_prompt_id=self.component_prompt_id,
            text_before=self.custom_text_before,
            text_after=self.custom_text_after,
        )


class CreateCompoundPromptRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    category: str = Field(..., min_length=1, max_length=100)
    author_name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    author_url: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    max_depth: Optional[int] = None
    components: List[ComponentRequest] = Field(..., min_length=1)


class UpdateComponentsRequest(BaseModel):
    components: List[ComponentRequest] = Field(..., min_length=1)
    max_depth: Optional[int] = None


class PreviewRequest(BaseModel):
    components: List[ComponentRequest] = Field(..., min_length=1)
    compound_id: Optional[str] = None
    max_depth: Optional[int] = None


class ComponentResponse(BaseModel):
    position: int
    component_prompt_id: Optional[str] = None
    custom_text_before: Optional[str] = None
    custom_text_after: Optional[str] = None

    class Config:
        from_attributes = True


class CompoundPromptResponse(BaseModel):
    id: str
    slug: str
    title: str
    category: str
    status: str
    is_compound: bool
    max_depth: Optional[int] = None
    components: List[ComponentResponse]

    class Config:
        from_attributes = True


class ResolvedResponse(BaseModel):
    prompt_id: str
    resolved_text: str
    depth_reached: int
    used_prompt_ids: List[str]


@router.post("/", response_model=CompoundPromptResponse, status_code=status.HTTP_201_CREATED)
async def create_compound_prompt(request: CreateCompoundPromptRequest, db: Session = Depends(get_db)):
    """Create a compound prompt (pending moderation)"""
    try:
        prompt = await PromptService(db).create_compound_prompt(
            title=request.title,
            category=request.category,
            author_name=request.author_name,
            components=[c.to_ref() for c in request.components],
            description=request.description,
            author_url=request.author_url,
            tags=request.tags,
            max_depth=request.max_depth,
        )
    except CompoundPromptError as e:
        logger.warning(f"Rejected compound prompt: {e.message}", extra={"error_code": e.code})
        raise to_http_error(e)
    return prompt


@router.put("/{prompt_id}/components", response_model=CompoundPromptResponse)
async def update_components(prompt_id: str, request: UpdateComponentsRequest, db: Session = Depends(get_db)):
    """Replace the components of a compound prompt"""
    try:
        prompt = await PromptService(db).update_compound_components(
            prompt_id,
            [c.to_ref() for c in request.components],
            max_depth=request.max_depth,
        )
    except CompoundPromptError as e:
        logger.warning(
            f"Rejected component update: {e.message}",
            extra={"prompt_id": prompt_id, "error_code": e.code},
        )
        raise to_http_error(e)
    if prompt is None:
        raise HTTPException(status_code=404, detail=PromptNotFoundError(prompt_id).to_dict())
    return prompt


@router.post("/preview")
async def preview(request: PreviewRequest, db: Session = Depends(get_db)):
    """Resolve components that have not been saved yet"""
    service = PromptService(db)
    try:
        text = await preview_components(
            [c.to_ref() for c in request.components],
            service.fetcher,
            compound_id=request.compound_id,
            max_depth=request.max_depth,
        )
    except CompoundPromptError as e:
        raise to_http_error(e)
    return {"resolved_text": text}


@router.get("/{prompt_id}/resolved", response_model=ResolvedResponse)
async def get_resolved(prompt_id: str, db: Session = Depends(get_db)):
    """Fully resolved text plus depth and the prompts used"""
    service = PromptService(db)
    try:
        result = await resolve_with_details(prompt_id, service.fetcher)
    except CompoundPromptError as e:
        raise to_http_error(e)
    return ResolvedResponse(
        prompt_id=prompt_id,
        resolved_text=result.resolved_text,
        depth_reached=result.depth_reached,
        used_prompt_ids=result.used_prompt_ids,
    )


@router.get("/{prompt_id}/dependencies")
async def get_dependencies(prompt_id: str, db: Session = Depends(get_db)):
    """Prompts this one depends on, and compound prompts that depend on it"""
    service = PromptService(db)
    try:
        used = await get_prompt_dependencies(prompt_id, service.fetcher)
    except CompoundPromptError as e:
        raise to_http_error(e)
    return {
        "prompt_id": prompt_id,
        "uses": [pid for pid in used if pid != prompt_id],
        "used_by": service.find_dependents(prompt_id),
    }


@prompts_router.post("/{prompt_id}/copy")
async def copy_prompt(prompt_id: str, db: Session = Depends(get_db)):
    """Record a copy and return the text the user copies"""
    service = PromptService(db)
    prompt = service.get_prompt(prompt_id)
    if prompt is None or prompt.deleted_at is not None:
        raise HTTPException(status_code=404, detail=PromptNotFoundError(prompt_id).to_dict())

    try:
        result = await resolve_with_details(prompt_id, service.fetcher)
    except CompoundPromptError as e:
        logger.error(
            f"Cannot copy prompt {prompt_id}: {e.message}",
            extra={"prompt_id": prompt_id, "error_code": e.code},
        )
        raise to_http_error(e)

    service.record_copy(prompt_id)
    return {"prompt_id": prompt_id, "resolved_text": result.resolved_text}
