"""
Public read-only API (v1)

Serves approved prompts, categories and tags to anonymous clients. Every
endpoint is rate limited per client IP and answers with the
``{"success": ..., "data"|"error": ...}`` envelope.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from app.api.responses import (PaginationMeta, api_error, api_not_found,
                               api_rate_limited, api_success, options_response)
from app.api.serializers import (serialize_prompt, serialize_prompt_list,
                                 serialize_tag)
from app.core.compound_errors import ResolutionError
from app.core.config import get_settings
from app.core.database import get_db
from app.core.logging_config import LoggingConfig
from app.core.metrics import api_rate_limited_total
from app.core.rate_limit import (get_client_ip, get_public_api_limiter,
                                 retry_after_seconds)
from app.models.prompt import Prompt
from app.services.bulk_resolution import bulk_resolve_prompts
from app.services.compound_resolution import resolve
from app.services.prompt_fetcher import PromptFetcher
from app.services.prompt_service import (SORT_NEWEST, SORT_OPTIONS,
                                         PromptSearchFilters, PromptService,
                                         parse_tag_filter)

router = APIRouter(prefix="/api/v1", tags=["public-api"])
logger = LoggingConfig.get_logger(__name__)

DEFAULT_TAG_LIMIT = 50
MAX_TAG_LIMIT = 100
MAX_QUERY_LENGTH = 200


def _rate_limit_key(request: Request) -> str:
    return f"api:{get_client_ip(request)}"


def _check_rate_limit(request: Request, endpoint: str):
    """Returns a 429 response when the client is over its limit, else None"""
    limiter = get_public_api_limiter()
    key = _rate_limit_key(request)
    if limiter.check_limit(key):
        return None

    retry_after = retry_after_seconds(limiter, key)
    api_rate_limited_total.labels(endpoint=endpoint).inc()
    logger.warning(
        f"Rate limit exceeded for {endpoint} endpoint",
        extra={"retry_after": retry_after, "client": key},
    )
    return api_rate_limited(retry_after)


def _record_request(request: Request):
    get_public_api_limiter().record_attempt(_rate_limit_key(request))


def _parse_int(value: Optional[str], default: int) -> Optional[int]:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError:
        return None


async def resolve_for_display(prompt: Prompt, db: Session) -> str:
    """Resolved text for a prompt; empty string when a compound cannot be resolved"""
    if not prompt.is_compound:
        return prompt.prompt_text or ""
    try:
        return await resolve(prompt.id, PromptFetcher(db))
    except ResolutionError as e:
        logger.error(
            "Failed to resolve compound prompt",
            extra={"prompt_id": prompt.id, "slug": prompt.slug, "error_code": e.code, "error": e.message},
        )
        return ""


@router.options("/prompts")
@router.options("/prompts/{identifier}")
@router.options("/categories")
@router.options("/tags")
async def preflight():
    """CORS preflight"""
    return options_response()


@router.get("/prompts")
async def list_prompts(
    request: Request,
    q: Optional[str] = None,
    category: Optional[str] = None,
    tags: Optional[str] = None,
    sort: str = SORT_NEWEST,
    page: Optional[str] = None,
    limit: Optional[str] = None,
    db: Session = Depends(get_db),
):
    """List approved prompts with search, filters and pagination

    Query parameters:
        q: case-insensitive search in title, description and text
        category: exact category
        tags: comma-separated tag slugs, all required
        sort: "newest" (default) or "alphabetical"
        page: page number, from 1
        limit: page size, 1..100
    """
    limited = _check_rate_limit(request, "prompts:list")
    if limited is not None:
        return limited

    settings = get_settings()

    page_number = _parse_int(page, 1)
    if page_number is None or page_number < 1:
        return api_error("INVALID_PAGE", "Page must be a positive number")

    page_size = _parse_int(limit, settings.public_api_default_page_size)
    if page_size is None:
        return api_error("INVALID_LIMIT", "Limit must be a valid number")
    if not 1 <= page_size <= settings.public_api_max_page_size:
        return api_error("INVALID_LIMIT", f"Limit must be between 1 and {settings.public_api_max_page_size}")

    if sort not in SORT_OPTIONS:
        return api_error("INVALID_SORT", 'Sort must be "newest" or "alphabetical"')

    if q and len(q) > MAX_QUERY_LENGTH:
        return api_error("INVALID_QUERY", f"Search query must be {MAX_QUERY_LENGTH} characters or less")

    filters = PromptSearchFilters(query=q, category=category, tags=parse_tag_filter(tags))
    try:
        prompts, total = PromptService(db).search_prompts(filters, sort=sort, page=page_number, limit=page_size)

        compound_ids = [p.id for p in prompts if p.is_compound]
        bulk = await bulk_resolve_prompts(db, compound_ids)
        for prompt_id, error in bulk.errors.items():
            logger.error(
                "Failed to resolve compound prompt",
                extra={"prompt_id": prompt_id, "error": error},
            )
    except Exception as e:
        logger.error(f"Error fetching prompts list: {e}", exc_info=True)
        return api_error("INTERNAL_ERROR", "Failed to fetch prompts", 500)

    items = [
        (p, bulk.resolved_texts.get(p.id, "") if p.is_compound else (p.prompt_text or ""))
        for p in prompts
    ]

    _record_request(request)
    logger.info(
        "Prompts list fetched successfully",
        extra={
            "count": len(items),
            "total": total,
            "page": page_number,
            "limit": page_size,
            "has_query": bool(q),
            "category": category,
            "tag_count": len(filters.tags),
            "sort": sort,
        },
    )
    return api_success(
        serialize_prompt_list(items),
        PaginationMeta.build(page=page_number, limit=page_size, total=total),
    )


@router.get("/prompts/{identifier}")
async def get_prompt(identifier: str, request: Request, db: Session = Depends(get_db)):
    """Get one approved prompt by slug or UUID, with compound prompts expanded"""
    limited = _check_rate_limit(request, "prompts:single")
    if limited is not None:
        return limited

    try:
        prompt = PromptService(db).get_by_identifier(identifier)
        if prompt is None:
            return api_not_found("Prompt not found")
        resolved_text = await resolve_for_display(prompt, db)
    except Exception as e:
        logger.error(f"Error fetching prompt: {e}", exc_info=True)
        return api_error("INTERNAL_ERROR", "Failed to fetch prompt", 500)

    _record_request(request)
    logger.info(
        "Prompt fetched successfully",
        extra={"identifier": identifier, "slug": prompt.slug, "is_compound": prompt.is_compound},
    )
    return api_success(serialize_prompt(prompt, resolved_text))


@router.get("/categories")
async def list_categories(request: Request, db: Session = Depends(get_db)):
    """Distinct categories of approved prompts"""
    limited = _check_rate_limit(request, "categories")
    if limited is not None:
        return limited

    try:
        categories = PromptService(db).list_categories()
    except Exception as e:
        logger.error(f"Error fetching categories: {e}", exc_info=True)
        return api_error("INTERNAL_ERROR", "Failed to fetch categories", 500)

    _record_request(request)
    logger.info("Categories fetched successfully", extra={"count": len(categories)})
    return api_success(categories)


@router.get("/tags")
async def list_tags(request: Request, limit: Optional[str] = None, db: Session = Depends(get_db)):
    """Popular tags, most used first"""
    limited = _check_rate_limit(request, "tags")
    if limited is not None:
        return limited

    tag_limit = _parse_int(limit, DEFAULT_TAG_LIMIT)
    if tag_limit is None:
        return api_error("INVALID_LIMIT", "Limit must be a valid number")
    if not 1 <= tag_limit <= MAX_TAG_LIMIT:
        return api_error("INVALID_LIMIT", f"Limit must be between 1 and {MAX_TAG_LIMIT}")

    try:
        tags = PromptService(db).popular_tags(tag_limit)
    except Exception as e:
        logger.error(f"Error fetching tags: {e}", exc_info=True)
        return api_error("INTERNAL_ERROR", "Failed to fetch tags", 500)

    _record_request(request)
    logger.info("Tags fetched successfully", extra={"count": len(tags), "limit": tag_limit})
    return api_success([serialize_tag(tag) for tag in tags])
