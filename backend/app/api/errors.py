"""
HTTP status mapping for domain errors
"""
from fastapi import HTTPException, status

from app.core.compound_errors import (CompoundPromptError, PromptInUseError,
                                      PromptNotFoundError, PromptStateError)


def status_code_for(e: CompoundPromptError) -> int:
    if isinstance(e, PromptNotFoundError):
        return status.HTTP_404_NOT_FOUND
    if isinstance(e, PromptInUseError):
        return status.HTTP_409_CONFLICT
    if isinstance(e, PromptStateError):
        return status.HTTP_400_BAD_REQUEST
    return 422


def to_http_error(e: CompoundPromptError) -> HTTPException:
    """Map a domain error to an HTTP error carrying its code and details"""
    return HTTPException(status_code=status_code_for(e), detail=e.to_dict())
