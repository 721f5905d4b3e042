"""
SQLAlchemy models
"""
from app.core.database import Base
from app.models.audit import AuditLogEntry  # noqa: F401
from app.models.prompt import (CompoundPromptComponent, Prompt,  # noqa: F401
                               PromptStatus, Tag, prompt_tags)

__all__ = [
    "Base",
    "Prompt",
    "PromptStatus",
    "CompoundPromptComponent",
    "Tag",
    "prompt_tags",
    "AuditLogEntry",
]
