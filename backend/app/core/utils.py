"""
Text helpers shared by services and routes
"""
import re
from uuid import UUID

SLUG_MAX_LENGTH = 100
TAG_MAX_LENGTH = 50

_NON_WORD = re.compile(r"[^\w\s-]")
_SEPARATORS = re.compile(r"[\s_-]+")


def slugify(text: str, max_length: int = SLUG_MAX_LENGTH) -> str:
    """URL-friendly slug

    Example:
        slugify("Code Review & Best Practices") -> "code-review-best-practices"
    """
    slug = _NON_WORD.sub("", text.lower().strip())
    slug = _SEPARATORS.sub("-", slug).strip("-")
    return slug[:max_length].rstrip("-")


def normalize_tag(tag: str) -> str:
    """Lowercase, hyphenated tag name"""
    return slugify(tag, TAG_MAX_LENGTH)


def is_uuid(value: str) -> bool:
    """True for canonical hyphenated UUID strings"""
    if len(value) != 36:
        return False
    try:
        UUID(value)
    except ValueError:
        return False
    return True
