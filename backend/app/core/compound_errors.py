"""
Errors raised while validating or resolving compound prompts
"""
from typing import Any, Dict, List, Optional, Sequence


class CompoundPromptError(Exception):
    """Base error for compound prompt operations"""

    code = "COMPOUND_PROMPT_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary"""
        return {"code": self.code, "message": self.message, **self.details}


class ResolutionError(CompoundPromptError):
    """A prompt could not be expanded into its final text"""


class PromptNotFoundError(ResolutionError):
    code = "NOT_FOUND"

    def __init__(self, prompt_id: str, message: Optional[str] = None):
        super().__init__(message or f"Prompt not found: {prompt_id}", {"prompt_id": prompt_id})
        self.prompt_id = prompt_id


class MaxDepthExceededError(ResolutionError):
    code = "MAX_DEPTH_EXCEEDED"

    def __init__(self, max_depth: int, actual_depth: int, message: Optional[str] = None):
        super().__init__(
            message or f"Maximum nesting depth of {max_depth} exceeded (reached {actual_depth})",
            {"max_depth": max_depth, "actual_depth": actual_depth},
        )
        self.max_depth = max_depth
        self.actual_depth = actual_depth


class CircularReferenceError(ResolutionError):
    code = "CIRCULAR_REFERENCE"

    def __init__(self, path: Sequence[str], message: Optional[str] = None):
        path = list(path)
        super().__init__(
            message or f"Circular reference detected: {' -> '.join(path)}",
            {"path": path},
        )
        self.path: List[str] = path


class InvalidComponentError(CompoundPromptError):
    """Component list is malformed"""

    code = "INVALID_COMPONENT"


class PromptInUseError(CompoundPromptError):
    """Prompt is still referenced by compound prompts"""

    code = "PROMPT_IN_USE"

    def __init__(self, prompt_id: str, used_by: Sequence[str]):
        super().__init__(
            f"Prompt {prompt_id} is used by {len(used_by)} compound prompt(s)",
            {"prompt_id": prompt_id, "used_by": list(used_by)},
        )
        self.prompt_id = prompt_id
        self.used_by = list(used_by)


class PromptStateError(CompoundPromptError):
    """Moderation action does not apply to the prompt's current state"""

    code = "INVALID_STATE"

    def __init__(self, prompt_id: str, message: str):
        super().__init__(message, {"prompt_id": prompt_id})
        self.prompt_id = prompt_id
