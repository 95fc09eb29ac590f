"""
Utility modules for storykeep.

Modules:
- errors: Exception taxonomy and Flask error handlers
"""

from .errors import (
    APIError,
    ValidationError,
    ServiceUnavailableError,
    MissingDependencyError,
    CoverRenderError,
    register_error_handlers,
)

__all__ = [
    "APIError",
    "ValidationError",
    "ServiceUnavailableError",
    "MissingDependencyError",
    "CoverRenderError",
    "register_error_handlers",
]
