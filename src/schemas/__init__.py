"""
Pydantic schemas for cached views and API error bodies.
"""

from src.schemas.common import ErrorResponse, ForbiddenResponse
from src.schemas.rbac import PermissionRead, RoleRead

__all__ = [
    "ErrorResponse",
    "ForbiddenResponse",
    "PermissionRead",
    "RoleRead",
]
