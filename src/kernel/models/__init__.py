"""
Kernel Data Models

SQLAlchemy models for roles, permissions and their assignments.
"""

from src.kernel.models.base import Base, TimestampMixin
from src.kernel.models.role import Role
from src.kernel.models.permission import Permission
from src.kernel.models.assignment import ModelHasPermission, ModelHasRole, RoleHasPermission

__all__ = [
    # Base
    "Base",
    "TimestampMixin",
    # Catalog
    "Role",
    "Permission",
    # Assignments
    "RoleHasPermission",
    "ModelHasRole",
    "ModelHasPermission",
]
