"""
Entity Store - tenant-scoped persistence for roles, permissions and assignments.
"""

from src.kernel.store.assignment_repository import AssignmentRepository
from src.kernel.store.catalog_repository import (
    CatalogRepository,
    PermissionRepository,
    RoleRepository,
)

__all__ = [
    "AssignmentRepository",
    "CatalogRepository",
    "PermissionRepository",
    "RoleRepository",
]
