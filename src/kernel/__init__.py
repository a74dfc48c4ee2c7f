"""
Authorization Kernel

Foundational components of the RBAC core:
- Entity Store (tenant-scoped roles, permissions, assignments)
- Guard Resolver (principal type <-> guard)
- Permission Cache (per tenant/guard catalog)
- Wildcard Matcher
- Authorization Engine

Invariants:
- Every read and write is confined to one tenant
- Roles and permissions only attach to principals of their guard
- Every write invalidates the cached catalog of its scope
"""

from src.kernel.cache import PermissionCache, PermissionCatalog, get_permission_cache
from src.kernel.errors import (
    AlreadyExists,
    AuthorizationError,
    Forbidden,
    GuardMismatch,
    InvalidWildcardPattern,
    NotFound,
    PermissionAlreadyExists,
    PermissionDoesNotExist,
    RoleAlreadyExists,
    RoleDoesNotExist,
    Unauthenticated,
)
from src.kernel.guards import GuardResolver
from src.kernel.identity import AuthContext, Principal
from src.kernel.models import Permission, Role
from src.kernel.permissions import AuthorizationEngine
from src.kernel.wildcard import WildcardMatcher

__all__ = [
    # Engine
    "AuthorizationEngine",
    "AuthContext",
    "Principal",
    # Components
    "GuardResolver",
    "PermissionCache",
    "PermissionCatalog",
    "get_permission_cache",
    "WildcardMatcher",
    # Models
    "Role",
    "Permission",
    # Errors
    "AuthorizationError",
    "NotFound",
    "RoleDoesNotExist",
    "PermissionDoesNotExist",
    "AlreadyExists",
    "RoleAlreadyExists",
    "PermissionAlreadyExists",
    "GuardMismatch",
    "Unauthenticated",
    "Forbidden",
    "InvalidWildcardPattern",
]
