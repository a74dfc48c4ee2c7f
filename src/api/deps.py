"""
FastAPI dependencies for authentication context, database sessions and
permission checks.
"""

from typing import Annotated, List, Optional, Sequence, Union

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import Settings, get_settings
from src.database import get_db
from src.kernel.cache import get_permission_cache
from src.kernel.errors import (
    Forbidden,
    GuardMismatch,
    InvalidWildcardPattern,
    NotFound,
    Unauthenticated,
)
from src.kernel.identity.principal import AuthContext, Principal
from src.kernel.permissions.authorization_engine import AuthorizationEngine
from src.logging_config import bind_log_context, get_logger

logger = get_logger(__name__)


DbSession = Annotated[AsyncSession, Depends(get_db)]


async def get_auth_context(request: Request) -> AuthContext:
    """
    Authentication context of the request.

    The host application's authentication layer stores the authenticated
    Principal on ``request.state.principal``; absent means a guest.
    """
    return AuthContext(principal=getattr(request.state, "principal", None))


CurrentContext = Annotated[AuthContext, Depends(get_auth_context)]


async def get_authorization_engine(
    db: DbSession,
    context: CurrentContext,
    settings: Annotated[Settings, Depends(get_settings)],
) -> AuthorizationEngine:
    """Request-scoped engine sharing the process-wide permission cache."""
    principal = context.principal
    if principal is not None:
        tenant_id = principal.tenant_id if settings.tenant_scope_enabled else settings.global_tenant_id
        bind_log_context(str(tenant_id) if tenant_id is not None else None, str(principal))
    return AuthorizationEngine(db, context, settings, get_permission_cache())


Engine = Annotated[AuthorizationEngine, Depends(get_authorization_engine)]


def _split_permissions(permissions: Union[str, Sequence[str]]) -> List[str]:
    if isinstance(permissions, str):
        permissions = permissions.split("|")
    return [p.strip() for p in permissions if p and p.strip()]


class PermissionChecker:
    """
    Dependency class allowing a request when the principal holds any of the
    listed permissions.

    Usage:
        @router.put("/posts/{post_id}")
        async def update_post(
            post_id: int,
            principal: Annotated[Principal, Depends(PermissionChecker("posts.edit|posts.manage"))],
        ):
            ...

    Permissions are tried in order and the first one held wins. A permission
    that does not exist, or belongs to a guard the principal does not use,
    counts as not held, as does a malformed wildcard pattern.
    """

    def __init__(self, permissions: Union[str, Sequence[str]], guard: Optional[str] = None):
        self.permissions = _split_permissions(permissions)
        self.guard = guard

    async def __call__(self, engine: Engine) -> Principal:
        principal = engine.context.principal
        if principal is None:
            raise Unauthenticated()
        if self.guard is not None and self.guard not in engine.guard_names(principal):
            raise Unauthenticated(f"User is not logged in on guard `{self.guard}`.")

        for permission in self.permissions:
            try:
                if await engine.has_permission_to(principal, permission, self.guard):
                    return principal
            except (NotFound, GuardMismatch, InvalidWildcardPattern) as exc:
                logger.debug(
                    "Permission not held",
                    extra={"permission": permission, "reason": exc.message},
                )

        logger.info(
            "Permission denied",
            extra={"principal": str(principal), "required_permissions": self.permissions},
        )
        raise Forbidden.for_permissions(self.permissions)


def require_permission(permissions: Union[str, Sequence[str]], guard: Optional[str] = None):
    """Route dependency shortcut: ``dependencies=[require_permission("posts.edit")]``."""
    return Depends(PermissionChecker(permissions, guard))
