"""
Authorization engine for RBAC access control.
"""

from typing import Dict, FrozenSet, Iterable, List, Optional, Set

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import Settings, get_settings
from src.kernel.cache import PermissionCache, PermissionCatalog, ScopeKey, get_permission_cache
from src.kernel.errors import (
    GuardMismatch,
    PermissionDoesNotExist,
    RoleDoesNotExist,
    Unauthenticated,
)
from src.kernel.guards import GuardResolver
from src.kernel.identity.principal import AuthContext, Principal
from src.kernel.permissions.refs import ById, ByName, RefLike, Resolved, flatten, to_ref
from src.kernel.store import AssignmentRepository, PermissionRepository, RoleRepository
from src.kernel.wildcard import WildcardMatcher
from src.logging_config import get_logger
from src.schemas.rbac import PermissionRead, RoleRead

logger = get_logger(__name__)

_DIRTY_KEY = "rbac_dirty_scopes"


def _dirty_scopes(session: AsyncSession) -> Dict[PermissionCache, Set[ScopeKey]]:
    """
    Scopes written by a session's open transaction, per cache.

    The first call installs a listener that invalidates those scopes once the
    outermost transaction ends (commit, rollback or close), so other sessions
    reload after the write is visible to them.
    """
    info = session.info
    if _DIRTY_KEY not in info:
        info[_DIRTY_KEY] = {}

        @event.listens_for(session.sync_session, "after_transaction_end")
        def _invalidate_on_end(sync_session, transaction):
            if transaction.parent is not None:
                return
            dirty = sync_session.info.get(_DIRTY_KEY, {})
            for cache, scopes in dirty.items():
                for tenant_id, guard_name in scopes:
                    cache.invalidate(tenant_id, guard_name)
            dirty.clear()

    return info[_DIRTY_KEY]


class AuthorizationEngine:
    """
    Answers "may this principal do X" and manages role/permission assignments.

    One engine serves one request: it is bound to a session and to the
    authentication context whose principal decides the tenant scope. The
    permission cache is shared process-wide.

    Usage:
        engine = AuthorizationEngine(session, AuthContext(principal=user))
        await engine.give_permission_to(user, "posts.edit")
        allowed = await engine.has_permission_to(user, "posts.edit")
    """

    def __init__(
        self,
        session: AsyncSession,
        context: AuthContext,
        settings: Optional[Settings] = None,
        cache: Optional[PermissionCache] = None,
    ):
        self.session = session
        self.context = context
        self.settings = settings or get_settings()
        self.cache = cache if cache is not None else get_permission_cache()
        self.guards = GuardResolver(self.settings)
        self.matcher = WildcardMatcher(self.settings.wildcard_separator, self.settings.wildcard_token)
        self.role_store = RoleRepository(session)
        self.permission_store = PermissionRepository(session)
        self.assignments = AssignmentRepository(session)

    # ------------------------------------------------------------------
    # Scope
    # ------------------------------------------------------------------

    @property
    def tenant_id(self) -> str:
        """
        Tenant all reads and writes are confined to.

        Raises:
            Unauthenticated: If scoping is on and no principal is present
        """
        if not self.settings.tenant_scope_enabled:
            return self.settings.global_tenant_id
        principal = self.context.current_principal()
        if principal.tenant_id is None:
            raise Unauthenticated("Authenticated principal has no tenant.")
        return str(principal.tenant_id)

    def default_guard(self) -> str:
        """Guard used for catalog operations when none is given."""
        if self.context.principal is not None:
            return self.guards.get_default_name(self.context.principal.type)
        return self.settings.default_guard

    def guard_names(self, principal: Principal) -> List[str]:
        return self.guards.guard_names_for(principal.type)

    def _touch(self, guard_name: str) -> None:
        """Record a write to (tenant, guard_name) and drop its cache entry."""
        tenant_id = self.tenant_id
        self.cache.invalidate(tenant_id, guard_name)
        _dirty_scopes(self.session).setdefault(self.cache, set()).add(
            PermissionCache.key(tenant_id, guard_name)
        )

    async def catalog(self, guard_name: str) -> PermissionCatalog:
        """
        Catalog of the current tenant for one guard.

        A scope this session wrote to but has not committed is read straight
        from the store and kept out of the shared cache.
        """
        tenant_id = self.tenant_id

        async def load() -> PermissionCatalog:
            permissions, roles, grants = await self.assignments.load_catalog_rows(tenant_id, guard_name)
            return PermissionCatalog.build(
                tenant_id,
                guard_name,
                [PermissionRead.model_validate(p) for p in permissions],
                [RoleRead.model_validate(r) for r in roles],
                grants,
            )

        dirty = _dirty_scopes(self.session).get(self.cache, set())
        if PermissionCache.key(tenant_id, guard_name) in dirty:
            return await load()
        return await self.cache.get_or_load(tenant_id, guard_name, load)

    # ------------------------------------------------------------------
    # Reference resolution
    # ------------------------------------------------------------------

    async def resolve_permission(self, permission: RefLike, guard_name: Optional[str] = None) -> PermissionRead:
        """
        Turn a name, id or record into a permission of the current tenant.

        Names are looked up in the given (or default) guard; ids and records
        are looked up in whatever guard they belong to.

        Raises:
            PermissionDoesNotExist: If nothing matches in the tenant
        """
        ref = to_ref(permission)
        tenant_id = self.tenant_id

        if isinstance(ref, ByName):
            guard_name = guard_name or self.default_guard()
            found = (await self.catalog(guard_name)).permission_by_name(ref.name)
            if found is None:
                raise PermissionDoesNotExist.create(ref.name, guard_name)
            return found

        if isinstance(ref, ById):
            record = await self.permission_store.find_by_id(tenant_id, ref.id)
            return PermissionRead.model_validate(record)

        if not isinstance(ref.record, PermissionRead):
            raise TypeError("Expected a permission, got a role")
        record = ref.record
        if record.tenant_id != tenant_id:
            raise PermissionDoesNotExist.create(record.name, record.guard_name)
        found = (await self.catalog(record.guard_name)).permissions.get(record.id)
        if found is None:
            raise PermissionDoesNotExist.with_id(record.id, record.guard_name)
        return found

    async def resolve_role(self, role: RefLike, guard_name: Optional[str] = None) -> RoleRead:
        """
        Raises:
            RoleDoesNotExist: If nothing matches in the tenant
        """
        ref = to_ref(role)
        tenant_id = self.tenant_id

        if isinstance(ref, ByName):
            guard_name = guard_name or self.default_guard()
            found = (await self.catalog(guard_name)).role_by_name(ref.name)
            if found is None:
                raise RoleDoesNotExist.named(ref.name, guard_name)
            return found

        if isinstance(ref, ById):
            record = await self.role_store.find_by_id(tenant_id, ref.id)
            return RoleRead.model_validate(record)

        if not isinstance(ref.record, RoleRead):
            raise TypeError("Expected a role, got a permission")
        record = ref.record
        if record.tenant_id != tenant_id:
            raise RoleDoesNotExist.named(record.name, record.guard_name)
        found = (await self.catalog(record.guard_name)).roles.get(record.id)
        if found is None:
            raise RoleDoesNotExist.with_id(record.id, record.guard_name)
        return found

    def _ensure_guard(self, guard_name: str, allowed: List[str]) -> None:
        if guard_name not in allowed:
            raise GuardMismatch.create(guard_name, allowed)

    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------

    async def has_permission_to(
        self,
        principal: Principal,
        permission: RefLike,
        guard_name: Optional[str] = None,
    ) -> bool:
        """
        Check whether a principal holds a permission, directly or via a role.

        Raises:
            PermissionDoesNotExist: If the reference does not resolve
            GuardMismatch: If the permission belongs to a guard the principal
                is not authenticated by
        """
        guard_name = guard_name or self.guards.get_default_name(principal.type)
        resolved = await self.resolve_permission(permission, guard_name)
        self._ensure_guard(resolved.guard_name, self.guard_names(principal))

        if self.settings.wildcard_enabled:
            granted = await self._effective_permissions(principal, [resolved.guard_name])
            return self.matcher.matches_any((p.name for p in granted), resolved.name)

        catalog = await self.catalog(resolved.guard_name)
        return resolved.id in await self._effective_ids(principal, catalog)

    async def has_any_permission(self, principal: Principal, *permissions: RefLike) -> bool:
        for permission in flatten(permissions):
            if await self.has_permission_to(principal, permission):
                return True
        return False

    async def has_all_permissions(self, principal: Principal, *permissions: RefLike) -> bool:
        for permission in flatten(permissions):
            if not await self.has_permission_to(principal, permission):
                return False
        return True

    async def has_direct_permission(self, principal: Principal, permission: RefLike) -> bool:
        """Check a permission granted to the principal itself, ignoring roles."""
        resolved = await self.resolve_permission(permission, self.guards.get_default_name(principal.type))
        self._ensure_guard(resolved.guard_name, self.guard_names(principal))
        direct = await self.assignments.permission_ids_for(self.tenant_id, principal)
        return resolved.id in direct

    async def has_role(
        self,
        principal: Principal,
        role: RefLike,
        guard_name: Optional[str] = None,
    ) -> bool:
        """
        Check role membership. A name containing ``|`` means any of the names.

        Unknown names simply are not held; this never raises NotFound.
        """
        held = await self.roles(principal)
        if guard_name is not None:
            held = [r for r in held if r.guard_name == guard_name]

        if isinstance(role, str):
            names = {name.strip() for name in role.split("|")}
            return any(r.name in names for r in held)
        ref = to_ref(role)
        if isinstance(ref, ById):
            return any(r.id == ref.id for r in held)
        if isinstance(ref, Resolved):
            return any(r.id == ref.record.id for r in held)
        return any(r.name == ref.name for r in held)

    async def has_any_role(self, principal: Principal, *roles: RefLike) -> bool:
        for role in flatten(roles):
            if await self.has_role(principal, role):
                return True
        return False

    async def has_all_roles(self, principal: Principal, *roles: RefLike) -> bool:
        for role in flatten(roles):
            if not await self.has_role(principal, role):
                return False
        return True

    # ------------------------------------------------------------------
    # Read accessors
    # ------------------------------------------------------------------

    async def roles(self, principal: Principal) -> List[RoleRead]:
        role_ids = await self.assignments.role_ids_for(self.tenant_id, principal)
        held: List[RoleRead] = []
        for guard_name in self.guard_names(principal):
            catalog = await self.catalog(guard_name)
            held.extend(catalog.roles[role_id] for role_id in sorted(role_ids) if role_id in catalog.roles)
        return held

    async def get_role_names(self, principal: Principal) -> List[str]:
        return [role.name for role in await self.roles(principal)]

    async def permissions(self, principal: Principal) -> List[PermissionRead]:
        """Effective permissions: direct plus those inherited through roles."""
        return await self._effective_permissions(principal, self.guard_names(principal))

    async def get_permission_names(self, principal: Principal) -> List[str]:
        return [permission.name for permission in await self.permissions(principal)]

    async def direct_permissions(self, principal: Principal) -> List[PermissionRead]:
        direct = await self.assignments.permission_ids_for(self.tenant_id, principal)
        found: List[PermissionRead] = []
        for guard_name in self.guard_names(principal):
            catalog = await self.catalog(guard_name)
            found.extend(catalog.permissions[pid] for pid in sorted(direct) if pid in catalog.permissions)
        return found

    async def permissions_via_roles(self, principal: Principal) -> List[PermissionRead]:
        role_ids = await self.assignments.role_ids_for(self.tenant_id, principal)
        found: List[PermissionRead] = []
        for guard_name in self.guard_names(principal):
            catalog = await self.catalog(guard_name)
            ids = catalog.permissions_for_roles(r for r in role_ids if r in catalog.roles)
            found.extend(catalog.permissions[pid] for pid in sorted(ids) if pid in catalog.permissions)
        return found

    async def _effective_ids(self, principal: Principal, catalog: PermissionCatalog) -> FrozenSet[int]:
        tenant_id = self.tenant_id
        role_ids = await self.assignments.role_ids_for(tenant_id, principal)
        direct = await self.assignments.permission_ids_for(tenant_id, principal)
        via_roles = catalog.permissions_for_roles(r for r in role_ids if r in catalog.roles)
        return frozenset(pid for pid in direct if pid in catalog.permissions) | via_roles

    async def _effective_permissions(
        self,
        principal: Principal,
        guard_names: Iterable[str],
    ) -> List[PermissionRead]:
        found: List[PermissionRead] = []
        for guard_name in guard_names:
            catalog = await self.catalog(guard_name)
            ids = await self._effective_ids(principal, catalog)
            found.extend(catalog.permissions[pid] for pid in sorted(ids) if pid in catalog.permissions)
        return found

    # ------------------------------------------------------------------
    # Principal assignments
    # ------------------------------------------------------------------

    async def _resolve_roles_for(self, principal: Principal, roles: Iterable[RefLike]) -> List[RoleRead]:
        allowed = self.guard_names(principal)
        default = self.guards.get_default_name(principal.type)
        resolved = []
        for role in flatten(roles):
            record = await self.resolve_role(role, default)
            self._ensure_guard(record.guard_name, allowed)
            resolved.append(record)
        return resolved

    async def _resolve_permissions_for(
        self,
        allowed: List[str],
        default: str,
        permissions: Iterable[RefLike],
    ) -> List[PermissionRead]:
        resolved = []
        for permission in flatten(permissions):
            record = await self.resolve_permission(permission, default)
            self._ensure_guard(record.guard_name, allowed)
            resolved.append(record)
        return resolved

    async def assign_role(self, principal: Principal, *roles: RefLike) -> List[RoleRead]:
        """
        Assign roles to a principal. Already held roles are left alone.

        Raises:
            RoleDoesNotExist: If a reference does not resolve
            GuardMismatch: If a role belongs to another guard
        """
        resolved = await self._resolve_roles_for(principal, roles)
        await self.assignments.attach_roles(self.tenant_id, principal, (r.id for r in resolved))
        for guard_name in {r.guard_name for r in resolved}:
            self._touch(guard_name)
        logger.info(
            "Roles assigned",
            extra={"principal": str(principal), "roles": [r.name for r in resolved]},
        )
        return resolved

    async def revoke_role(self, principal: Principal, *roles: RefLike) -> None:
        resolved = await self._resolve_roles_for(principal, roles)
        await self.assignments.detach_roles(self.tenant_id, principal, [r.id for r in resolved])
        for guard_name in {r.guard_name for r in resolved}:
            self._touch(guard_name)
        logger.info(
            "Roles revoked",
            extra={"principal": str(principal), "roles": [r.name for r in resolved]},
        )

    async def sync_roles(self, principal: Principal, *roles: RefLike) -> List[RoleRead]:
        """Replace every role of the principal with the given ones."""
        resolved = await self._resolve_roles_for(principal, roles)
        tenant_id = self.tenant_id
        await self.assignments.detach_roles(tenant_id, principal)
        await self.assignments.attach_roles(tenant_id, principal, (r.id for r in resolved))
        for guard_name in self.guard_names(principal):
            self._touch(guard_name)
        return resolved

    async def give_permission_to(self, principal: Principal, *permissions: RefLike) -> List[PermissionRead]:
        """
        Grant permissions directly to a principal.

        Raises:
            PermissionDoesNotExist: If a reference does not resolve
            GuardMismatch: If a permission belongs to another guard
        """
        resolved = await self._resolve_permissions_for(
            self.guard_names(principal), self.guards.get_default_name(principal.type), permissions
        )
        await self.assignments.attach_permissions(self.tenant_id, principal, (p.id for p in resolved))
        for guard_name in {p.guard_name for p in resolved}:
            self._touch(guard_name)
        logger.info(
            "Permissions granted",
            extra={"principal": str(principal), "permissions": [p.name for p in resolved]},
        )
        return resolved

    async def revoke_permission_to(self, principal: Principal, *permissions: RefLike) -> None:
        resolved = await self._resolve_permissions_for(
            self.guard_names(principal), self.guards.get_default_name(principal.type), permissions
        )
        await self.assignments.detach_permissions(self.tenant_id, principal, [p.id for p in resolved])
        for guard_name in {p.guard_name for p in resolved}:
            self._touch(guard_name)
        logger.info(
            "Permissions revoked",
            extra={"principal": str(principal), "permissions": [p.name for p in resolved]},
        )

    async def sync_permissions(self, principal: Principal, *permissions: RefLike) -> List[PermissionRead]:
        """Replace every direct permission of the principal with the given ones."""
        resolved = await self._resolve_permissions_for(
            self.guard_names(principal), self.guards.get_default_name(principal.type), permissions
        )
        tenant_id = self.tenant_id
        await self.assignments.detach_permissions(tenant_id, principal)
        await self.assignments.attach_permissions(tenant_id, principal, (p.id for p in resolved))
        for guard_name in self.guard_names(principal):
            self._touch(guard_name)
        return resolved

    async def forget_principal(self, principal: Principal) -> int:
        """Drop every assignment of a principal that no longer exists."""
        removed = await self.assignments.delete_for_principal(self.tenant_id, principal)
        for guard_name in self.guard_names(principal):
            self._touch(guard_name)
        return removed

    # ------------------------------------------------------------------
    # Roles as permission holders
    # ------------------------------------------------------------------

    async def give_permission_to_role(self, role: RefLike, *permissions: RefLike) -> RoleRead:
        """
        Raises:
            GuardMismatch: If a permission's guard differs from the role's
        """
        target = await self.resolve_role(role)
        resolved = await self._resolve_permissions_for([target.guard_name], target.guard_name, permissions)
        await self.assignments.grant_to_role(self.tenant_id, target.id, (p.id for p in resolved))
        self._touch(target.guard_name)
        logger.info(
            "Permissions granted to role",
            extra={"role": target.name, "permissions": [p.name for p in resolved]},
        )
        return target

    async def revoke_permission_from_role(self, role: RefLike, *permissions: RefLike) -> RoleRead:
        target = await self.resolve_role(role)
        resolved = await self._resolve_permissions_for([target.guard_name], target.guard_name, permissions)
        await self.assignments.revoke_from_role(self.tenant_id, target.id, [p.id for p in resolved])
        self._touch(target.guard_name)
        return target

    async def sync_role_permissions(self, role: RefLike, *permissions: RefLike) -> RoleRead:
        target = await self.resolve_role(role)
        resolved = await self._resolve_permissions_for([target.guard_name], target.guard_name, permissions)
        tenant_id = self.tenant_id
        await self.assignments.revoke_from_role(tenant_id, target.id)
        await self.assignments.grant_to_role(tenant_id, target.id, (p.id for p in resolved))
        self._touch(target.guard_name)
        return target

    async def role_permissions(self, role: RefLike) -> List[PermissionRead]:
        target = await self.resolve_role(role)
        catalog = await self.catalog(target.guard_name)
        ids = catalog.role_permissions.get(target.id, frozenset())
        return [catalog.permissions[pid] for pid in sorted(ids) if pid in catalog.permissions]

    async def role_has_permission_to(self, role: RefLike, permission: RefLike) -> bool:
        """
        Raises:
            PermissionDoesNotExist: If the permission does not resolve
            GuardMismatch: If the permission's guard differs from the role's
        """
        target = await self.resolve_role(role)
        resolved = await self.resolve_permission(permission, target.guard_name)
        self._ensure_guard(resolved.guard_name, [target.guard_name])

        if self.settings.wildcard_enabled:
            granted = await self.role_permissions(target)
            return self.matcher.matches_any((p.name for p in granted), resolved.name)

        catalog = await self.catalog(target.guard_name)
        return resolved.id in catalog.role_permissions.get(target.id, frozenset())

    async def role_users(self, role: RefLike) -> List[Principal]:
        """Principals holding a role, limited to the type its guard authenticates."""
        target = await self.resolve_role(role)
        model_type = self.guards.get_model_for_guard(target.guard_name)
        rows = await self.assignments.principals_for_role(self.tenant_id, target.id, model_type)
        return [Principal(type=t, id=i, tenant_id=target.tenant_id) for t, i in rows]

    # ------------------------------------------------------------------
    # Catalog management
    # ------------------------------------------------------------------

    async def create_role(self, name: str, guard_name: Optional[str] = None) -> RoleRead:
        """
        Raises:
            RoleAlreadyExists: If the name is taken for the guard in this tenant
        """
        guard_name = guard_name or self.default_guard()
        record = await self.role_store.create(self.tenant_id, name, guard_name)
        self._touch(guard_name)
        return RoleRead.model_validate(record)

    async def find_role_by_name(self, name: str, guard_name: Optional[str] = None) -> RoleRead:
        guard_name = guard_name or self.default_guard()
        return RoleRead.model_validate(await self.role_store.find_by_name(self.tenant_id, name, guard_name))

    async def find_role_by_id(self, role_id: int, guard_name: Optional[str] = None) -> RoleRead:
        guard_name = guard_name or self.default_guard()
        return RoleRead.model_validate(await self.role_store.find_by_id(self.tenant_id, role_id, guard_name))

    async def find_or_create_role(self, name: str, guard_name: Optional[str] = None) -> RoleRead:
        guard_name = guard_name or self.default_guard()
        record = await self.role_store.find_or_create(self.tenant_id, name, guard_name)
        self._touch(guard_name)
        return RoleRead.model_validate(record)

    async def delete_role(self, role: RefLike) -> bool:
        target = await self.resolve_role(role)
        deleted = await self.role_store.delete(self.tenant_id, target.id)
        self._touch(target.guard_name)
        logger.info("Role deleted", extra={"role": target.name, "guard_name": target.guard_name})
        return deleted

    async def list_roles(self, guard_name: Optional[str] = None) -> List[RoleRead]:
        return [RoleRead.model_validate(r) for r in await self.role_store.list(self.tenant_id, guard_name)]

    async def create_permission(self, name: str, guard_name: Optional[str] = None) -> PermissionRead:
        """
        Raises:
            PermissionAlreadyExists: If the name is taken for the guard in this tenant
            InvalidWildcardPattern: If wildcard matching is on and the name has an empty segment
        """
        guard_name = guard_name or self.default_guard()
        self._check_name(name)
        record = await self.permission_store.create(self.tenant_id, name, guard_name)
        self._touch(guard_name)
        return PermissionRead.model_validate(record)

    async def find_permission_by_name(self, name: str, guard_name: Optional[str] = None) -> PermissionRead:
        guard_name = guard_name or self.default_guard()
        record = await self.permission_store.find_by_name(self.tenant_id, name, guard_name)
        return PermissionRead.model_validate(record)

    async def find_permission_by_id(self, permission_id: int, guard_name: Optional[str] = None) -> PermissionRead:
        guard_name = guard_name or self.default_guard()
        record = await self.permission_store.find_by_id(self.tenant_id, permission_id, guard_name)
        return PermissionRead.model_validate(record)

    async def find_or_create_permission(self, name: str, guard_name: Optional[str] = None) -> PermissionRead:
        guard_name = guard_name or self.default_guard()
        self._check_name(name)
        record = await self.permission_store.find_or_create(self.tenant_id, name, guard_name)
        self._touch(guard_name)
        return PermissionRead.model_validate(record)

    def _check_name(self, name: str) -> None:
        # A stored name the matcher cannot split would fail every wildcard check in its guard
        if self.settings.wildcard_enabled:
            self.matcher.split(name)

    async def delete_permission(self, permission: RefLike) -> bool:
        target = await self.resolve_permission(permission)
        deleted = await self.permission_store.delete(self.tenant_id, target.id)
        self._touch(target.guard_name)
        logger.info(
            "Permission deleted",
            extra={"permission": target.name, "guard_name": target.guard_name},
        )
        return deleted

    async def list_permissions(self, guard_name: Optional[str] = None) -> List[PermissionRead]:
        records = await self.permission_store.list(self.tenant_id, guard_name)
        return [PermissionRead.model_validate(p) for p in records]
