"""
Process-wide permission catalog cache.

One entry per (tenant_id, guard_name) scope, holding every permission and
role of the scope and which permissions each role carries. Entries are
loaded lazily and dropped on any write to the scope; there is no expiry.
"""

import threading
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Awaitable, Callable, Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple

from src.logging_config import get_logger
from src.schemas.rbac import PermissionRead, RoleRead

logger = get_logger(__name__)

ScopeKey = Tuple[str, str]


@dataclass(frozen=True)
class PermissionCatalog:
    """Immutable snapshot of one tenant/guard scope."""

    tenant_id: str
    guard_name: str
    permissions: Mapping[int, PermissionRead] = field(default_factory=dict)
    roles: Mapping[int, RoleRead] = field(default_factory=dict)
    role_permissions: Mapping[int, FrozenSet[int]] = field(default_factory=dict)

    @classmethod
    def build(
        cls,
        tenant_id: str,
        guard_name: str,
        permissions: Iterable[PermissionRead],
        roles: Iterable[RoleRead],
        grants: Iterable[Tuple[int, int]],
    ) -> "PermissionCatalog":
        """Assemble a catalog from loaded rows; grants are (role_id, permission_id)."""
        by_role: Dict[int, set] = {}
        for role_id, permission_id in grants:
            by_role.setdefault(role_id, set()).add(permission_id)
        return cls(
            tenant_id=tenant_id,
            guard_name=guard_name,
            permissions={p.id: p for p in permissions},
            roles={r.id: r for r in roles},
            role_permissions={role_id: frozenset(ids) for role_id, ids in by_role.items()},
        )

    def permission_by_name(self, name: str) -> Optional[PermissionRead]:
        for permission in self.permissions.values():
            if permission.name == name:
                return permission
        return None

    def role_by_name(self, name: str) -> Optional[RoleRead]:
        for role in self.roles.values():
            if role.name == name:
                return role
        return None

    def permissions_for_roles(self, role_ids: Iterable[int]) -> FrozenSet[int]:
        ids: set = set()
        for role_id in role_ids:
            ids.update(self.role_permissions.get(role_id, ()))
        return frozenset(ids)


CatalogLoader = Callable[[], Awaitable[PermissionCatalog]]


class PermissionCache:
    """
    Thread-safe map of scope -> PermissionCatalog.

    Every scope with a load in flight has a generation number, bumped by
    invalidation. A load records the generation it started under and only
    stores its result if no invalidation happened meanwhile, so a slow
    reader can never put a pre-mutation catalog back after the writer
    dropped it. A scope's generation is dropped when its last load
    finishes.
    """

    def __init__(self):
        self._entries: Dict[ScopeKey, PermissionCatalog] = {}
        self._generations: Dict[ScopeKey, int] = {}
        self._loading: Dict[ScopeKey, int] = {}
        self._lock = threading.Lock()
        self._stats = {"hits": 0, "misses": 0, "invalidations": 0, "discarded_loads": 0}

    @staticmethod
    def key(tenant_id: str, guard_name: str) -> ScopeKey:
        return (str(tenant_id), guard_name)

    def peek(self, tenant_id: str, guard_name: str) -> Optional[PermissionCatalog]:
        """Return the cached catalog without loading."""
        with self._lock:
            return self._entries.get(self.key(tenant_id, guard_name))

    async def get_or_load(
        self,
        tenant_id: str,
        guard_name: str,
        loader: CatalogLoader,
    ) -> PermissionCatalog:
        scope = self.key(tenant_id, guard_name)
        with self._lock:
            catalog = self._entries.get(scope)
            if catalog is not None:
                self._stats["hits"] += 1
                return catalog
            self._stats["misses"] += 1
            generation = self._generations.setdefault(scope, 0)
            self._loading[scope] = self._loading.get(scope, 0) + 1

        try:
            catalog = await loader()
            with self._lock:
                if self._generations[scope] == generation:
                    self._entries[scope] = catalog
                else:
                    self._stats["discarded_loads"] += 1
                    logger.debug(
                        "Discarded catalog loaded before invalidation",
                        extra={"tenant_id": scope[0], "guard_name": scope[1]},
                    )
            return catalog
        finally:
            with self._lock:
                self._loading[scope] -= 1
                if not self._loading[scope]:
                    del self._loading[scope]
                    del self._generations[scope]

    def invalidate(self, tenant_id: str, guard_name: str) -> None:
        scope = self.key(tenant_id, guard_name)
        with self._lock:
            self._entries.pop(scope, None)
            if scope in self._generations:
                self._generations[scope] += 1
            self._stats["invalidations"] += 1
        logger.debug(
            "Permission cache invalidated",
            extra={"tenant_id": scope[0], "guard_name": scope[1]},
        )

    def invalidate_tenant(self, tenant_id: str) -> None:
        """Drop every guard scope of a tenant, cached or loading."""
        tenant_id = str(tenant_id)
        with self._lock:
            scopes = {scope for scope in self._entries if scope[0] == tenant_id}
            scopes.update(scope for scope in self._generations if scope[0] == tenant_id)
            for scope in scopes:
                self._entries.pop(scope, None)
                if scope in self._generations:
                    self._generations[scope] += 1
            self._stats["invalidations"] += len(scopes)

    def clear(self) -> None:
        with self._lock:
            for scope in self._generations:
                self._generations[scope] += 1
            self._entries.clear()

    def scopes(self) -> List[ScopeKey]:
        with self._lock:
            return list(self._entries)

    def stats(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._stats, entries=len(self._entries), loading=len(self._loading))


@lru_cache
def get_permission_cache() -> PermissionCache:
    """Get the process-wide cache instance."""
    return PermissionCache()
