"""
References to roles and permissions.

Callers may name a role or permission by name, by id, or hand over an
already loaded record. ``to_ref`` turns any of those into one of three
tagged variants so the engine resolves them in a single place.
"""

from dataclasses import dataclass
from typing import Iterable, List, Union

from src.kernel.models import Permission, Role
from src.schemas.rbac import PermissionRead, RoleRead


@dataclass(frozen=True)
class ByName:
    name: str


@dataclass(frozen=True)
class ById:
    id: int


@dataclass(frozen=True)
class Resolved:
    record: Union[RoleRead, PermissionRead]


Ref = Union[ByName, ById, Resolved]
RefLike = Union[Ref, str, int, Role, Permission, RoleRead, PermissionRead]


def to_ref(value: RefLike) -> Ref:
    """Coerce a plain value into a tagged reference."""
    if isinstance(value, (ByName, ById, Resolved)):
        return value
    if isinstance(value, bool):
        raise TypeError("A boolean is not a role or permission reference")
    if isinstance(value, str):
        return ByName(value)
    if isinstance(value, int):
        return ById(value)
    if isinstance(value, Role):
        return Resolved(RoleRead.model_validate(value))
    if isinstance(value, Permission):
        return Resolved(PermissionRead.model_validate(value))
    if isinstance(value, (RoleRead, PermissionRead)):
        return Resolved(value)
    raise TypeError(f"Unsupported reference type: {type(value).__name__}")


def flatten(values: Iterable) -> List:
    """Flatten nested lists/tuples/sets of references one level at a time."""
    flat: List = []
    for value in values:
        if isinstance(value, (list, tuple, set, frozenset)):
            flat.extend(flatten(value))
        else:
            flat.append(value)
    return flat

