"""
Principals and the authentication context handed to the authorization engine.
"""

from dataclasses import dataclass
from typing import Optional, Union

from src.kernel.errors import Unauthenticated


@dataclass(frozen=True)
class Principal:
    """
    An actor that can hold roles and permissions.

    ``type`` decides the guard(s) the principal belongs to; ``id`` is opaque
    and stored as a string; ``tenant_id`` is the isolation boundary used
    when the principal is the authenticated one.
    """

    type: str
    id: Union[str, int]
    tenant_id: Optional[Union[str, int]] = None

    @property
    def key(self) -> str:
        return str(self.id)

    def __str__(self) -> str:
        return f"{self.type}:{self.id}"


@dataclass(frozen=True)
class AuthContext:
    """Request-scoped authentication state."""

    principal: Optional[Principal] = None

    @property
    def is_authenticated(self) -> bool:
        return self.principal is not None

    def current_principal(self) -> Principal:
        """Return the authenticated principal or raise Unauthenticated."""
        if self.principal is None:
            raise Unauthenticated()
        return self.principal
