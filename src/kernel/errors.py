"""
Authorization error taxonomy.

Every error is a recoverable signal for the caller. The HTTP status is
carried on the exception so the API layer can translate it without a
lookup table.
"""

from __future__ import annotations

from typing import Iterable, List, Optional


class AuthorizationError(Exception):
    """Base error for expected authorization failures."""

    http_status = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(AuthorizationError):
    http_status = 404


class RoleDoesNotExist(NotFound):
    @classmethod
    def named(cls, name: str, guard_name: Optional[str] = None) -> "RoleDoesNotExist":
        suffix = f" for guard `{guard_name}`" if guard_name else ""
        return cls(f"There is no role named `{name}`{suffix}.")

    @classmethod
    def with_id(cls, role_id: int, guard_name: Optional[str] = None) -> "RoleDoesNotExist":
        suffix = f" for guard `{guard_name}`" if guard_name else ""
        return cls(f"There is no role with id `{role_id}`{suffix}.")


class PermissionDoesNotExist(NotFound):
    @classmethod
    def create(cls, name: str, guard_name: Optional[str] = None) -> "PermissionDoesNotExist":
        suffix = f" for guard `{guard_name}`" if guard_name else ""
        return cls(f"There is no permission named `{name}`{suffix}.")

    @classmethod
    def with_id(cls, permission_id: int, guard_name: Optional[str] = None) -> "PermissionDoesNotExist":
        suffix = f" for guard `{guard_name}`" if guard_name else ""
        return cls(f"There is no permission with id `{permission_id}`{suffix}.")


class AlreadyExists(AuthorizationError):
    http_status = 409


class RoleAlreadyExists(AlreadyExists):
    @classmethod
    def create(cls, name: str, guard_name: str) -> "RoleAlreadyExists":
        return cls(f"A role `{name}` already exists for guard `{guard_name}`.")


class PermissionAlreadyExists(AlreadyExists):
    @classmethod
    def create(cls, name: str, guard_name: str) -> "PermissionAlreadyExists":
        return cls(f"A `{name}` permission already exists for guard `{guard_name}`.")


class GuardMismatch(AuthorizationError):
    http_status = 422

    def __init__(self, message: str, given: str = "", expected: Optional[List[str]] = None):
        super().__init__(message)
        self.given = given
        self.expected = expected or []

    @classmethod
    def create(cls, given: str, expected: Iterable[str]) -> "GuardMismatch":
        expected = list(expected)
        return cls(
            f"The given role or permission should use guard `{', '.join(expected)}` "
            f"instead of `{given}`.",
            given=given,
            expected=expected,
        )


class Unauthenticated(AuthorizationError):
    http_status = 401

    def __init__(self, message: str = "User is not logged in."):
        super().__init__(message)


class Forbidden(AuthorizationError):
    http_status = 403

    def __init__(self, message: str, required_permissions: Optional[List[str]] = None):
        super().__init__(message)
        self.required_permissions = required_permissions or []

    @classmethod
    def for_permissions(cls, permissions: Iterable[str]) -> "Forbidden":
        permissions = list(permissions)
        return cls(
            "User does not have the right permissions. "
            f"Necessary permissions are {', '.join(permissions)}",
            required_permissions=permissions,
        )


class InvalidWildcardPattern(AuthorizationError):
    http_status = 422

    @classmethod
    def empty(cls, pattern: str) -> "InvalidWildcardPattern":
        return cls(f"Wildcard permission `{pattern}` is not properly formatted.")
