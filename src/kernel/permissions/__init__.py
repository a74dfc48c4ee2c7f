"""
Permission Core - RBAC evaluation and assignment management.
"""

from src.kernel.permissions.authorization_engine import AuthorizationEngine
from src.kernel.permissions.refs import ById, ByName, Resolved, to_ref

__all__ = [
    "AuthorizationEngine",
    "ById",
    "ByName",
    "Resolved",
    "to_ref",
]
