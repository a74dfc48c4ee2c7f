"""
Identity Core - principals and authentication context.
"""

from src.kernel.identity.principal import AuthContext, Principal

__all__ = [
    "AuthContext",
    "Principal",
]
