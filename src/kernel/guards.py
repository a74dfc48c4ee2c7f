"""
Guard resolution between principal types and guard names.
"""

from typing import List, Optional

from src.config import Settings


class GuardResolver:
    """
    Maps principal types to the guards that authenticate them.

    The mapping comes from ``Settings.guards`` (guard name -> principal
    type). A type may be served by several guards.
    """

    def __init__(self, settings: Settings):
        self.settings = settings

    def get_names(self, principal_type: str) -> List[str]:
        """All guard names configured for a principal type, in config order."""
        return [
            guard_name
            for guard_name, model_type in self.settings.guards.items()
            if model_type == principal_type
        ]

    def get_default_name(self, principal_type: str) -> str:
        """
        Guard used when a caller does not name one.

        The system default wins when it serves the type; otherwise the first
        guard configured for the type; unconfigured types fall back to the
        system default.
        """
        names = self.get_names(principal_type)
        if self.settings.default_guard in names:
            return self.settings.default_guard
        if names:
            return names[0]
        return self.settings.default_guard

    def get_model_for_guard(self, guard_name: str) -> Optional[str]:
        """Principal type authenticated by a guard, or None if unknown."""
        return self.settings.guards.get(guard_name)

    def guard_names_for(self, principal_type: str) -> List[str]:
        """Guard names a principal may use; never empty."""
        return self.get_names(principal_type) or [self.get_default_name(principal_type)]
