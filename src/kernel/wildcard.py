"""
Wildcard permission matching.

Permission names are split into segments on a separator (``.`` by
default). A granted pattern matches a requested name when every granted
segment is either equal to the requested segment or the wildcard token.
A wildcard in the last granted position swallows one or more remaining
requested segments; anywhere else it stands for exactly one segment.
Matching is case-sensitive and a granted pattern shorter than the request
without a trailing wildcard does not match.

    posts.*        matches posts.edit, posts.edit.own
    posts.*        does not match posts, comments.edit
    posts.*.own    matches posts.edit.own, not posts.edit.all

The separator comes from ``wildcard_separator``. Setting it to ``|`` selects
the pipe form, where ``posts|*`` matches ``posts|edit``. Only one separator
is active at a time.
"""

from typing import Iterable, List, Sequence

from src.kernel.errors import InvalidWildcardPattern


class WildcardMatcher:
    """Segment-wise matcher for permission patterns."""

    def __init__(self, separator: str = ".", wildcard: str = "*"):
        if not separator:
            raise ValueError("separator must be a non-empty string")
        self.separator = separator
        self.wildcard = wildcard

    def split(self, pattern: str) -> List[str]:
        """Split a name into segments, rejecting empty names and segments."""
        if not pattern or not pattern.strip():
            raise InvalidWildcardPattern.empty(pattern)
        segments = pattern.split(self.separator)
        if any(segment == "" for segment in segments):
            raise InvalidWildcardPattern.empty(pattern)
        return segments

    def matches(self, granted: str, requested: str) -> bool:
        """True when the granted pattern covers the requested name."""
        return self._match_segments(self.split(granted), self.split(requested))

    def matches_any(self, granted: Iterable[str], requested: str) -> bool:
        requested_segments = self.split(requested)
        return any(
            self._match_segments(self.split(pattern), requested_segments)
            for pattern in granted
        )

    def _match_segments(self, granted: Sequence[str], requested: Sequence[str]) -> bool:
        last = len(granted) - 1
        for index, segment in enumerate(granted):
            if index >= len(requested):
                return False
            if segment == self.wildcard:
                if index == last:
                    return True
                continue
            if segment != requested[index]:
                return False
        return len(granted) == len(requested)
