"""Unit tests for wildcard permission matching."""

import pytest

from src.kernel.errors import InvalidWildcardPattern
from src.kernel.wildcard import WildcardMatcher


@pytest.fixture
def matcher() -> WildcardMatcher:
    return WildcardMatcher()


class TestWildcardMatcher:
    """Tests for WildcardMatcher.matches."""

    def test_exact_name_matches_itself(self, matcher):
        assert matcher.matches("posts.edit", "posts.edit") is True

    def test_different_name_does_not_match(self, matcher):
        assert matcher.matches("posts.edit", "posts.delete") is False

    def test_trailing_wildcard_matches_one_segment(self, matcher):
        assert matcher.matches("posts.*", "posts.edit") is True

    def test_trailing_wildcard_matches_deeper_segments(self, matcher):
        assert matcher.matches("posts.*", "posts.edit.own") is True

    def test_trailing_wildcard_requires_a_segment(self, matcher):
        """posts.* does not cover the bare prefix."""
        assert matcher.matches("posts.*", "posts") is False

    def test_wildcard_does_not_cross_prefix(self, matcher):
        assert matcher.matches("posts.*", "comments.edit") is False

    def test_inner_wildcard_matches_exactly_one_segment(self, matcher):
        assert matcher.matches("posts.*.own", "posts.edit.own") is True
        assert matcher.matches("posts.*.own", "posts.edit.all") is False
        assert matcher.matches("posts.*.own", "posts.edit.draft.own") is False

    def test_lone_wildcard_matches_everything(self, matcher):
        assert matcher.matches("*", "posts") is True
        assert matcher.matches("*", "posts.edit.own") is True

    def test_shorter_pattern_without_wildcard_does_not_match(self, matcher):
        assert matcher.matches("posts", "posts.edit") is False

    def test_longer_pattern_does_not_match(self, matcher):
        assert matcher.matches("posts.edit.own", "posts.edit") is False

    def test_matching_is_case_sensitive(self, matcher):
        assert matcher.matches("Posts.*", "posts.edit") is False

    def test_literal_asterisk_in_request_is_just_a_segment(self, matcher):
        assert matcher.matches("posts.*", "posts.*") is True
        assert matcher.matches("posts.edit", "posts.*") is False

    def test_matches_any(self, matcher):
        granted = ["comments.view", "posts.*"]
        assert matcher.matches_any(granted, "posts.publish") is True
        assert matcher.matches_any(granted, "users.invite") is False

    def test_matches_any_with_nothing_granted(self, matcher):
        assert matcher.matches_any([], "posts.edit") is False


class TestWildcardValidation:
    """Malformed names are rejected, not silently unmatched."""

    @pytest.mark.parametrize("pattern", ["", "   ", "posts.", ".posts", "posts..edit"])
    def test_empty_segments_rejected(self, matcher, pattern):
        with pytest.raises(InvalidWildcardPattern):
            matcher.split(pattern)

    def test_malformed_granted_pattern_raises_on_match(self, matcher):
        with pytest.raises(InvalidWildcardPattern):
            matcher.matches("posts..*", "posts.edit")

    def test_error_carries_pattern(self, matcher):
        with pytest.raises(InvalidWildcardPattern) as exc_info:
            matcher.split("posts.")
        assert "posts." in exc_info.value.message
        assert exc_info.value.http_status == 422


class TestCustomSeparator:
    """Separator and wildcard token are configurable."""

    def test_colon_separator(self):
        matcher = WildcardMatcher(separator=":")
        assert matcher.matches("posts:*", "posts:edit") is True
        assert matcher.matches("posts:*", "posts.edit") is False

    def test_pipe_separator(self):
        matcher = WildcardMatcher(separator="|")
        assert matcher.matches("posts|*", "posts|edit") is True
        assert matcher.matches("posts|*|own", "posts|edit|own") is True
        assert matcher.matches("posts|*", "posts.edit") is False

    def test_custom_wildcard_token(self):
        matcher = WildcardMatcher(wildcard="%")
        assert matcher.matches("posts.%", "posts.edit") is True
        assert matcher.matches("posts.*", "posts.edit") is False

    def test_empty_separator_rejected(self):
        with pytest.raises(ValueError):
            WildcardMatcher(separator="")
