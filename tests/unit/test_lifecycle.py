"""Tests for the post status transition table."""

import itertools

import pytest

from compliance_engine.common.exceptions import InvalidStateError, InvalidTransitionError
from compliance_engine.posts.lifecycle import (
    ALLOWED_TRANSITIONS,
    can_transition,
    validate_transition,
)
from compliance_engine.posts.models import PostStatus


EXPECTED = {
    ("draft", "pending_approval"),
    ("draft", "archived"),
    ("pending_approval", "approved"),
    ("pending_approval", "rejected"),
    ("pending_approval", "draft"),
    ("approved", "published"),
    ("approved", "draft"),
    ("rejected", "draft"),
    ("published", "archived"),
    ("archived", "draft"),
}

ALL_PAIRS = list(itertools.product([s.value for s in PostStatus], repeat=2))


class TestTransitionTable:
    def test_table_covers_every_status(self):
        assert set(ALLOWED_TRANSITIONS) == set(PostStatus)

    @pytest.mark.parametrize("current,target", ALL_PAIRS)
    def test_exhaustive_pairs(self, current, target):
        assert can_transition(current, target) is ((current, target) in EXPECTED)

    @pytest.mark.parametrize("current,target", sorted(EXPECTED))
    def test_allowed_returns_target(self, current, target):
        assert validate_transition(current, target) == PostStatus(target)

    @pytest.mark.parametrize("status", [s.value for s in PostStatus])
    def test_self_transition_rejected(self, status):
        with pytest.raises(InvalidTransitionError) as exc:
            validate_transition(status, status)
        assert exc.value.from_status == status
        assert exc.value.to_status == status

    def test_error_names_both_states(self):
        with pytest.raises(InvalidTransitionError) as exc:
            validate_transition(PostStatus.DRAFT, PostStatus.PUBLISHED)
        assert "draft" in exc.value.message
        assert "published" in exc.value.message
        assert exc.value.code == "INVALID_TRANSITION"
        assert isinstance(exc.value, InvalidStateError)

    def test_accepts_enum_and_string_mix(self):
        assert validate_transition("approved", PostStatus.PUBLISHED) is PostStatus.PUBLISHED

    def test_unknown_status_is_invalid(self):
        assert can_transition("draft", "deleted") is False
        with pytest.raises(InvalidTransitionError):
            validate_transition("deleted", "draft")
