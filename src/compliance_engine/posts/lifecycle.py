"""Post status transition table.

Every status change, whether requested by a user or cascaded from an
approval workflow, goes through :func:`validate_transition`.
"""

from compliance_engine.common.exceptions import InvalidTransitionError
from compliance_engine.posts.models import PostStatus

ALLOWED_TRANSITIONS: dict[PostStatus, frozenset[PostStatus]] = {
    PostStatus.DRAFT: frozenset({PostStatus.PENDING_APPROVAL, PostStatus.ARCHIVED}),
    PostStatus.PENDING_APPROVAL: frozenset({
        PostStatus.APPROVED, PostStatus.REJECTED, PostStatus.DRAFT,
    }),
    PostStatus.APPROVED: frozenset({PostStatus.PUBLISHED, PostStatus.DRAFT}),
    PostStatus.REJECTED: frozenset({PostStatus.DRAFT}),
    PostStatus.PUBLISHED: frozenset({PostStatus.ARCHIVED}),
    PostStatus.ARCHIVED: frozenset({PostStatus.DRAFT}),
}


def can_transition(current: PostStatus | str, target: PostStatus | str) -> bool:
    try:
        current, target = PostStatus(current), PostStatus(target)
    except ValueError:
        return False
    return target in ALLOWED_TRANSITIONS[current]


def validate_transition(current: PostStatus | str, target: PostStatus | str) -> PostStatus:
    """Return the target status, or raise InvalidTransitionError. Self-transitions are rejected."""
    if not can_transition(current, target):
        raise InvalidTransitionError(
            getattr(current, "value", current), getattr(target, "value", target),
        )
    return PostStatus(target)
