"""Tenant guard: actor identity, role gates and organization scoping.

Every service call receives the acting principal explicitly as an
:class:`Actor`. Nothing here touches the database; the checks are pure
functions of the actor and the organization id of the resource.
"""

from dataclasses import dataclass
from enum import Enum

from compliance_engine.common.exceptions import AccessDeniedError, ForbiddenError


class UserRole(str, Enum):
    SUPER_ADMIN = "super_admin"
    ORGANIZATION_ADMIN = "organization_admin"
    MANAGER = "manager"
    CREATOR = "creator"
    VIEWER = "viewer"


@dataclass(frozen=True)
class Actor:
    """The authenticated principal performing an operation."""
    user_id: str | None
    organization_id: str | None
    role: UserRole

    @property
    def is_super_admin(self) -> bool:
        return self.role == UserRole.SUPER_ADMIN

    @classmethod
    def system(cls) -> "Actor":
        """Actor used by CLI and maintenance tasks."""
        return cls(user_id=None, organization_id=None, role=UserRole.SUPER_ADMIN)


@dataclass(frozen=True)
class ClientContext:
    """Request origin recorded on audit entries."""
    ip_address: str = "Unknown"
    user_agent: str = "Unknown"


def is_allowed(actor: Actor, resource_organization_id: str | None) -> bool:
    if actor.is_super_admin:
        return True
    return (
        actor.organization_id is not None
        and actor.organization_id == resource_organization_id
    )


def authorize(actor: Actor, resource_organization_id: str | None) -> None:
    """Raise AccessDeniedError unless the actor may touch the organization."""
    if not is_allowed(actor, resource_organization_id):
        raise AccessDeniedError()


def require_role(actor: Actor, *roles: UserRole) -> None:
    if actor.role not in roles:
        allowed = ", ".join(r.value for r in roles)
        raise ForbiddenError(f"Requires one of roles: {allowed}")


def scoped_organization(actor: Actor, requested: str | None = None) -> str | None:
    """Organization filter a read query must apply.

    Super-admins get their requested filter (None means all organizations);
    everyone else is pinned to their own organization.
    """
    if actor.is_super_admin:
        return requested
    if actor.organization_id is None:
        raise AccessDeniedError("Actor is not a member of any organization")
    return actor.organization_id
