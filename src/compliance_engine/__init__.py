"""Compliance-Engine: multi-tenant social content approval, licensing and audit."""

from compliance_engine.common.exceptions import ComplianceError
from compliance_engine.common.tenancy import Actor, ClientContext, UserRole
from compliance_engine.posts.lifecycle import ALLOWED_TRANSITIONS, validate_transition

__all__ = [
    "Actor",
    "ClientContext",
    "UserRole",
    "ComplianceError",
    "ALLOWED_TRANSITIONS",
    "validate_transition",
]
__version__ = "0.1.0"
