"""Dependency injection singletons for Compliance-Engine."""

from compliance_engine.common.config import get_settings
from compliance_engine.common.database import DatabaseManager
from compliance_engine.approvals.service import ApprovalService
from compliance_engine.assets.service import AssetService
from compliance_engine.assets.storage import StorageBackend, create_storage_backend
from compliance_engine.audit.service import AuditService
from compliance_engine.organizations.service import OrganizationService
from compliance_engine.posts.service import PostService
from compliance_engine.users.service import UserService

_db: DatabaseManager | None = None
_audit: AuditService | None = None
_organizations: OrganizationService | None = None
_users: UserService | None = None
_posts: PostService | None = None
_approvals: ApprovalService | None = None
_storage: StorageBackend | None = None
_assets: AssetService | None = None


def get_db() -> DatabaseManager:
    global _db
    if _db is None:
        _db = DatabaseManager(get_settings())
    return _db


def get_audit_service() -> AuditService:
    global _audit
    if _audit is None:
        _audit = AuditService(get_settings())
    return _audit


def get_organization_service() -> OrganizationService:
    global _organizations
    if _organizations is None:
        _organizations = OrganizationService(
            get_settings(), audit_service=get_audit_service(),
        )
    return _organizations


def get_user_service() -> UserService:
    global _users
    if _users is None:
        _users = UserService(get_settings(), audit_service=get_audit_service())
    return _users


def get_post_service() -> PostService:
    global _posts
    if _posts is None:
        _posts = PostService(get_settings(), audit_service=get_audit_service())
    return _posts


def get_approval_service() -> ApprovalService:
    global _approvals
    if _approvals is None:
        _approvals = ApprovalService(get_settings(), audit_service=get_audit_service())
    return _approvals


def get_storage_backend() -> StorageBackend:
    global _storage
    if _storage is None:
        _storage = create_storage_backend(get_settings())
    return _storage


def get_asset_service() -> AssetService:
    global _assets
    if _assets is None:
        _assets = AssetService(
            get_settings(), get_storage_backend(),
            audit_service=get_audit_service(),
        )
    return _assets


def reset_singletons() -> None:
    """Reset all singletons (for testing)."""
    global _db, _audit, _organizations, _users, _posts, _approvals, _storage, _assets
    _db = None
    _audit = None
    _organizations = None
    _users = None
    _posts = None
    _approvals = None
    _storage = None
    _assets = None
