"""Shared test fixtures for Compliance-Engine."""

import os
from dataclasses import dataclass

import pytest
from httpx import ASGITransport, AsyncClient

from compliance_engine.common.config import ComplianceSettings
from compliance_engine.common.database import DatabaseManager
from compliance_engine.common.tenancy import Actor, ClientContext, UserRole


GATEWAY_KEY = "test-gateway-key"
PASSWORD = "correct-horse-battery"


def make_settings(**overrides) -> ComplianceSettings:
    defaults = {
        "db_url": "sqlite+aiosqlite://",
        "gateway_key": GATEWAY_KEY,
        "bcrypt_rounds": 4,
    }
    defaults.update(overrides)
    return ComplianceSettings(**defaults)


@pytest.fixture
def settings(tmp_path):
    return make_settings(storage_local_path=str(tmp_path / "uploads"))


@pytest.fixture
async def db(settings):
    manager = DatabaseManager(settings)
    await manager.init()
    await manager.create_all()
    yield manager
    await manager.close()


@pytest.fixture
def ctx():
    return ClientContext(ip_address="203.0.113.7", user_agent="pytest")


# ── Services ──

@pytest.fixture
def audit_svc(settings):
    from compliance_engine.audit.service import AuditService
    return AuditService(settings)


@pytest.fixture
def org_svc(settings, audit_svc):
    from compliance_engine.organizations.service import OrganizationService
    return OrganizationService(settings, audit_service=audit_svc)


@pytest.fixture
def user_svc(settings, audit_svc):
    from compliance_engine.users.service import UserService
    return UserService(settings, audit_service=audit_svc)


@pytest.fixture
def post_svc(settings, audit_svc):
    from compliance_engine.posts.service import PostService
    return PostService(settings, audit_service=audit_svc)


@pytest.fixture
def approval_svc(settings, audit_svc):
    from compliance_engine.approvals.service import ApprovalService
    return ApprovalService(settings, audit_service=audit_svc)


@pytest.fixture
def storage(settings):
    from compliance_engine.assets.storage import LocalStorageBackend
    return LocalStorageBackend(settings.storage_local_path)


@pytest.fixture
def asset_svc(settings, storage, audit_svc):
    from compliance_engine.assets.service import AssetService
    return AssetService(settings, storage, audit_service=audit_svc)


# ── Seed data ──

@dataclass
class Tenant:
    organization_id: str
    admin: Actor
    manager: Actor
    creator: Actor
    approver_a: Actor
    approver_b: Actor
    viewer: Actor


def _actor(user, role: UserRole) -> Actor:
    return Actor(user_id=user.id, organization_id=user.organization_id, role=role)


async def seed_tenant(db, org_svc, user_svc, slug: str) -> Tenant:
    """Create an organization with one user per role used by the tests."""
    system = Actor.system()
    async with db.get_session() as session:
        org = await org_svc.create_organization(session, slug.title(), slug, system)
        users = {}
        for key, role in (
            ("admin", UserRole.ORGANIZATION_ADMIN),
            ("manager", UserRole.MANAGER),
            ("creator", UserRole.CREATOR),
            ("approver_a", UserRole.MANAGER),
            ("approver_b", UserRole.MANAGER),
            ("viewer", UserRole.VIEWER),
        ):
            user = await user_svc.create_user(
                session, f"{key}@{slug}.example.com", PASSWORD, key.title(), system,
                last_name=slug.title(), role=role, organization_id=org.id,
            )
            users[key] = _actor(user, role)
    return Tenant(organization_id=org.id, **users)


@pytest.fixture
async def tenant(db, org_svc, user_svc):
    return await seed_tenant(db, org_svc, user_svc, "acme")


@pytest.fixture
async def other_tenant(db, org_svc, user_svc):
    return await seed_tenant(db, org_svc, user_svc, "globex")


@pytest.fixture
def super_admin():
    return Actor(user_id="root-user", organization_id=None, role=UserRole.SUPER_ADMIN)


# ── HTTP ──

@pytest.fixture
def app(tmp_path):
    """Create a test app with in-memory DB and local storage."""
    os.environ["COMPLIANCE_DB_URL"] = "sqlite+aiosqlite://"
    os.environ["COMPLIANCE_GATEWAY_KEY"] = GATEWAY_KEY
    os.environ["COMPLIANCE_BCRYPT_ROUNDS"] = "4"
    os.environ["COMPLIANCE_STORAGE_BACKEND"] = "local"
    os.environ["COMPLIANCE_STORAGE_LOCAL_PATH"] = str(tmp_path / "uploads")

    # Clear caches and singletons so new env vars take effect
    from compliance_engine.common.config import get_settings
    get_settings.cache_clear()

    from compliance_engine.deps import reset_singletons
    reset_singletons()

    from compliance_engine.app import create_app
    return create_app()


@pytest.fixture
async def client(app):
    # Manually init DB since ASGITransport doesn't run lifespan
    from compliance_engine.deps import get_db
    db = get_db()
    await db.init()
    await db.create_all()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    await db.close()


@pytest.fixture
async def api_tenant(client):
    """Seed an organization and users through the live app's services."""
    from compliance_engine.deps import get_db, get_organization_service, get_user_service
    return await seed_tenant(get_db(), get_organization_service(), get_user_service(), "acme")


@pytest.fixture
async def api_other_tenant(client):
    from compliance_engine.deps import get_db, get_organization_service, get_user_service
    return await seed_tenant(get_db(), get_organization_service(), get_user_service(), "globex")


def headers_for(actor: Actor) -> dict[str, str]:
    return {
        "X-Gateway-Key": GATEWAY_KEY,
        "X-Actor-Id": actor.user_id or "",
        "X-Actor-Organization": actor.organization_id or "",
        "X-Actor-Role": actor.role.value,
    }


@pytest.fixture
def as_actor():
    return headers_for
