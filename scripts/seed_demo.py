#!/usr/bin/env python3
"""Seed the database with a demo organization, its users and a sample post.

Usage:
    python -m scripts.seed_demo
    # or from project root:
    python scripts/seed_demo.py
"""

import asyncio
import sys
from pathlib import Path

# Ensure project root is on path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "src"))

from compliance_engine.audit.service import AuditService
from compliance_engine.common.config import get_settings
from compliance_engine.common.database import DatabaseManager
from compliance_engine.common.tenancy import Actor, UserRole
from compliance_engine.organizations.service import OrganizationService
from compliance_engine.posts.service import PostService
from compliance_engine.users.service import UserService

DEMO_SLUG = "demo"
DEMO_PASSWORD = "demo-password-123"

DEMO_USERS = [
    ("admin@demo.example.com", "Ada", UserRole.ORGANIZATION_ADMIN),
    ("manager@demo.example.com", "Grace", UserRole.MANAGER),
    ("reviewer@demo.example.com", "Linus", UserRole.MANAGER),
    ("creator@demo.example.com", "Margaret", UserRole.CREATOR),
    ("viewer@demo.example.com", "Alan", UserRole.VIEWER),
]


async def seed_demo() -> None:
    settings = get_settings()
    db = DatabaseManager(settings)
    await db.init()
    await db.create_all()

    audit = AuditService(settings)
    orgs = OrganizationService(settings, audit_service=audit)
    users = UserService(settings, audit_service=audit)
    posts = PostService(settings, audit_service=audit)
    system = Actor.system()

    async with db.get_session() as session:
        existing = [o for o in await orgs.list_organizations(session, system, True)
                    if o.slug == DEMO_SLUG]
        if existing:
            print(f"  [skip] organization '{DEMO_SLUG}' already exists")
            await db.close()
            return

        org = await orgs.create_organization(
            session, "Demo Brand", DEMO_SLUG, system,
            description="Sample tenant for local development",
        )
        print(f"  [created] organization {org.slug} ({org.id})")

        creator = None
        for email, first_name, role in DEMO_USERS:
            user = await users.create_user(
                session, email, DEMO_PASSWORD, first_name, system,
                role=role, organization_id=org.id,
            )
            if role == UserRole.CREATOR:
                creator = user
            print(f"  [created] {role.value:<20} {email}")

        post = await posts.create_post(
            session, "Welcome post", "Hello from the demo brand!",
            Actor(creator.id, org.id, UserRole.CREATOR),
            platform="linkedin",
        )
        print(f"  [created] draft post {post.id}")

    await db.close()
    print(f"\nDone. Log in with any demo user and password '{DEMO_PASSWORD}'.")


if __name__ == "__main__":
    asyncio.run(seed_demo())
