"""
Database seeding script for the RBAC catalog and the first super admin.

Creates the system permissions, dependencies and roles, then a super_admin
user for the phone number given on the command line (or SEED_ADMIN_PHONE).
Run after the database is set up but before first use:

    python -m welfare_admin.seed_rbac 9876543210
"""

import asyncio
import os
import sys

from sqlalchemy import select

from welfare_admin.app.db.session import AsyncSessionLocal, engine, init_models
from welfare_admin.app.main import app  # noqa: F401  registers every model
from welfare_admin.app.models.enums import UserRole
from welfare_admin.app.models.rbac import Role
from welfare_admin.app.models.user import User
from welfare_admin.app.services.rbac import RBACService


async def seed(phone: str):
    await init_models()

    async with AsyncSessionLocal() as db:
        print("🌱 Seeding RBAC catalog...")
        counts = await RBACService.initialize_system(db)
        print(f"✅ {counts['permissions_created']} permissions, {counts['roles_created']} roles created")

        result = await db.execute(select(User).where(User.phone == phone))
        admin = result.scalar_one_or_none()
        if admin:
            print(f"ℹ️  User {phone} already exists, skipping admin creation")
            return

        admin = User(
            phone=phone,
            name="Super Admin",
            role=UserRole.SUPER_ADMIN,
            is_active=True,
            is_verified=True,
        )
        db.add(admin)
        await db.commit()

        role = (await db.execute(select(Role).where(Role.name == UserRole.SUPER_ADMIN.value))).scalar_one()
        await RBACService.assign_role(db, admin.id, role.id, assigned_by=None, reason="Initial seed", is_primary=True)
        print(f"✅ Created super_admin user {phone} (log in with an OTP)")


async def main(phone: str):
    try:
        await seed(phone)
    finally:
        await engine.dispose()


if __name__ == "__main__":
    admin_phone = sys.argv[1] if len(sys.argv) > 1 else os.environ.get("SEED_ADMIN_PHONE")
    if not admin_phone:
        sys.exit("usage: python -m welfare_admin.seed_rbac <phone>")
    asyncio.run(main(admin_phone))
