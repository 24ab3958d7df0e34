"""
Seed script to create the super-admin account.

Run once with env set:
  SUPER_ADMIN_USERNAME=admin
  SUPER_ADMIN_PASSWORD=YourSecurePassword

  python -m tuitiondesk.db.seed_super_admin

Creates the tables if needed, then creates the SUPER_ADMIN user or, if the
username already exists, promotes it and resets its password.
"""
import asyncio

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tuitiondesk.auth.models import User
from tuitiondesk.auth.security import hash_password
from tuitiondesk.core.config import settings
from tuitiondesk.core.enums import UserRole
from tuitiondesk.db.session import AsyncSessionLocal, create_tables

DEFAULT_SUPER_ADMIN_FULL_NAME = "Super Admin"


async def seed_super_admin(db: AsyncSession) -> None:
    username = settings.super_admin_username.strip()
    password = settings.super_admin_password
    if not username or not password:
        print("SUPER_ADMIN_USERNAME / SUPER_ADMIN_PASSWORD not set; skipping super-admin user.")
        return

    stmt = select(User).where(func.lower(User.username) == username.lower())
    result = await db.execute(stmt)
    admin = result.scalar_one_or_none()
    if not admin:
        admin = User(
            username=username,
            password_hash=hash_password(password),
            role=UserRole.SUPER_ADMIN.value,
            full_name=DEFAULT_SUPER_ADMIN_FULL_NAME,
            is_active=True,
        )
        db.add(admin)
        print("Created SUPER_ADMIN user:", username)
    else:
        admin.role = UserRole.SUPER_ADMIN.value
        admin.password_hash = hash_password(password)
        admin.is_active = True
        print("Updated existing user to SUPER_ADMIN:", username)

    await db.commit()
    print("Super-admin seed done.")


async def main() -> None:
    await create_tables()
    async with AsyncSessionLocal() as db:
        try:
            await seed_super_admin(db)
        except Exception as e:
            await db.rollback()
            print("Error:", e)
            raise


if __name__ == "__main__":
    asyncio.run(main())
