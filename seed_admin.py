"""
seed_admin.py
─────────────
Creates the first administrator and prints a bearer token for it.
Run ONCE after the migration:

    python seed_admin.py

Reads from .env - change SEED_ADMIN_* values there, or edit defaults below.
"""
import asyncio
import os
from dotenv import load_dotenv

load_dotenv()

# ── Change these in .env or edit here ────────────────────────────────
ADMIN_NAME  = os.getenv("SEED_ADMIN_NAME",  "Super Admin")
ADMIN_EMAIL = os.getenv("SEED_ADMIN_EMAIL", "admin@example.com")
# ─────────────────────────────────────────────────────────────────────


async def seed():
    from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
    from sqlalchemy import select
    from app.core.security import create_access_token
    from app.models.user import Role, User, UserRole

    engine  = create_async_engine(os.environ["DATABASE_URL"], echo=False)
    Session = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)

    async with Session() as db:
        # Idempotent: reuse the account, make sure it holds SUPER_ADMIN
        user = (await db.execute(
            select(User).where(User.email == ADMIN_EMAIL)
        )).scalar_one_or_none()

        created = user is None
        if created:
            user = User(name=ADMIN_NAME, email=ADMIN_EMAIL)
            db.add(user)
            await db.flush()

        if Role.SUPER_ADMIN.value not in user.role_names:
            db.add(UserRole(user_id=user.id, role=Role.SUPER_ADMIN.value))

        await db.commit()
        await db.refresh(user)
        user_id, roles = user.id, sorted(user.role_names)

    await engine.dispose()

    print("\n✅  Admin created successfully!" if created else f"\n⚠️  Admin already exists: {ADMIN_EMAIL}")
    print(f"    ID    : {user_id}")
    print(f"    Email : {ADMIN_EMAIL}")
    print(f"    Roles : {', '.join(roles)}")
    print()
    print("🔑  Bearer token:")
    print(f"    {create_access_token(user_id, roles=roles)}")


if __name__ == "__main__":
    asyncio.run(seed())
