"""
Seed script to populate the permission catalog and default role grants.

Run this script after database initialization to create:
- The permission catalog (every module x action, plus extra stored actions)
- Default role grants, by applying each role's template

Catalog changes are deployment-time only: restart the API afterwards so it
reloads the catalog.

Usage:
    uv run python -m scripts.seed_permissions
"""
import asyncio
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.core import config
from app.core.database.engine import AsyncSessionLocal, init_db, is_sqlite
from app.features.permissions.defaults import DEFAULT_ROLE_TEMPLATES, default_permissions
from app.features.permissions.models import Permission, RolePermission
from app.features.permissions.service import build_permission_service
from app.utils import get_logger


log = get_logger(__name__)


async def seed_permissions(db: AsyncSession) -> int:
    """
    Create missing catalog rows.

    Returns:
        Number of permissions created
    """
    log.info("Creating default permissions...")
    created = 0

    for key, description in default_permissions():
        stmt = select(Permission).where(Permission.module == key.module, Permission.action == key.action)
        existing = (await db.execute(stmt)).scalars().first()

        if existing:
            log.debug(f"Permission '{key}' already exists, skipping")
            continue

        db.add(Permission(module=key.module, action=key.action, description=description))
        created += 1
        log.info(f"Created permission: {key}")

    await db.commit()
    log.info(f"Created {created} permissions")
    return created


async def role_has_grants(db: AsyncSession, role: str) -> bool:
    stmt = select(func.count()).select_from(RolePermission).where(RolePermission.role == role)
    return ((await db.execute(stmt)).scalar() or 0) > 0


async def seed_roles() -> bool:
    """
    Apply the default template to every role that has no grants yet.

    Returns:
        True when every template write succeeded
    """
    log.info("Applying default role templates...")
    service = await build_permission_service(
        AsyncSessionLocal,
        serialize_writes=is_sqlite(config.SQLALCHEMY_DATABASE_URL),
    )
    ok = True

    for role, template in DEFAULT_ROLE_TEMPLATES.items():
        async with AsyncSessionLocal() as db:
            if await role_has_grants(db, role):
                log.debug(f"Role '{role}' already has grants, skipping")
                continue

        report = await service.apply_template(role, template)
        for failure in report.failed:
            log.error(f"Role '{role}': could not store {failure.key}: {failure.error}")
            ok = False
        log.info(f"Role '{role}': {len(report.succeeded)} grants written from '{template}' template")

    return ok


async def main():
    """Main function to seed the catalog and role grants."""
    log.info("Starting permission seeding...")

    # Initialize database tables first
    log.info("Initializing database tables...")
    await init_db()

    async with AsyncSessionLocal() as db:
        try:
            await seed_permissions(db)
        except Exception as e:
            log.error(f"Error seeding permissions: {e}", exc_info=True)
            await db.rollback()
            raise

    if await seed_roles():
        log.info("Permission seeding completed successfully!")
    else:
        log.warning("Permission seeding finished with failures; re-apply the template for those roles via POST /permissions/roles/{role}/template")
        raise SystemExit(1)


if __name__ == "__main__":
    asyncio.run(main())
