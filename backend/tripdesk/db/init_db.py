import asyncio
import structlog
from fastapi.concurrency import run_in_threadpool
from sqlalchemy import select

from tripdesk.core import security
from tripdesk.core.config import settings
from tripdesk.core.logging import setup_logging
from tripdesk.db.base import Base
from tripdesk.db.session import engine, AsyncSessionLocal
# Trigger model registration
from tripdesk.models import Admin, AdminRole
from tripdesk.services.official_identity import OfficialIdentityResolver

logger = structlog.get_logger()


async def create_super_admin(session) -> None:
    if not settings.INIT_ADMIN_PASSWORD:
        logger.warning("super_admin_skipped", reason="INIT_ADMIN_PASSWORD not set")
        return

    result = await session.execute(select(Admin).where(Admin.email == settings.INIT_ADMIN_EMAIL))
    if result.scalar_one_or_none():
        logger.info("super_admin_exists", email=settings.INIT_ADMIN_EMAIL)
        return

    admin = Admin(
        email=settings.INIT_ADMIN_EMAIL,
        password_hash=await run_in_threadpool(security.get_password_hash, settings.INIT_ADMIN_PASSWORD),
        role=AdminRole.SUPER_ADMIN,
        is_active=True,
    )
    session.add(admin)
    await session.commit()
    logger.info("super_admin_created", email=settings.INIT_ADMIN_EMAIL)


async def main():
    logger.info("db_init_start")

    try:
        # Fail fast if the connection hangs
        async with asyncio.timeout(10):
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
    except TimeoutError:
        logger.error("db_init_timeout", message="Connection to database timed out after 10s. Check network/firewall/URL settings.")
        raise

    async with AsyncSessionLocal() as session:
        await create_super_admin(session)
        official = await OfficialIdentityResolver(session).ensure()
        if official is None:
            logger.error("official_user_bootstrap_incomplete")

    logger.info("db_init_complete")


if __name__ == "__main__":
    setup_logging()
    asyncio.run(main())
