"""
Official account bootstrap.

The official account authors every system message. Its identity comes from
configuration and is injected into the chat and review services; this module
makes sure the backing user row exists.
"""

import secrets
import uuid
from dataclasses import dataclass
from typing import Optional

import structlog
from fastapi.concurrency import run_in_threadpool
from sqlalchemy import select, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from tripdesk.core import security
from tripdesk.core.config import settings
from tripdesk.models.user import User

logger = structlog.get_logger()


@dataclass(frozen=True)
class OfficialIdentity:
    id: uuid.UUID
    username: str
    full_name: str
    email: str
    profile_pic: Optional[str] = None

    @classmethod
    def from_settings(cls) -> "OfficialIdentity":
        return cls(
            id=uuid.UUID(settings.OFFICIAL_USER_ID),
            username=settings.OFFICIAL_USERNAME,
            full_name=settings.OFFICIAL_FULL_NAME,
            email=settings.OFFICIAL_EMAIL,
            profile_pic=settings.OFFICIAL_PROFILE_PIC,
        )

    @classmethod
    def from_user(cls, user: User) -> "OfficialIdentity":
        return cls(
            id=user.id,
            username=user.username,
            full_name=user.full_name,
            email=user.email,
            profile_pic=user.profile_pic,
        )


class OfficialIdentityResolver:
    def __init__(self, session: AsyncSession, configured: Optional[OfficialIdentity] = None):
        self.session = session
        self.configured = configured or OfficialIdentity.from_settings()

    async def _find_existing(self) -> Optional[User]:
        user = await self.session.get(User, self.configured.id)
        if user:
            return user

        stmt = select(User).where(
            or_(User.email == self.configured.email, User.username == self.configured.username)
        ).limit(1)
        result = await self.session.execute(stmt)
        user = result.scalar_one_or_none()
        if user:
            logger.warning("official_user_found_by_lookup", user_id=str(user.id))
        return user

    async def _create(self) -> User:
        # Random credential, never used for login
        password_hash = await run_in_threadpool(security.get_password_hash, secrets.token_urlsafe(32))
        user = User(
            id=self.configured.id,
            username=self.configured.username,
            full_name=self.configured.full_name,
            email=self.configured.email,
            password_hash=password_hash,
            profile_pic=self.configured.profile_pic,
            bio="Official support account",
            is_verified=True,
            is_active=True,
            is_official=True,
        )
        self.session.add(user)
        await self.session.commit()
        logger.info("official_user_created", user_id=str(user.id))
        return user

    async def ensure(self) -> Optional[OfficialIdentity]:
        """
        Find or create the official account. Never raises: a failure is
        logged and None is returned.
        """
        try:
            user = await self._find_existing()
            if user is None:
                try:
                    user = await self._create()
                except IntegrityError:
                    # Another request created it first
                    await self.session.rollback()
                    logger.debug("official_user_already_exists")
                    user = await self._find_existing()
                    if user is None:
                        raise

            if self.configured.profile_pic and user.profile_pic != self.configured.profile_pic:
                user.profile_pic = self.configured.profile_pic
                await self.session.commit()
                logger.info("official_user_avatar_refreshed", user_id=str(user.id))

            return OfficialIdentity.from_user(user)
        except Exception as e:
            await self.session.rollback()
            logger.error("official_user_bootstrap_failed", error=str(e))
            return None
