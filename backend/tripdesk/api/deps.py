from typing import Optional
from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from pydantic import ValidationError

from tripdesk.db.session import get_db
from tripdesk.core import security
from tripdesk.core.config import settings
from tripdesk.core.errors import AuthenticationError, AuthorizationError, NotFoundError, parse_uuid
from tripdesk.models.admin import Admin
from tripdesk.models.user import User
from tripdesk.schemas.admin import TokenPayload
from tripdesk.services.notification_queue import NotificationQueue
from tripdesk.services.official_identity import OfficialIdentity, OfficialIdentityResolver
from tripdesk.services.realtime import RealtimeNotifier

reusable_oauth2 = OAuth2PasswordBearer(
    tokenUrl=f"{settings.API_V1_STR}/admin/auth/login"
)


def read_token(token: str) -> TokenPayload:
    try:
        return TokenPayload(**security.decode_access_token(token))
    except (JWTError, ValidationError):
        raise AuthenticationError("Could not validate credentials")


def subject_id(token_data: TokenPayload):
    try:
        return parse_uuid(token_data.sub, "token subject")
    except Exception:
        raise AuthenticationError("Invalid token subject")


async def active_admin(db: AsyncSession, token_data: TokenPayload) -> Admin:
    result = await db.execute(select(Admin).where(Admin.id == subject_id(token_data)))
    admin = result.scalar_one_or_none()

    if not admin or not admin.is_active:
        raise AuthorizationError("Inactive or unknown admin")
    return admin


async def active_user(db: AsyncSession, token_data: TokenPayload) -> User:
    user = await db.get(User, subject_id(token_data))
    if not user or not user.is_active:
        raise AuthorizationError("Inactive or unknown user")
    return user


async def get_current_admin(
    db: AsyncSession = Depends(get_db),
    token: str = Depends(reusable_oauth2)
) -> Admin:
    token_data = read_token(token)
    if token_data.scope != security.SCOPE_ADMIN:
        raise AuthorizationError("Admin access required")
    return await active_admin(db, token_data)


async def get_current_user(
    db: AsyncSession = Depends(get_db),
    token: str = Depends(reusable_oauth2)
) -> User:
    token_data = read_token(token)
    if token_data.scope != security.SCOPE_USER:
        raise AuthorizationError("User access required")
    return await active_user(db, token_data)


def get_notifier(request: Request) -> Optional[RealtimeNotifier]:
    return getattr(request.app.state, "broadcaster", None)


def get_notification_queue(request: Request) -> Optional[NotificationQueue]:
    return getattr(request.app.state, "notification_queue", None)


async def get_optional_official(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> Optional[OfficialIdentity]:
    """
    Identity resolved at startup; resolved again here if startup failed.
    """
    official = getattr(request.app.state, "official", None)
    if official is None:
        official = await OfficialIdentityResolver(db).ensure()
        if official is None:
            return None
        request.app.state.official = official
        queue = get_notification_queue(request)
        if queue is not None and queue.official is None:
            queue.official = official
    return official


async def get_official_identity(
    official: Optional[OfficialIdentity] = Depends(get_optional_official),
) -> OfficialIdentity:
    if official is None:
        raise NotFoundError("Official account not available")
    return official
