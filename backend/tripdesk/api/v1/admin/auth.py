from datetime import timedelta
from typing import Any
from fastapi import APIRouter, Depends
from fastapi.concurrency import run_in_threadpool
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
import structlog

from tripdesk.db.session import get_db
from tripdesk.core import security
from tripdesk.core.config import settings
from tripdesk.core.errors import ValidationError
from tripdesk.core.time_utils import get_utc_now
from tripdesk.schemas.admin import Token, AdminResponse
from tripdesk.models.admin import Admin
from tripdesk.api.deps import get_current_admin

router = APIRouter()
logger = structlog.get_logger()

@router.post("/login", response_model=Token)
async def login_access_token(
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: AsyncSession = Depends(get_db)
) -> Any:
    """
    OAuth2 compatible token login, get an access token for future requests.
    """
    stmt = select(Admin).where(Admin.email == form_data.username)
    result = await db.execute(stmt)
    admin = result.scalar_one_or_none()

    if not admin or not await run_in_threadpool(security.verify_password, form_data.password, admin.password_hash):
        logger.warning("admin_login_failed", email=form_data.username)
        raise ValidationError("Incorrect email or password")
    elif not admin.is_active:
        raise ValidationError("Inactive user")

    admin.last_login_at = get_utc_now()
    await db.commit()

    access_token_expires = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    access_token = security.create_access_token(
        admin.id, expires_delta=access_token_expires, scope=security.SCOPE_ADMIN
    )
    logger.info("admin_login", admin_id=str(admin.id))

    return {
        "access_token": access_token,
        "token_type": "bearer",
    }


@router.get("/me", response_model=AdminResponse)
async def read_admin_me(current_admin: Admin = Depends(get_current_admin)) -> Any:
    return current_admin
