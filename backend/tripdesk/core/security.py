from datetime import timedelta
from typing import Any, Optional, Union

from jose import jwt
from passlib.context import CryptContext

from tripdesk.core.config import settings
from tripdesk.core.time_utils import get_utc_now

ALGORITHM = "HS256"

# Token scopes. Admin tokens are issued by /admin/auth/login, user tokens by
# the main application with the same secret.
SCOPE_ADMIN = "admin"
SCOPE_USER = "user"

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def create_access_token(
    subject: Union[str, Any],
    expires_delta: Optional[timedelta] = None,
    scope: str = SCOPE_ADMIN,
) -> str:
    if expires_delta:
        expire = get_utc_now() + expires_delta
    else:
        expire = get_utc_now() + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode = {"exp": expire, "sub": str(subject), "scope": scope}
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=ALGORITHM)


def decode_access_token(token: str) -> dict:
    return jwt.decode(token, settings.SECRET_KEY, algorithms=[ALGORITHM])


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)
