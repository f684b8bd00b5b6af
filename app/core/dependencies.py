from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from app.core.database import get_db
from app.core.errors import Forbidden, Unauthorized
from app.core.security import decode_access_token
from app.models.user import ADMIN_ROLES, User

bearer = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer),
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    Resolves the bearer token to an active user.
    Roles are read from the database (token roles are informational only).
    """
    not_authenticated = Unauthorized("Invalid or missing token")

    if not credentials:
        raise not_authenticated

    try:
        payload = decode_access_token(credentials.credentials)
        user_id = int(payload["sub"])

        if payload.get("type") != "access":
            raise not_authenticated

    except (JWTError, KeyError, ValueError):
        raise not_authenticated

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()

    if user is None or not user.is_active:
        raise not_authenticated

    return user


async def get_current_admin(user: User = Depends(get_current_user)) -> User:
    if not user.has_any_role(ADMIN_ROLES):
        raise Forbidden()
    return user
