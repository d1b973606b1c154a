"""
Authentication - bearer JWT for users provisioned outside this service
"""
from datetime import datetime, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from pydantic.alias_generators import to_camel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from muattrans.api.responses import show_message
from muattrans.config import get_settings
from muattrans.database import get_db
from muattrans.models.user import User
from muattrans.schemas.product import CamelModel

settings = get_settings()
router = APIRouter()

bearer_scheme = HTTPBearer(auto_error=False)


class UserResponse(CamelModel):
    id: str
    email: str
    full_name: str
    is_admin: bool

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    expire = datetime.utcnow() + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db)
) -> User:
    """Resolve the acting user; the id is passed explicitly to every service call"""
    credentials_exception = HTTPException(
        status_code=401,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if credentials is None:
        raise credentials_exception

    try:
        payload = jwt.decode(credentials.credentials, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        raise credentials_exception

    user_id = payload.get("sub")
    if not user_id:
        raise credentials_exception

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if user is None or not user.is_active:
        raise credentials_exception
    return user


@router.get("/me")
async def read_current_user(current_user: User = Depends(get_current_user)):
    return show_message(200, UserResponse.model_validate(current_user), "AUTH_ME")
