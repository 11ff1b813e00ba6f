from typing import AsyncIterator, Optional
from fastapi import Cookie, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from . import crud, models, security
from .database import AsyncSessionLocal

async def get_db() -> AsyncIterator[AsyncSession]:
    async with AsyncSessionLocal() as session:
        yield session

async def get_current_user(
    session_id: Optional[str] = Cookie(default=None, alias=security.SESSION_COOKIE_NAME),
    db: AsyncSession = Depends(get_db),
) -> models.User:
    unauthorized = HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    if not session_id:
        raise unauthorized
    raw_session_id = security.unsign_session_id(session_id)
    if raw_session_id is None:
        raise unauthorized
    user = await crud.get_user_by_session_id(db, raw_session_id)
    if user is None:
        raise unauthorized
    return user
