import datetime
from fastapi import APIRouter, Cookie, Depends, HTTPException, Query, status, Response
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional
from . import crud, schemas, models, security
from .deps import get_db, get_current_user
from .errors import failure_response
from .settings import settings

router = APIRouter()

MAX_PAGE_SIZE = 100

# --- Auth ---
@router.post("/auth/login", response_model=schemas.User)
async def login(response: Response, user_in: schemas.UserUpsert, db: AsyncSession = Depends(get_db)):
    """Open a session for an identity already verified by the auth provider."""
    async with failure_response("Failed to log in"):
        user = await crud.upsert_user(db, user=user_in)
        session_id = security.create_session_id()
        await crud.create_session(
            db, user_id=user.id, session_id=session_id, max_age_days=settings.SESSION_MAX_AGE_DAYS
        )

    response.set_cookie(
        key=security.SESSION_COOKIE_NAME,
        value=security.sign_session_id(session_id),
        max_age=security.SESSION_MAX_AGE_SECONDS,
        httponly=True,
        secure=settings.SESSION_COOKIE_SECURE,
        samesite="lax",
    )
    return user

@router.post("/auth/logout", response_model=schemas.StatusMessage)
async def logout(
    response: Response,
    session_cookie: Optional[str] = Cookie(default=None, alias=security.SESSION_COOKIE_NAME),
    current_user: models.User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    async with failure_response("Failed to log out"):
        await crud.delete_session(db, security.unsign_session_id(session_cookie))
    response.delete_cookie(key=security.SESSION_COOKIE_NAME)
    return {"message": "Logged out successfully"}

@router.get("/auth/user", response_model=schemas.User)
async def read_current_user(current_user: models.User = Depends(get_current_user)):
    return current_user

# --- Rooms ---
@router.get("/rooms", response_model=List[schemas.Room])
async def list_my_rooms(
    current_user: models.User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    async with failure_response("Failed to fetch rooms"):
        return await crud.get_user_rooms(db, user_id=current_user.id)

@router.get("/rooms/all", response_model=List[schemas.RoomWithDetails])
async def list_all_rooms(
    current_user: models.User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    async with failure_response("Failed to fetch rooms"):
        return await crud.get_rooms_with_details(db)

@router.post("/rooms", response_model=schemas.Room, status_code=status.HTTP_201_CREATED)
async def create_room(
    room: schemas.RoomCreate,
    current_user: models.User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    async with failure_response("Failed to create room"):
        return await crud.create_room(db, room=room, creator_id=current_user.id)

@router.post("/rooms/{room_id}/join", response_model=schemas.StatusMessage)
async def join_room(
    room_id: int,
    current_user: models.User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    async with failure_response("Failed to join room"):
        room = await crud.get_room(db, room_id=room_id)
        if not room:
            raise HTTPException(status_code=404, detail="Room not found")
        await crud.join_room(db, user_id=current_user.id, room_id=room_id)
    return {"message": "Joined room successfully"}

@router.post("/rooms/{room_id}/leave", response_model=schemas.StatusMessage)
async def leave_room(
    room_id: int,
    current_user: models.User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    async with failure_response("Failed to leave room"):
        await crud.leave_room(db, user_id=current_user.id, room_id=room_id)
    return {"message": "Left room successfully"}

@router.get("/rooms/{room_id}/members", response_model=List[schemas.User])
async def list_room_members(
    room_id: int,
    current_user: models.User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    async with failure_response("Failed to fetch room members"):
        return await crud.get_room_members(db, room_id=room_id)

# --- Messages ---
@router.get("/rooms/{room_id}/messages", response_model=List[schemas.MessageWithUser])
async def get_room_messages(
    room_id: int,
    limit: int = Query(crud.DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0),
    since: Optional[datetime.datetime] = None,
    current_user: models.User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    async with failure_response("Failed to fetch messages"):
        if since is not None:
            return await crud.get_latest_messages(db, room_id=room_id, since=since)
        return await crud.get_messages(db, room_id=room_id, limit=limit, offset=offset)

@router.post("/rooms/{room_id}/messages", response_model=schemas.MessageWithUser, status_code=status.HTTP_201_CREATED)
async def send_message(
    room_id: int,
    message: schemas.MessageCreate,
    current_user: models.User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    async with failure_response("Failed to send message"):
        db_message = await crud.create_message(db, message=message, room_id=room_id, user_id=current_user.id)
        await db.refresh(db_message, attribute_names=["user"])
        return db_message
