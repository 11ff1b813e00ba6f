import datetime
import logging
from sqlalchemy import delete, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.orm import selectinload
from . import models, schemas
from typing import List, Optional

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 50
# Upper bound on a single incremental ("since") fetch
SINCE_PAGE_CAP = 50

def to_naive_utc(value: datetime.datetime) -> datetime.datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(datetime.timezone.utc).replace(tzinfo=None)

# --- User CRUD ---
async def get_user(db: AsyncSession, user_id: str) -> Optional[models.User]:
    result = await db.execute(select(models.User).filter(models.User.id == user_id))
    return result.scalars().first()

def _update_profile(db_user: models.User, user: schemas.UserUpsert) -> None:
    # Claims missing from this login keep their stored values
    for field, value in user.model_dump(exclude={"id"}, exclude_unset=True).items():
        setattr(db_user, field, value)
    db_user.updated_at = models.utcnow()

async def upsert_user(db: AsyncSession, user: schemas.UserUpsert) -> models.User:
    db_user = await get_user(db, user.id)
    if db_user is not None:
        _update_profile(db_user, user)
        await db.commit()
        await db.refresh(db_user)
        return db_user

    db_user = models.User(id=user.id, **user.model_dump(exclude={"id"}))
    db.add(db_user)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        # A concurrent first login may have inserted the same id
        db_user = await get_user(db, user.id)
        if db_user is None:
            raise
        _update_profile(db_user, user)
        await db.commit()
    await db.refresh(db_user)
    return db_user

# --- Session CRUD ---
async def create_session(db: AsyncSession, user_id: str, session_id: str, max_age_days: int) -> models.Session:
    expires_at = models.utcnow() + datetime.timedelta(days=max_age_days)
    db_session = models.Session(id=session_id, user_id=user_id, expires_at=expires_at)
    db.add(db_session)
    await db.commit()
    return db_session

async def get_user_by_session_id(db: AsyncSession, session_id: str) -> Optional[models.User]:
    query = (
        select(models.Session)
        .options(selectinload(models.Session.user))
        .filter(models.Session.id == session_id, models.Session.expires_at > models.utcnow())
    )
    result = await db.execute(query)
    session = result.scalars().first()
    return session.user if session else None

async def delete_session(db: AsyncSession, session_id: str) -> None:
    await db.execute(delete(models.Session).where(models.Session.id == session_id))
    await db.commit()

# --- Room CRUD ---
def room_with_details(room: models.Room, creator: Optional[models.User], member_count: int) -> schemas.RoomWithDetails:
    creator_profile = schemas.User.model_validate(creator) if creator is not None else schemas.EMPTY_PROFILE
    return schemas.RoomWithDetails(
        **schemas.Room.model_validate(room).model_dump(),
        creator=creator_profile,
        member_count=member_count,
    )

async def get_rooms_with_details(db: AsyncSession) -> List[schemas.RoomWithDetails]:
    member_count = func.count(models.RoomMember.id).label("member_count")
    query = (
        select(models.Room, models.User, member_count)
        .outerjoin(models.User, models.Room.created_by == models.User.id)
        .outerjoin(models.RoomMember, models.RoomMember.room_id == models.Room.id)
        .group_by(models.Room.id, models.User.id)
        .order_by(models.Room.id)
    )
    result = await db.execute(query)
    return [room_with_details(room, creator, count) for room, creator, count in result.all()]

async def get_room(db: AsyncSession, room_id: int) -> Optional[models.Room]:
    result = await db.execute(select(models.Room).filter(models.Room.id == room_id))
    return result.scalars().first()

async def create_room(db: AsyncSession, room: schemas.RoomCreate, creator_id: str) -> models.Room:
    """Insert the room and its creator's membership in one transaction."""
    db_room = models.Room(**room.model_dump(), created_by=creator_id)
    db.add(db_room)
    try:
        await db.flush()
        db.add(models.RoomMember(room_id=db_room.id, user_id=creator_id))
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    await db.refresh(db_room)
    logger.info("Room %s (%r) created by %s", db_room.id, db_room.name, creator_id)
    return db_room

async def get_user_rooms(db: AsyncSession, user_id: str) -> List[models.Room]:
    query = (
        select(models.Room)
        .join(models.RoomMember, models.RoomMember.room_id == models.Room.id)
        .filter(models.RoomMember.user_id == user_id)
        .order_by(models.Room.id)
    )
    result = await db.execute(query)
    return list(result.scalars().all())

# --- Membership CRUD ---
async def get_room_member(db: AsyncSession, room_id: int, user_id: str) -> Optional[models.RoomMember]:
    result = await db.execute(
        select(models.RoomMember).filter_by(room_id=room_id, user_id=user_id)
    )
    return result.scalars().first()

async def join_room(db: AsyncSession, user_id: str, room_id: int) -> None:
    """Add a membership; joining a room twice is a no-op."""
    if await get_room_member(db, room_id=room_id, user_id=user_id):
        return

    db.add(models.RoomMember(room_id=room_id, user_id=user_id))
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        # A concurrent join of the same pair is fine, anything else is not
        if await get_room_member(db, room_id=room_id, user_id=user_id) is None:
            raise
        return
    logger.info("User %s joined room %s", user_id, room_id)

async def leave_room(db: AsyncSession, user_id: str, room_id: int) -> None:
    result = await db.execute(
        delete(models.RoomMember).where(
            models.RoomMember.user_id == user_id,
            models.RoomMember.room_id == room_id,
        )
    )
    await db.commit()
    if result.rowcount:
        logger.info("User %s left room %s", user_id, room_id)

async def get_room_members(db: AsyncSession, room_id: int) -> List[models.User]:
    query = (
        select(models.User)
        .join(models.RoomMember, models.RoomMember.user_id == models.User.id)
        .filter(models.RoomMember.room_id == room_id)
        .order_by(models.RoomMember.joined_at, models.RoomMember.id)
    )
    result = await db.execute(query)
    return list(result.scalars().all())

# --- Message CRUD ---
async def create_message(db: AsyncSession, message: schemas.MessageCreate, room_id: int, user_id: str) -> models.Message:
    db_message = models.Message(**message.model_dump(), room_id=room_id, user_id=user_id)
    db.add(db_message)
    await db.commit()
    await db.refresh(db_message)
    return db_message

def _newest_first(room_id: int):
    return (
        select(models.Message)
        .filter(models.Message.room_id == room_id)
        .order_by(models.Message.created_at.desc(), models.Message.id.desc())
        .options(selectinload(models.Message.user))
    )

async def get_messages(db: AsyncSession, room_id: int, limit: int = DEFAULT_PAGE_SIZE, offset: int = 0) -> List[models.Message]:
    """Newest ``limit`` messages after skipping ``offset`` newer ones, oldest first."""
    result = await db.execute(_newest_first(room_id).offset(offset).limit(limit))
    messages = list(result.scalars().all())
    messages.reverse()
    return messages

async def get_latest_messages(db: AsyncSession, room_id: int, since: Optional[datetime.datetime] = None) -> List[models.Message]:
    """Messages created strictly after ``since``, oldest first.

    At most SINCE_PAGE_CAP rows come back; when more than that arrived the
    newest ones win and the caller has to page backwards to fill the gap.
    Without ``since`` this is the default page of get_messages.
    """
    if since is None:
        return await get_messages(db, room_id)

    query = (
        _newest_first(room_id)
        .filter(models.Message.created_at > to_naive_utc(since))
        .limit(SINCE_PAGE_CAP)
    )
    result = await db.execute(query)
    messages = list(result.scalars().all())
    messages.reverse()
    return messages
