from pydantic import BaseModel, ConfigDict, Field, StringConstraints
from pydantic.alias_generators import to_camel
from typing import Annotated, Optional
import datetime

class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

# User Schemas
class UserBase(CamelModel):
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    profile_image_url: Optional[str] = None

class UserUpsert(UserBase):
    id: str = Field(min_length=1)

class User(UserBase):
    id: str
    created_at: Optional[datetime.datetime] = None
    updated_at: Optional[datetime.datetime] = None

# Stands in for a creator row that no longer resolves
EMPTY_PROFILE = User(id="")

# Room Schemas
class RoomBase(CamelModel):
    name: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=100)]
    description: Optional[str] = None

class RoomCreate(RoomBase):
    pass

class Room(RoomBase):
    id: int
    created_by: str
    created_at: datetime.datetime
    updated_at: datetime.datetime

class RoomWithDetails(Room):
    creator: User
    member_count: int

# Message Schemas
class MessageBase(CamelModel):
    content: str = Field(min_length=1)

class MessageCreate(MessageBase):
    pass

class Message(MessageBase):
    id: int
    user_id: str
    room_id: int
    created_at: datetime.datetime

class MessageWithUser(Message):
    user: User

# Plain acknowledgements
class StatusMessage(BaseModel):
    message: str
