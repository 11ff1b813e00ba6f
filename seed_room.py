import asyncio
import sys
from main import create_db_and_tables
from roomchat.database import AsyncSessionLocal
from roomchat import crud, schemas

async def seed_room_script(user_id: str, room_name: str):
    await create_db_and_tables()
    async with AsyncSessionLocal() as db:
        try:
            creator = await crud.upsert_user(db, schemas.UserUpsert(id=user_id, first_name="Admin"))
            created_room = await crud.create_room(
                db=db,
                room=schemas.RoomCreate(name=room_name, description="Seeded room"),
                creator_id=creator.id,
            )

            print(f"Created room: {created_room.name}")
            print(f"   ID: {created_room.id}")

        except Exception as e:
            print(f"Could not create room: {e}", file=sys.stderr)
            raise

if __name__ == "__main__":
    user_id = sys.argv[1] if len(sys.argv) > 1 else "admin"
    room_name = sys.argv[2] if len(sys.argv) > 2 else "general"
    asyncio.run(seed_room_script(user_id, room_name))
