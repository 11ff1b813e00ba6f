import logging
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from roomchat.database import engine
from roomchat.errors import register_exception_handlers
from roomchat.logging_config import configure_logging
from roomchat.models import Base
from roomchat.api import router as api_router
from roomchat.settings import settings

configure_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

async def create_db_and_tables():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

app = FastAPI(title="Room Chat")

@app.on_event("startup")
async def on_startup():
    await create_db_and_tables()
    logger.info("Database schema ready")

@app.on_event("shutdown")
async def on_shutdown():
    await engine.dispose()

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

app.include_router(api_router, prefix="/api")

@app.get("/")
def read_root():
    return {"message": "Welcome to the Room Chat API"}
