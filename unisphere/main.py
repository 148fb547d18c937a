import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import text

from unisphere.config import settings
from unisphere.core.errors import register_exception_handlers
from unisphere.core.logger import setup_logging
from unisphere.core.security import build_jwt_service
from unisphere.database import async_session_maker, create_tables, engine, get_async_session
from unisphere.realtime.hub import Hub
from unisphere.realtime.message_handler import MessageHandler
from unisphere.routes.auth import router as auth_router
from unisphere.routes.chat import router as chat_router
from unisphere.routes.communities import router as community_router
from unisphere.routes.ws import router as ws_router
from unisphere.storage.factory import build_storage

log = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    if settings.AUTO_CREATE_TABLES:
        await create_tables()

    app.state.jwt = build_jwt_service()
    app.state.storage = build_storage()
    app.state.hub = Hub(listener_buffer=settings.HUB_LISTENER_BUFFER)
    app.state.hub.start()
    app.state.message_handler = MessageHandler(app.state.hub, async_session_maker, db_timeout=settings.DB_TIMEOUT_SECONDS)
    app.state.message_handler.start()
    log.info("UniSphere started (%s)", settings.APP_ENV)

    yield

    await app.state.message_handler.stop()
    # closes every session queue, which ends the write loops
    await app.state.hub.stop()
    await engine.dispose()
    log.info("UniSphere stopped")


app = FastAPI(title="UniSphere", lifespan=lifespan)
register_exception_handlers(app)

app.include_router(auth_router)
app.include_router(community_router)
app.include_router(chat_router)
app.include_router(ws_router)


@app.get("/health")
async def health(session: AsyncSession = Depends(get_async_session)):
    result = await session.execute(text("SELECT 1"))
    return {"status": "ok", "db": result.scalar() == 1}
