
from sqlalchemy import BigInteger, Integer, event
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine, AsyncSession
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import NullPool

from typing import AsyncGenerator

from unisphere.config import settings

database_url = settings.database_url

# SQLite only autoincrements INTEGER PRIMARY KEY columns
BigIntPK = BigInteger().with_variant(Integer, "sqlite")


def _engine_kwargs(url: str) -> dict:
    if url.startswith("sqlite"):
        # local and test runs: one connection per checkout keeps aiosqlite off shared loops
        return {"poolclass": NullPool}
    return {
        "pool_size": settings.DB_POOL_SIZE,
        "pool_pre_ping": True,
        "connect_args": {"command_timeout": settings.DB_TIMEOUT_SECONDS},
    }


engine = create_async_engine(database_url, **_engine_kwargs(database_url))

if database_url.startswith("sqlite"):
    @event.listens_for(engine.sync_engine, "connect")
    def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

async_session_maker = async_sessionmaker(engine, expire_on_commit=False)

class Base(DeclarativeBase):
    pass

async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    async with async_session_maker() as session:
        yield session


def _load_models() -> None:
    # registers every table on Base.metadata
    from unisphere.models import catalog, chat_message, community, file, refresh_token, user  # noqa: F401


async def create_tables() -> None:
    _load_models()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
