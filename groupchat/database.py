from fastapi import Request
from sqlalchemy import URL, event, make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from .models import Base


def _async_url(raw_url: str) -> URL:
    """Pick the async driver matching the URL scheme."""
    parsed_url = make_url(raw_url)
    if parsed_url.drivername and parsed_url.drivername.startswith("sqlite"):
        # For SQLite, use aiosqlite driver
        return URL.create(
            drivername="sqlite+aiosqlite",
            database=parsed_url.database,
        )
    # For PostgreSQL, use asyncpg driver
    return URL.create(
        drivername="postgresql+asyncpg",
        username=parsed_url.username,
        password=parsed_url.password,
        host=parsed_url.host,
        port=parsed_url.port,
        database=parsed_url.database,
        query=parsed_url.query  # Preserve SSL and other query parameters
    )


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    url = _async_url(database_url)
    engine = create_async_engine(url, echo=echo, future=True)
    if url.drivername.startswith("sqlite"):
        event.listen(engine.sync_engine, "connect",
                     _enable_sqlite_foreign_keys)
    return engine


def build_sessionmaker(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def get_db(request: Request):
    """Dependency to get database session"""
    async with request.app.state.sessionmaker() as session:
        try:
            yield session
        finally:
            await session.close()


async def create_tables(engine: AsyncEngine) -> None:
    """Create all tables"""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def drop_tables(engine: AsyncEngine) -> None:
    """Drop all tables"""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
