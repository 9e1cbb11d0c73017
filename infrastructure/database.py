"""
Database engine and session management.
"""
from typing import AsyncGenerator

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from core.config import settings
from infrastructure.models import Base


def _build_async_url(database_url: str) -> str:
    """Make sure the URL names an async driver."""
    url = make_url(database_url)
    drivername = url.drivername

    if "+" in drivername:
        return database_url

    driver_map = {
        "postgresql": "postgresql+asyncpg",
        "postgres": "postgresql+asyncpg",
        "sqlite": "sqlite+aiosqlite",
    }
    if drivername not in driver_map:
        raise ValueError(f"Unsupported database driver: {drivername}. Use an async driver in database.url")

    return url.set(drivername=driver_map[drivername]).render_as_string(hide_password=False)


def _lock_sqlite_on_begin(engine: AsyncEngine) -> None:
    """
    SQLite ignores FOR UPDATE; taking the write lock at BEGIN serializes
    read-modify-write transactions the way row locks do on PostgreSQL.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def build_engine(database_url: str, *, echo: bool = False) -> AsyncEngine:
    url = _build_async_url(database_url)
    if make_url(url).get_backend_name() == "sqlite":
        sqlite_engine = create_async_engine(url, echo=echo, connect_args={"timeout": 15})
        _lock_sqlite_on_begin(sqlite_engine)
        return sqlite_engine
    return create_async_engine(url, echo=echo, pool_pre_ping=True)


engine = build_engine(settings.database.url, echo=settings.database.echo)

AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    expire_on_commit=False,
)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Session without auto-commit; the caller owns the transaction."""
    async with AsyncSessionLocal() as session:
        yield session


async def create_tables(target: AsyncEngine = engine):
    async with target.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def drop_tables(target: AsyncEngine = engine):
    """Test environments only: drops every table."""
    async with target.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
