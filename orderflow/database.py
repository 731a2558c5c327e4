"""
Database Connection Module
Handles the async SQLAlchemy engine (PostgreSQL via psycopg in production,
SQLite via aiosqlite for local runs and tests).
"""

from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import NullPool

from orderflow.core.config import get_settings


def _use_immediate_transactions(sqlite_engine: AsyncEngine) -> None:
    """
    Take the SQLite write lock when a transaction starts.

    Without this, two transactions that both read before writing can
    deadlock on lock promotion instead of queueing behind each other,
    which breaks the compare-and-set used for status transitions.
    """

    @event.listens_for(sqlite_engine.sync_engine, "connect")
    def _disable_driver_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(sqlite_engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def build_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine suited to the database backend."""
    if database_url.startswith("sqlite"):
        # SQLite connections are cheap; never share them across event loops
        sqlite_engine = create_async_engine(database_url, echo=echo, poolclass=NullPool)
        _use_immediate_transactions(sqlite_engine)
        return sqlite_engine

    return create_async_engine(
        database_url,
        echo=echo,
        pool_size=5,  # Connection pool size
        max_overflow=10,  # Extra connections when pool is full
        pool_pre_ping=True,
    )


def build_session_maker(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=bind,
        class_=AsyncSession,
        expire_on_commit=False  # Objects remain accessible after commit
    )


_settings = get_settings()

engine = build_engine(_settings.database_url, echo=_settings.database_echo)

# Session factory - creates new database sessions
async_session_maker = build_session_maker(engine)


# Base class for all our models
class Base(DeclarativeBase):
    pass


async def get_db() -> AsyncSession:
    """
    Dependency injection for FastAPI routes.
    Yields a database session and ensures cleanup.
    """
    async with async_session_maker() as session:
        try:
            yield session
        finally:
            await session.close()


async def init_db(bind: AsyncEngine = None) -> None:
    """
    Create all tables in database.
    Called once at application startup.
    """
    # Register the mapped tables on Base.metadata
    import orderflow.models  # noqa: F401

    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def drop_db(bind: AsyncEngine = None) -> None:
    """Drop all tables (tests and local resets only)."""
    import orderflow.models  # noqa: F401

    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
