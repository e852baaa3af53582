from collections.abc import AsyncGenerator
from functools import lru_cache

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from core.config import settings


class Base(DeclarativeBase):
    pass


def build_engine(url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine for ``url``.

    SQLite has no ``SELECT ... FOR UPDATE``; there every transaction is opened
    with ``BEGIN IMMEDIATE`` so writers are serialized on the database lock
    instead of row locks.
    """
    if not url.startswith("sqlite"):
        return create_async_engine(url, echo=echo, pool_pre_ping=True)

    engine = create_async_engine(
        url,
        echo=echo,
        connect_args={"timeout": settings.sqlite_busy_timeout},
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _sqlite_connect(dbapi_connection, connection_record):
        # take BEGIN away from the driver, we emit our own below
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _sqlite_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


def build_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False)


@lru_cache()
def get_engine() -> AsyncEngine:
    return build_engine(settings.database_url, echo=settings.database_echo)


@lru_cache()
def get_session_maker() -> async_sessionmaker[AsyncSession]:
    return build_session_maker(get_engine())


async def create_db_and_tables(engine: AsyncEngine):
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def drop_db_and_tables(engine: AsyncEngine):
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    async with get_session_maker()() as session:
        yield session


# Register every model on Base.metadata
from . import users, warehouse, product, order, transfer  # noqa: E402,F401
