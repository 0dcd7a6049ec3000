# database.py - Async database setup for the SQLAlchemy store adapter
import logging
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker

from config import DATABASE_URL, SQL_ECHO, DB_POOL_SIZE, DB_POOL_RECYCLE, DB_ISOLATION_LEVEL

logger = logging.getLogger("kanban.db")


def engine_options(url: str, echo: bool = SQL_ECHO) -> dict:
    """Keyword arguments for ``create_async_engine``.

    Server databases get a pool and ``DB_ISOLATION_LEVEL`` (SERIALIZABLE by
    default). SQLite already serializes writers and keeps its defaults.
    """
    options = {"echo": echo, "future": True}
    if not url.startswith("sqlite"):
        options.update(
            pool_size=DB_POOL_SIZE,
            max_overflow=0,
            pool_pre_ping=True,
            pool_recycle=DB_POOL_RECYCLE,
            isolation_level=DB_ISOLATION_LEVEL,
        )
    return options


def build_engine(url: str = DATABASE_URL, echo: bool = SQL_ECHO):
    return create_async_engine(url, **engine_options(url, echo))


def build_session_factory(bind) -> async_sessionmaker:
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


engine = build_engine()
async_session_maker = build_session_factory(engine)


async def init_db(bind=None):
    """Create all tables"""
    from models import Base

    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    logger.info("Database initialized")


async def close_db(bind=None):
    """Close database connection pool"""
    await (bind or engine).dispose()


@asynccontextmanager
async def get_db_context(session_factory: async_sessionmaker = None):
    """Session scope outside of a unit of work: commit on success, rollback on error."""
    async with (session_factory or async_session_maker)() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
