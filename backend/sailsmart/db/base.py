"""Async engine and session factory shared by the services.

Services receive the factory and open one short session per operation with
``async with factory() as db``.
"""

from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from sailsmart.core.config import get_settings

logger = structlog.get_logger(__name__)


class Base(DeclarativeBase):
    """Declarative base for every SailSmart table."""


_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def _engine_options(url: str, echo: bool) -> dict[str, Any]:
    options: dict[str, Any] = {"echo": echo}
    if url.startswith("postgresql"):
        options.update(pool_pre_ping=True, pool_size=10, max_overflow=20, pool_recycle=1800)
    return options


async def init_db(url: str | None = None, *, create_tables: bool = True) -> None:
    """Create the engine and session factory once per process.

    Args:
        url: Overrides settings.database_url
        create_tables: Run metadata.create_all for tables the migrations have not made yet
    """
    global _engine, _session_factory

    if _engine is not None:
        return

    settings = get_settings()
    db_url = url or settings.database_url

    _engine = create_async_engine(db_url, **_engine_options(db_url, settings.debug))
    _session_factory = async_sessionmaker(_engine, class_=AsyncSession, expire_on_commit=False)

    if create_tables:
        import sailsmart.db.models  # noqa: F401

        async with _engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    logger.info("database_initialized", dialect=_engine.dialect.name, create_tables=create_tables)


async def close_db() -> None:
    global _engine, _session_factory

    engine, _engine, _session_factory = _engine, None, None
    if engine is not None:
        await engine.dispose()


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Session factory for services.

    Raises RuntimeError before init_db() has run.
    """
    if _session_factory is None:
        raise RuntimeError("init_db() must run before sessions can be opened")
    return _session_factory
