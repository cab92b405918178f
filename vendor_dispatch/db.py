# vendor_dispatch/db.py
from __future__ import annotations

import pathlib
import logging
from typing import Optional

from sqlalchemy.ext.asyncio import (
    create_async_engine,
    AsyncEngine,
    async_sessionmaker,
    AsyncSession,
)
from sqlalchemy.orm import DeclarativeBase

from vendor_dispatch.config import settings
from vendor_dispatch.errors import InfrastructureError

logger = logging.getLogger("uvicorn.error")


class Base(DeclarativeBase):
    pass


_engine: Optional[AsyncEngine] = None
_sessionmaker: Optional[async_sessionmaker[AsyncSession]] = None


def _resolve_dsn() -> str:
    dsn = settings.DATABASE_URL
    # a file-backed SQLite database needs its directory in place
    if dsn.startswith("sqlite") and ":memory:" not in dsn and "///" in dsn:
        path = pathlib.Path(dsn.split("///", 1)[1])
        try:
            path.resolve().parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.warning("[DB] could not create directory for %s: %s", path, e)
    return dsn


def get_engine() -> AsyncEngine:
    global _engine, _sessionmaker
    if _engine is None:
        dsn = _resolve_dsn()
        _engine = create_async_engine(dsn, pool_pre_ping=True)
        _sessionmaker = async_sessionmaker(_engine, expire_on_commit=False)
        logger.info("[DB] engine initialized for %s", dsn)
    return _engine


def get_sessionmaker() -> async_sessionmaker[AsyncSession]:
    if _sessionmaker is None:
        get_engine()
    return _sessionmaker  # type: ignore[return-value]


async def create_tables(engine: AsyncEngine) -> None:
    # models must be imported so their tables are registered on Base.metadata
    import vendor_dispatch.models.jobs  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def init_db() -> None:
    """
    Ensure the engine is created, a first connection can be acquired and the
    jobs table exists. Failure here is fatal for the caller.
    """
    eng = get_engine()
    try:
        await create_tables(eng)
    except Exception as e:
        logger.error("[DB] initial connect failed: %s", e)
        raise InfrastructureError(f"database unreachable: {e}") from e


async def close_db() -> None:
    global _engine, _sessionmaker
    if _engine is not None:
        await _engine.dispose()
        logger.info("[DB] engine disposed")
    _engine = None
    _sessionmaker = None
