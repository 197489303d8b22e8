"""
tenancy_sdk.tier0_core.data
─────────────────────────────
Connection manager: DB engine/pool lifecycle, session factory and
transaction boundaries. Everything above this module reaches the database
through get_session().

Minimal stack: SQLAlchemy 2.x async
Configure via: DATABASE_URL, DATABASE_POOL_SIZE, DATABASE_MAX_OVERFLOW
"""
from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from tenancy_sdk.tier0_core.config import get_config
from tenancy_sdk.tier0_core.logging import get_logger


log = get_logger(__name__)


# ── Base model ────────────────────────────────────────────────────────────────

class Base(DeclarativeBase):
    """All ORM models inherit from this base."""
    pass


def get_model(entity: str) -> type[Base] | None:
    """Return the mapped class whose table is named *entity*."""
    _load_models()
    for mapper in Base.registry.mappers:
        if mapper.class_.__tablename__ == entity:
            return mapper.class_
    return None


def model_names() -> list[str]:
    _load_models()
    return sorted(m.class_.__tablename__ for m in Base.registry.mappers)


def _load_models() -> None:
    # registers the mappers on Base
    from tenancy_sdk.tier0_core import models  # noqa: F401


# ── Engine / session factory ──────────────────────────────────────────────────

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def get_engine() -> AsyncEngine:
    """Return the singleton async engine. Created on first call."""
    global _engine
    if _engine is None:
        config = get_config()
        kwargs: dict[str, Any] = {"echo": config.database_echo}

        # SQLite doesn't support pool settings
        if not config.is_sqlite:
            kwargs["pool_size"] = config.database_pool_size
            kwargs["max_overflow"] = config.database_max_overflow
            kwargs["pool_pre_ping"] = True

        _engine = create_async_engine(config.database_url, **kwargs)
        log.info("data.engine_created", dialect=_engine.dialect.name)
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Return the session factory."""
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(
            bind=get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
    return _session_factory


@asynccontextmanager
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Async context manager that yields a transactional session.
    Commits on clean exit, rolls back on exception, always closes.

    Usage:
        async with get_session() as session:
            result = await session.execute(select(Product).where(Product.id == pid))
            product = result.scalar_one_or_none()
    """
    factory = get_session_factory()
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def create_all() -> None:
    """Create every table known to Base. For development and tests."""
    _load_models()
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def drop_all() -> None:
    _load_models()
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


async def dispose_engine() -> None:
    """Dispose the engine — call on application shutdown."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_factory = None


def _reset() -> None:
    """For tests — reset engine and session factory."""
    global _engine, _session_factory
    _engine = None
    _session_factory = None
