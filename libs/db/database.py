from __future__ import annotations

"""Database setup for SQLAlchemy with async psycopg driver."""

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.engine.url import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import NullPool
from sqlalchemy.schema import CreateColumn

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Base class for all ORM models."""


def normalize_database_url(url: str) -> str:
    """Pick async drivers for plain ``postgresql://`` / ``sqlite://`` URLs."""

    url = url.strip()
    for prefix in ("postgres://", "postgresql://"):
        if url.startswith(prefix):
            return "postgresql+psycopg://" + url[len(prefix):]
    if url.startswith("sqlite://"):
        return "sqlite+aiosqlite://" + url[len("sqlite://"):]
    return url


def create_engine_for(url: str) -> AsyncEngine:
    """Create async engine with resilient pool settings.

    - pool_pre_ping: validate connections before using
    - pool_recycle: proactively recycle connections to avoid server-side timeouts

    SQLite files get no pool at all: a fresh connection per checkout keeps
    the engine usable from more than one event loop.
    """
    url = normalize_database_url(url)
    if url.startswith("sqlite"):
        return create_async_engine(url, echo=False, poolclass=NullPool)
    return create_async_engine(
        url,
        echo=False,
        future=True,
        pool_pre_ping=True,
        pool_recycle=1800,
    )


def make_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False)


@asynccontextmanager
async def session_scope(
    sessionmaker: async_sessionmaker[AsyncSession],
) -> AsyncIterator[AsyncSession]:
    """Provide a transactional scope around a series of operations."""

    async with sessionmaker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def _ensure_postgres_database(url_str: str) -> None:
    """Create the target Postgres database when it does not exist yet."""

    url = make_url(url_str)
    if not url.drivername.startswith("postgresql"):
        return
    try:
        maint_engine = create_engine(url.set(database="postgres"))
        with maint_engine.connect() as conn:
            exists = conn.execute(
                text("SELECT 1 FROM pg_database WHERE datname=:db"),
                {"db": url.database},
            ).scalar()
            if exists != 1:
                # CREATE DATABASE must run outside a transaction block
                conn.execution_options(isolation_level="AUTOCOMMIT").execute(
                    text(f'CREATE DATABASE "{url.database}"')
                )
                logger.info("Created missing database '%s'", url.database)
        maint_engine.dispose()
    except SQLAlchemyError as exc:  # pragma: no cover - best effort
        logger.warning("Could not ensure database exists: %s", exc)


async def init_db(engine: AsyncEngine, max_attempts: int = 5, delay: float = 5) -> None:
    """Create tables and add missing columns if necessary.

    Attempts to connect to the database multiple times with a delay
    between attempts. Only after a successful connection will the tables be
    created. If all attempts fail, the last exception is propagated.
    """

    # Import models to ensure Base.metadata is populated
    from . import models  # noqa: F401

    def sync_init(sync_conn):  # type: ignore[no-untyped-def]
        Base.metadata.create_all(sync_conn)
        inspector = inspect(sync_conn)
        for table in Base.metadata.tables.values():
            existing = {col["name"] for col in inspector.get_columns(table.name)}
            for column in table.columns:
                if column.name not in existing:
                    col_ddl = CreateColumn(column.copy()).compile(
                        dialect=sync_conn.dialect
                    )
                    sync_conn.execute(
                        text(f"ALTER TABLE {table.name} ADD COLUMN {col_ddl}")
                    )

    if engine.url.drivername.startswith("postgresql"):
        sync_url = engine.url.render_as_string(hide_password=False)
        await asyncio.to_thread(_ensure_postgres_database, sync_url)

    last_exc: SQLAlchemyError | None = None
    for attempt in range(1, max_attempts + 1):
        try:
            async with engine.begin() as conn:
                await conn.run_sync(sync_init)
            logger.info("DB schema ensured (attempt %d)", attempt)
            return
        except SQLAlchemyError as exc:  # pragma: no cover - best effort
            last_exc = exc
            if attempt == max_attempts:
                break
            logger.warning(
                "DB init attempt %d failed: %s. Retrying in %ss", attempt, exc, delay
            )
            await asyncio.sleep(delay)

    logger.error("DB init failed after %d attempts", max_attempts)
    if last_exc is not None:
        raise last_exc


__all__ = [
    "Base",
    "normalize_database_url",
    "create_engine_for",
    "make_sessionmaker",
    "session_scope",
    "init_db",
]
