# sector_registry/core/db.py

import ssl
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import Request
from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import declarative_base

from sector_registry.core.config import settings


# -----------------------------
# BASE CLASS FOR MODELS
# -----------------------------
Base = declarative_base()


def _ssl_context() -> ssl.SSLContext:
    ctx = ssl.create_default_context()
    ctx.check_hostname = True
    ctx.verify_mode = ssl.CERT_REQUIRED
    return ctx


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    # sqlite ignores ON DELETE CASCADE and FK checks unless asked
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Database:
    """
    Store handle: one pooled async engine plus its session factory.

    Built once by the application (or a test) and passed around explicitly;
    every unit of work opens its own session from it.
    """

    def __init__(
        self,
        url: str,
        *,
        echo: bool = False,
        use_ssl: bool = False,
        statement_timeout_ms: int | None = None,
    ):
        if not url:
            raise ValueError("DATABASE_URL is not configured")

        engine_kwargs: dict = {"echo": echo, "future": True, "pool_pre_ping": True}
        connect_args: dict = {}

        if url.startswith("postgresql"):
            engine_kwargs["pool_recycle"] = 180   # refresh every 3 minutes
            engine_kwargs["pool_timeout"] = 30
            if use_ssl:
                connect_args["ssl"] = _ssl_context()
            if statement_timeout_ms:
                # asyncpg: applied to every pooled connection
                connect_args["server_settings"] = {"statement_timeout": str(statement_timeout_ms)}

        self.engine = create_async_engine(url, connect_args=connect_args, **engine_kwargs)

        if self.engine.dialect.name == "sqlite":
            event.listen(self.engine.sync_engine, "connect", _enable_sqlite_foreign_keys)

        self.sessionmaker = async_sessionmaker(
            bind=self.engine,
            expire_on_commit=False,
            autoflush=False,
            class_=AsyncSession,
        )

    @classmethod
    def from_settings(cls) -> "Database":
        return cls(
            settings.DATABASE_URL,
            echo=settings.DB_ECHO,
            use_ssl=settings.DB_SSL,
            statement_timeout_ms=settings.DB_STATEMENT_TIMEOUT_MS,
        )

    async def create_all(self):
        """Create all tables (and spatial indexes) if missing."""
        # models must be imported so their tables are registered on Base
        from sector_registry.models import change_history, sector, user  # noqa: F401

        async with self.engine.begin() as conn:
            if conn.dialect.name == "postgresql":
                await conn.execute(text("CREATE EXTENSION IF NOT EXISTS postgis"))
            await conn.run_sync(Base.metadata.create_all)

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        async with self.sessionmaker() as session:
            try:
                yield session
            finally:
                await session.close()

    async def dispose(self):
        await self.engine.dispose()


# -----------------------------
# FASTAPI DEPENDENCY
# -----------------------------
async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """Provide an async database session from the application's store handle."""
    database: Database = request.app.state.db
    async with database.session() as session:
        yield session
