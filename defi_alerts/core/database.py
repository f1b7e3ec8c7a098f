"""Database engine layer for the alert store.

Provides the async engine (asyncpg) used by ``SqlAlertStore`` at runtime and
a sync engine (psycopg2) for Alembic migrations and scripts. Session
factories use autoflush=False and expire_on_commit=False for explicit
transaction control.
"""

from sqlalchemy import create_engine
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import sessionmaker

from .config import settings

# ---------------------------------------------------------------------------
# Async engine (for application runtime -- asyncpg)
# ---------------------------------------------------------------------------
async_engine = create_async_engine(
    settings.async_database_url,
    pool_size=settings.db_pool_size,
    max_overflow=settings.db_max_overflow,
    pool_pre_ping=settings.db_pool_pre_ping,
    echo=settings.debug,
)

async_session_factory = async_sessionmaker(
    async_engine,
    class_=AsyncSession,
    autoflush=False,
    expire_on_commit=False,
)

# ---------------------------------------------------------------------------
# Sync engine (for Alembic and scripts -- psycopg2)
# ---------------------------------------------------------------------------
sync_engine = create_engine(
    settings.sync_database_url,
    pool_size=2,
    pool_pre_ping=True,
    echo=settings.debug,
)

sync_session_factory = sessionmaker(
    sync_engine,
    autoflush=False,
    expire_on_commit=False,
)
