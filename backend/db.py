import logging
import os

from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

import models  # noqa: F401  registers the vote tables on SQLModel.metadata

logger = logging.getLogger(__name__)

PRODUCTION_ENVS = ("prod", "production")

# Hosting platforms hand out postgres:// URLs; the async engine needs the driver named
ASYNC_DRIVER_PREFIXES = {
    "postgres://": "postgresql+asyncpg://",
    "postgresql://": "postgresql+asyncpg://",
}


def resolve_database_url(environ=None) -> str:
    """Pick the database URL from the environment, refusing SQLite in production.

    Falls back to a local SQLite file (DATABASE_PATH, for a container volume
    mount) only outside production.
    """
    environ = os.environ if environ is None else environ
    env = environ.get("ENV", environ.get("RENDER", "").lower() or "dev")

    url = environ.get("DATABASE_URL")
    if not url:
        if env in PRODUCTION_ENVS or environ.get("RENDER"):
            raise RuntimeError(
                "DATABASE_URL missing in production; refusing to start with SQLite. "
                "Please configure DATABASE_URL environment variable."
            )
        url = f"sqlite+aiosqlite:///{environ.get('DATABASE_PATH', './moodtracker.db')}"

    for prefix, async_prefix in ASYNC_DRIVER_PREFIXES.items():
        if url.startswith(prefix):
            return url.replace(prefix, async_prefix, 1)
    return url


DATABASE_URL = resolve_database_url()

# Log database driver for observability
db_driver = DATABASE_URL.split(":", 1)[0] if ":" in DATABASE_URL else "unknown"
logger.info(f"DB_URL_DRIVER={db_driver}")


def make_engine(url: str = None) -> AsyncEngine:
    """Create an async engine; in-memory SQLite shares one connection so tables persist."""
    url = url or DATABASE_URL
    if url.startswith("sqlite") and (":memory:" in url or url.rstrip("/").endswith("sqlite+aiosqlite:")):
        return create_async_engine(
            url,
            echo=False,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_async_engine(url, echo=False)


async def create_db_and_tables(engine: AsyncEngine):
    """Create database and tables if they don't exist.
    This is safe to call multiple times - it won't wipe existing data.
    """
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


def make_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
