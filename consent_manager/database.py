"""Database connection management for the durable consent store."""
import logging

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from .config import Settings

logger = logging.getLogger(__name__)

# SQLAlchemy Base for ORM models
Base = declarative_base()


def create_engine_from_settings(settings: Settings) -> AsyncEngine:
    """
    Create an async engine for ``settings.database_url``.

    SQLite URLs use the dialect's default pool; server databases get a
    bounded connection pool with pre-ping and hourly recycling.
    """
    url = settings.database_url
    echo = settings.log_level.upper() == "DEBUG"

    if url.startswith("sqlite"):
        engine = create_async_engine(url, echo=echo)
    else:
        engine = create_async_engine(
            url,
            echo=echo,
            pool_pre_ping=True,
            pool_size=10,
            max_overflow=20,
            pool_recycle=3600,
            pool_timeout=30,
        )

    logger.info("Database engine created for %s", engine.url.render_as_string(hide_password=True))
    return engine


def get_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session maker bound to ``engine``."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def create_tables(engine: AsyncEngine) -> None:
    """Create all consent tables."""
    # Register models on Base.metadata
    from . import db_models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Consent tables created")

