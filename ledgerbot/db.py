from __future__ import annotations

import logging
from pathlib import Path

import anyio
from alembic import command
from alembic.config import Config
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from .config import Settings
from .models import Base

logger = logging.getLogger(__name__)


def create_engine(settings: Settings) -> AsyncEngine:
    if not settings.database_url:
        settings.database_file.parent.mkdir(parents=True, exist_ok=True)
    return create_async_engine(settings.sqlalchemy_url, echo=False, future=True)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


def _get_alembic_config(settings: Settings) -> Config:
    config_path = Path(__file__).resolve().parent.parent / "alembic.ini"
    config = Config(str(config_path))
    config.set_main_option("sqlalchemy.url", settings.sqlalchemy_url.replace("%", "%%"))
    # Keep the application logging configuration intact.
    config.attributes["configure_logger"] = False
    return config


async def init_db(engine: AsyncEngine, settings: Settings) -> None:
    """Prepare the user record tables on startup."""
    if settings.auto_run_migrations:
        config = _get_alembic_config(settings)
        await anyio.to_thread.run_sync(command.upgrade, config, "head")
        return
    logger.info("AUTO_RUN_MIGRATIONS disabled; creating missing tables directly.")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
