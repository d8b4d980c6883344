"""Application entry point — startup and shutdown of the inventory backend."""

import logging
from contextlib import asynccontextmanager
from collections.abc import AsyncIterator
from pathlib import Path

from sqlalchemy.engine import make_url

from app.config import Settings, get_settings
from app.infrastructure.database import create_tables
from app.infrastructure.dependencies import ServiceContainer
from app.infrastructure.logging.log_config import setup_logging

logger = logging.getLogger(__name__)


def _ensure_sqlite_directory(database_url: str) -> None:
    """Create the parent directory of a file-backed SQLite database."""
    url = make_url(database_url)
    if not url.drivername.startswith("sqlite") or not url.database or url.database == ":memory:":
        return
    Path(url.database).parent.mkdir(parents=True, exist_ok=True)


@asynccontextmanager
async def lifespan(settings: Settings | None = None) -> AsyncIterator[ServiceContainer]:
    """Application lifespan — configure logging, create tables, yield the services."""
    settings = settings or get_settings()
    setup_logging(settings)

    _ensure_sqlite_directory(settings.database_url)
    container = ServiceContainer(settings)
    try:
        await create_tables(container.engine)
        logger.info("%s %s started (%s)", settings.app_title, settings.app_version, settings.app_env)
        yield container
    finally:
        await container.aclose()
        logger.info("%s stopped", settings.app_title)
