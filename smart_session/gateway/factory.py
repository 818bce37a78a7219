"""Factory helpers for wiring a gateway from settings at startup."""

from __future__ import annotations

from sqlalchemy import create_engine
from sqlalchemy.engine import Connection, Engine

from smart_session import config
from smart_session.gateway.sqlalchemy_gateway import SqlAlchemyGateway
from smart_session.utils.logging_utils import get_tagged_logger, mask_db_url

logger = get_tagged_logger(__name__, tag="gateway/factory")


def build_engine(settings: config.Settings | None = None) -> Engine:
    """Create the SQLAlchemy engine for the configured session database."""
    settings = settings or config.settings
    db_url = settings.database_url
    if not db_url:
        raise ValueError("database_url must be set for the session store")
    logger.info("Using session database", extra={"db_url": mask_db_url(db_url)})
    return create_engine(db_url, future=True)


def build_gateway(connection: Connection, settings: config.Settings | None = None) -> SqlAlchemyGateway:
    """Wrap an open connection in a gateway configured for the session table."""
    settings = settings or config.settings
    logger.debug(
        f"Building gateway for table '{settings.table_name}' (locking {'on' if settings.locking_enabled else 'off'})"
    )
    return SqlAlchemyGateway(
        connection,
        table_name=settings.table_name,
        locking_enabled=settings.locking_enabled,
    )
