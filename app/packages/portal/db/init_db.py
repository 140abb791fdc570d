"""Database bootstrapping utilities."""

from __future__ import annotations

import logging

from app.packages.portal.db import session as db_session
from app.packages.portal.models.base import Base
import app.packages.portal.models  # noqa: F401 - register every table on Base.metadata

logger = logging.getLogger(__name__)


def init_db() -> None:
    """Create all database tables if they do not exist."""
    Base.metadata.create_all(bind=db_session.engine)
    logger.info("Database schema ready (%d tables)", len(Base.metadata.tables))
