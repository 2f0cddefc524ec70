from __future__ import annotations

import logging

from sqlalchemy import inspect

from apptracker.config import get_settings
from apptracker.db.base import Base
from apptracker.db.session import engine
from apptracker.db import models  # noqa: F401

logger = logging.getLogger(__name__)


def ensure_data_directories() -> None:
    settings = get_settings()
    for path in (settings.data_dir, settings.local_storage_dir):
        path.mkdir(parents=True, exist_ok=True)


def init_database() -> dict[str, int]:
    """Create missing tables; existing rows are left alone."""
    ensure_data_directories()
    Base.metadata.create_all(bind=engine)
    tables = inspect(engine).get_table_names()
    logger.debug("Database ready tables=%s", len(tables))
    return {"tables": len(tables)}
