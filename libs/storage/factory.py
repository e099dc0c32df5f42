from __future__ import annotations

import logging

from libs.core.exceptions import ConfigurationError
from libs.core.settings import Settings

from .base import ArticleStore
from .file_store import FileArticleStore
from .sql_store import SqlArticleStore

logger = logging.getLogger(__name__)

MODE_DB = "db"
MODE_FALLBACK = "fallback"


def resolve_storage_mode(settings: Settings) -> str:
    """Decide once per process which backend serves requests.

    Production never falls back to the local file: a missing database URL
    there is a configuration error rather than a silent downgrade.
    """
    if settings.db_configured:
        return MODE_DB
    if settings.is_production:
        raise ConfigurationError("DATABASE_URL must be set in production")
    return MODE_FALLBACK


def build_store(settings: Settings) -> ArticleStore:
    mode = resolve_storage_mode(settings)
    if mode == MODE_DB:
        store: ArticleStore = SqlArticleStore.from_url(settings.database_url)
    else:
        store = FileArticleStore(settings.data_dir)
        logger.warning(
            "Using local fallback store", extra={"path": str(store.path)}
        )
    return store


__all__ = ["resolve_storage_mode", "build_store", "MODE_DB", "MODE_FALLBACK"]
