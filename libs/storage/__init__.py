"""Article storage backends sharing the :class:`ArticleStore` contract."""

from .base import ArticleStore
from .factory import MODE_DB, MODE_FALLBACK, build_store, resolve_storage_mode
from .file_store import FileArticleStore
from .sql_store import SqlArticleStore

__all__ = [
    "ArticleStore",
    "FileArticleStore",
    "SqlArticleStore",
    "build_store",
    "resolve_storage_mode",
    "MODE_DB",
    "MODE_FALLBACK",
]
