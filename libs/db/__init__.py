"""Database utilities for LoreLog."""

from . import models
from .database import create_engine_for, init_db, make_sessionmaker, session_scope
from .repositories import ArticleRepo, TagRepo, UserRepo

__all__ = [
    "models",
    "create_engine_for",
    "make_sessionmaker",
    "session_scope",
    "init_db",
    "UserRepo",
    "ArticleRepo",
    "TagRepo",
]
