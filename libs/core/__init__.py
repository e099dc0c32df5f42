"""Core library exposing domain models, settings, exceptions and types."""

from .settings import Settings, get_settings
from .exceptions import (
    ConfigurationError,
    DomainError,
    Error,
    NotFoundError,
    StorageError,
    ConflictError,
    UnavailableCollaboratorError,
    ValidationError,
)
from .models import Article, NewArticle, User
from .types import Result, is_error

__all__ = [
    "Settings",
    "get_settings",
    "DomainError",
    "NotFoundError",
    "ValidationError",
    "StorageError",
    "ConfigurationError",
    "UnavailableCollaboratorError",
    "ConflictError",
    "Error",
    "User",
    "Article",
    "NewArticle",
    "Result",
    "is_error",
]
