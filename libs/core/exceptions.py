"""Base exceptions for the domain layer."""

from __future__ import annotations


class DomainError(Exception):
    """Base class for all domain level exceptions."""


class NotFoundError(DomainError):
    """Raised when an entity cannot be located for the calling user."""


class ValidationError(DomainError):
    """Raised when data fails domain validation rules."""


class StorageError(DomainError):
    """Raised when the underlying store cannot complete an operation."""


class ConfigurationError(DomainError):
    """Raised when the runtime configuration is unusable."""


class UnavailableCollaboratorError(DomainError):
    """An external collaborator (fetch, embeddings, LLM) failed or is not configured.

    Never fatal: callers fall back to a defined degraded behaviour.
    """


class ConflictError(DomainError):
    """Duplicate key detected by the store (tag, association or owner+url).

    Absorbed by callers that expect the race and re-fetch the existing row.
    """


# Alias to keep a generic name for error type hints
Error = DomainError

__all__ = [
    "DomainError",
    "NotFoundError",
    "ValidationError",
    "StorageError",
    "ConfigurationError",
    "UnavailableCollaboratorError",
    "ConflictError",
    "Error",
]
