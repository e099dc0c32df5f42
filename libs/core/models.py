"""Pydantic models representing core domain entities."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    """Timezone-aware current time in UTC."""
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes (SQLite drops tzinfo)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class _CamelModel(BaseModel):
    """Serialized with camelCase keys, accepts both spellings on input."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class User(_CamelModel):
    """Account owning articles; identity itself is managed upstream."""

    id: str = Field(..., description="Opaque user identifier")
    email: Optional[str] = None
    name: Optional[str] = None
    invite_accepted_at: Optional[datetime] = None
    password_hash: Optional[str] = Field(default=None, exclude=True)
    created_at: datetime = Field(default_factory=utcnow)

    @field_validator("email")
    @classmethod
    def _lower_email(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = value.strip().lower()
        return value or None


class Article(_CamelModel):
    """A saved URL with derived metadata, owned by exactly one user."""

    id: str
    owner_id: str
    url: str = Field(..., min_length=1)
    title: str
    summary: Optional[str] = None
    body_length: Optional[int] = Field(default=None, ge=0)
    # JSON-encoded float array, see libs.rag.similarity
    embedding: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    read_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    owner_email: Optional[str] = None
    owner_name: Optional[str] = None

    @field_validator("read_at", "created_at", "updated_at")
    @classmethod
    def _utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value)

    @property
    def is_read(self) -> bool:
        return self.read_at is not None


class NewArticle(_CamelModel):
    """Fields accepted when creating an article."""

    url: str = Field(..., min_length=1)
    title: str
    summary: Optional[str] = None
    body_length: Optional[int] = Field(default=None, ge=0)
    embedding: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    read_at: Optional[datetime] = None
    # Only set explicitly by the fallback import path
    created_at: Optional[datetime] = None
    owner_email: Optional[str] = None
    owner_name: Optional[str] = None

    @field_validator("read_at", "created_at")
    @classmethod
    def _utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value)


# Fields a caller may change through ``ArticleStore.update_article``.
MUTABLE_ARTICLE_FIELDS = frozenset(
    {"title", "summary", "body_length", "embedding", "read_at"}
)


__all__ = [
    "User",
    "Article",
    "NewArticle",
    "MUTABLE_ARTICLE_FIELDS",
    "utcnow",
    "as_utc",
]
