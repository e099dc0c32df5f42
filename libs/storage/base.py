from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

from libs.core.exceptions import ValidationError
from libs.core.models import MUTABLE_ARTICLE_FIELDS, Article, NewArticle, as_utc, utcnow

DEFAULT_LIST_LIMIT = 50


def require_user(user_id: Optional[str]) -> str:
    """Every store operation runs on behalf of an authenticated user."""
    if not user_id or not str(user_id).strip():
        raise ValidationError("user id is required")
    return str(user_id)


def clean_patch(patch: Mapping[str, Any]) -> Dict[str, Any]:
    unknown = set(patch) - MUTABLE_ARTICLE_FIELDS
    if unknown:
        raise ValidationError(f"fields cannot be updated: {', '.join(sorted(unknown))}")
    body_length = patch.get("body_length")
    if body_length is not None and body_length < 0:
        raise ValidationError("body_length must be non-negative")
    if "title" in patch and not patch["title"]:
        raise ValidationError("title must not be empty")
    changes = dict(patch)
    if "read_at" in changes:
        changes["read_at"] = as_utc(changes["read_at"])
    return changes


class ArticleStore(ABC):
    """Storage contract shared by the relational and the local file backends.

    Every article operation is scoped to ``user_id``: an article owned by
    somebody else behaves exactly like a missing one. Lookups of a missing
    article raise :class:`~libs.core.exceptions.NotFoundError`.
    """

    #: "db" or "fallback", reported to API clients
    kind: str = ""

    # Articles ---------------------------------------------------------
    @abstractmethod
    async def list_articles(
        self, user_id: str, limit: Optional[int] = DEFAULT_LIST_LIMIT
    ) -> List[Article]:
        """Newest ``created_at`` first; ``limit=None`` returns everything."""

    @abstractmethod
    async def get_article(self, user_id: str, article_id: str) -> Article:
        """Return the article or raise ``NotFoundError``."""

    @abstractmethod
    async def find_article_by_url(self, user_id: str, url: str) -> Optional[Article]:
        """Return the user's article saved under ``url`` if there is one."""

    @abstractmethod
    async def create_article(self, user_id: str, fields: NewArticle) -> Article:
        """Insert an article, assigning id and timestamps."""

    @abstractmethod
    async def update_article(
        self, user_id: str, article_id: str, patch: Mapping[str, Any]
    ) -> Article:
        """Apply ``patch`` (see ``MUTABLE_ARTICLE_FIELDS``) and bump ``updated_at``."""

    @abstractmethod
    async def delete_article(self, user_id: str, article_id: str) -> bool:
        """Delete the article; ``False`` when it did not exist."""

    @abstractmethod
    async def search_articles_lexical(
        self, user_id: str, query: str, limit: Optional[int] = DEFAULT_LIST_LIMIT
    ) -> List[Article]:
        """Case-insensitive substring match on title, URL, summary and tag names."""

    @abstractmethod
    async def list_untagged_articles(
        self, user_id: str, limit: Optional[int] = 200
    ) -> List[Article]:
        """Newest articles that carry no tag at all."""

    async def mark_read(
        self, user_id: str, article_id: str, timestamp: Optional[datetime] = None
    ) -> Article:
        return await self.update_article(
            user_id, article_id, {"read_at": timestamp or utcnow()}
        )

    async def mark_unread(self, user_id: str, article_id: str) -> Article:
        return await self.update_article(user_id, article_id, {"read_at": None})

    async def list_read_articles(self, user_id: str) -> List[Article]:
        articles = await self.list_articles(user_id, limit=None)
        return [a for a in articles if a.read_at is not None]

    # Tags -------------------------------------------------------------
    @abstractmethod
    async def get_or_create_tag(self, name: str) -> str:
        """Return the id of tag ``name``, creating it if needed.

        A concurrent creation of the same name counts as "already exists".
        """

    @abstractmethod
    async def attach_tag(self, user_id: str, article_id: str, tag_id: str) -> bool:
        """Associate a tag; ``False`` when the association already existed."""

    @abstractmethod
    async def count_article_tags(self, user_id: str, article_id: str) -> int:
        """Number of tags attached to one article."""

    @abstractmethod
    async def list_user_tag_names(self, user_id: str) -> List[str]:
        """Distinct names of the tags used on the user's articles."""

    @abstractmethod
    async def detach_tag(self, user_id: str, name: str) -> int:
        """Remove ``name`` from all of the user's articles.

        Returns the number of associations removed; a tag left without any
        association is deleted.
        """

    @abstractmethod
    async def count_user_tag_links(self, user_id: str) -> int:
        """Total tag associations over the user's articles."""

    # Lifecycle --------------------------------------------------------
    async def ping(self) -> None:
        """Raise ``StorageError`` when the backend is unreachable."""

    async def close(self) -> None:
        """Release connections held by the backend."""


__all__ = ["ArticleStore", "DEFAULT_LIST_LIMIT", "require_user", "clean_patch"]
