from __future__ import annotations

import asyncio
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple
from uuid import uuid4

from pydantic import ValidationError as PydanticValidationError

from libs.core.exceptions import NotFoundError, StorageError
from libs.core.models import Article, NewArticle, utcnow

from .base import DEFAULT_LIST_LIMIT, ArticleStore, clean_patch, require_user

logger = logging.getLogger(__name__)

STORE_VERSION = 1
STORE_FILENAME = "articles.json"

# Key names written by older versions of the local store
_LEGACY_KEYS = {"userId": "ownerId", "userEmail": "ownerEmail", "userName": "ownerName"}


def _newest_first(articles: List[Article]) -> List[Article]:
    return sorted(articles, key=lambda a: a.created_at, reverse=True)


def _lexical_match(article: Article, needle: str) -> bool:
    fields = (article.title, article.url, article.summary or "")
    if any(needle in f.lower() for f in fields):
        return True
    return any(needle in t.lower() for t in article.tags)


class FileArticleStore(ArticleStore):
    """Single JSON document store for development without a database.

    The whole ``{"version": 1, "articles": [...]}`` document is loaded for
    every operation and rewritten on every change: first to a ``.tmp``
    sibling, then renamed over the live file so a crash never leaves a
    half-written store. Writers are serialized within one process only.
    """

    kind = "fallback"

    def __init__(self, data_dir: Path | str) -> None:
        self.data_dir = Path(data_dir)
        self.path = self.data_dir / STORE_FILENAME
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # document IO
    def _load(self) -> Tuple[List[Article], List[Any]]:
        """Parsed articles plus the raw records that failed validation.

        Unparseable records are carried through every rewrite untouched so a
        write never drops data this version cannot read.
        """
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return [], []
        except OSError as exc:
            raise StorageError(f"cannot read {self.path}: {exc}") from exc
        try:
            data = json.loads(raw)
        except ValueError as exc:
            raise StorageError(f"corrupt store file {self.path}") from exc
        items = data.get("articles") if isinstance(data, dict) else None
        if not isinstance(items, list):
            return [], []
        articles: List[Article] = []
        unparsed: List[Any] = []
        for item in items:
            if not isinstance(item, dict):
                unparsed.append(item)
                continue
            record = dict(item)
            for old, new in _LEGACY_KEYS.items():
                if old in record:
                    record.setdefault(new, record.pop(old))
            try:
                articles.append(Article.model_validate(record))
            except PydanticValidationError:
                logger.warning(
                    "fallback_store_invalid_record", extra={"record_id": item.get("id")}
                )
                unparsed.append(item)
        return articles, unparsed

    def _read(self) -> List[Article]:
        return self._load()[0]

    def _write(self, articles: List[Article], unparsed: Sequence[Any] = ()) -> None:
        doc = {
            "version": STORE_VERSION,
            "articles": [a.model_dump(mode="json", by_alias=True) for a in articles]
            + list(unparsed),
        }

        tmp = self.path.with_name(self.path.name + ".tmp")
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            tmp.write_text(json.dumps(doc, ensure_ascii=False, indent=2), encoding="utf-8")
            os.replace(tmp, self.path)
        except OSError as exc:
            raise StorageError(f"cannot write {self.path}: {exc}") from exc

    @staticmethod
    def _index(articles: List[Article], user_id: str, article_id: str) -> int:
        for idx, a in enumerate(articles):
            if a.owner_id == user_id and a.id == article_id:
                return idx
        raise NotFoundError(f"article {article_id} not found")

    # ------------------------------------------------------------------
    # articles
    async def list_articles(
        self, user_id: str, limit: Optional[int] = DEFAULT_LIST_LIMIT
    ) -> List[Article]:
        user_id = require_user(user_id)
        own = _newest_first([a for a in self._read() if a.owner_id == user_id])
        return own if limit is None else own[:limit]

    async def get_article(self, user_id: str, article_id: str) -> Article:
        user_id = require_user(user_id)
        articles = self._read()
        return articles[self._index(articles, user_id, article_id)]

    async def find_article_by_url(self, user_id: str, url: str) -> Optional[Article]:
        user_id = require_user(user_id)
        for a in self._read():
            if a.owner_id == user_id and a.url == url:
                return a
        return None

    async def create_article(self, user_id: str, fields: NewArticle) -> Article:
        user_id = require_user(user_id)
        now = utcnow()
        data: Dict[str, Any] = fields.model_dump()
        data["created_at"] = data.get("created_at") or now
        article = Article(id=str(uuid4()), owner_id=user_id, updated_at=now, **data)
        async with self._lock:
            articles, unparsed = self._load()
            articles.insert(0, article)
            self._write(articles, unparsed)
        return article

    async def update_article(
        self, user_id: str, article_id: str, patch: Mapping[str, Any]
    ) -> Article:
        user_id = require_user(user_id)
        changes = clean_patch(patch)
        async with self._lock:
            articles, unparsed = self._load()
            idx = self._index(articles, user_id, article_id)
            updated = articles[idx].model_copy(update={**changes, "updated_at": utcnow()})
            # model_copy skips validation; round-trip to normalize datetimes
            updated = Article.model_validate(updated.model_dump())
            articles[idx] = updated
            self._write(articles, unparsed)
        return updated

    async def delete_article(self, user_id: str, article_id: str) -> bool:
        user_id = require_user(user_id)
        async with self._lock:
            articles, unparsed = self._load()
            kept = [a for a in articles if not (a.owner_id == user_id and a.id == article_id)]
            deleted = len(kept) != len(articles)
            if deleted:
                self._write(kept, unparsed)
        return deleted

    async def search_articles_lexical(
        self, user_id: str, query: str, limit: Optional[int] = DEFAULT_LIST_LIMIT
    ) -> List[Article]:
        needle = (query or "").lower()
        matches = [
            a for a in await self.list_articles(user_id, limit=None) if _lexical_match(a, needle)
        ]
        return matches if limit is None else matches[:limit]

    async def list_untagged_articles(
        self, user_id: str, limit: Optional[int] = 200
    ) -> List[Article]:
        articles = await self.list_articles(user_id, limit=None)
        return [a for a in articles if not a.tags][:limit]

    # ------------------------------------------------------------------
    # tags (stored as a name list on each article; the name is the id)
    async def get_or_create_tag(self, name: str) -> str:
        return name

    async def attach_tag(self, user_id: str, article_id: str, tag_id: str) -> bool:
        user_id = require_user(user_id)
        async with self._lock:
            articles, unparsed = self._load()
            idx = self._index(articles, user_id, article_id)
            current = articles[idx]
            if tag_id in current.tags:
                return False
            articles[idx] = current.model_copy(
                update={"tags": [*current.tags, tag_id], "updated_at": utcnow()}
            )
            self._write(articles, unparsed)
        return True

    async def count_article_tags(self, user_id: str, article_id: str) -> int:
        return len((await self.get_article(user_id, article_id)).tags)

    async def list_user_tag_names(self, user_id: str) -> List[str]:
        names = {t for a in await self.list_articles(user_id, limit=None) for t in a.tags}
        return sorted(names)

    async def detach_tag(self, user_id: str, name: str) -> int:
        user_id = require_user(user_id)
        removed = 0
        async with self._lock:
            articles, unparsed = self._load()
            for idx, a in enumerate(articles):
                if a.owner_id == user_id and name in a.tags:
                    articles[idx] = a.model_copy(
                        update={"tags": [t for t in a.tags if t != name]}
                    )
                    removed += 1
            if removed:
                self._write(articles, unparsed)
        return removed

    async def count_user_tag_links(self, user_id: str) -> int:
        return sum(len(a.tags) for a in await self.list_articles(user_id, limit=None))

    async def ping(self) -> None:
        self._read()

    # ------------------------------------------------------------------
    # export helpers
    async def list_all_articles(self) -> List[Article]:
        """Every stored article regardless of owner (administrative export)."""
        return _newest_first(self._read())


__all__ = ["FileArticleStore", "STORE_FILENAME", "STORE_VERSION"]
