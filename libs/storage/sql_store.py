from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any, List, Mapping, Optional

from sqlalchemy import select, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from libs.core.exceptions import ConflictError, NotFoundError, StorageError
from libs.core.models import Article, NewArticle, User
from libs.db import models
from libs.db.database import create_engine_for, init_db, make_sessionmaker, session_scope
from libs.db.repositories import ArticleRepo, TagRepo, UserRepo

from .base import DEFAULT_LIST_LIMIT, ArticleStore, clean_patch, require_user

logger = logging.getLogger(__name__)


def _to_domain(row: models.Article) -> Article:
    return Article(
        id=row.id,
        owner_id=row.owner_id,
        url=row.url,
        title=row.title,
        summary=row.summary,
        body_length=row.body_length,
        embedding=row.embedding,
        tags=row.tag_names,
        read_at=row.read_at,
        created_at=row.created_at,
        updated_at=row.updated_at,
        owner_email=row.owner.email if row.owner else None,
        owner_name=row.owner.name if row.owner else None,
    )


class SqlArticleStore(ArticleStore):
    """Relational backend on SQLAlchemy's async ORM.

    Each public call runs in its own transaction. Unique-key violations
    surface as :class:`ConflictError` so that tag creation races can be
    absorbed; every other driver error becomes :class:`StorageError`.
    """

    kind = "db"

    def __init__(
        self,
        sessionmaker: async_sessionmaker[AsyncSession],
        engine: Optional[AsyncEngine] = None,
    ) -> None:
        self._sessionmaker = sessionmaker
        self._engine = engine

    @classmethod
    def from_url(cls, url: str) -> "SqlArticleStore":
        engine = create_engine_for(url)
        return cls(make_sessionmaker(engine), engine)

    async def init_schema(self) -> None:
        if self._engine is None:
            raise StorageError("store was built without an engine")
        await init_db(self._engine)

    @asynccontextmanager
    async def _scope(self) -> AsyncIterator[AsyncSession]:
        try:
            async with session_scope(self._sessionmaker) as session:
                yield session
        except IntegrityError as exc:
            raise ConflictError(str(exc.orig)) from exc
        except SQLAlchemyError as exc:
            logger.error("storage_failure", extra={"error_class": type(exc).__name__})
            raise StorageError(str(exc)) from exc

    async def _reload(self, session: AsyncSession, user_id: str, article_id: str) -> Article:
        stmt = (
            select(models.Article)
            .where(models.Article.id == article_id, models.Article.owner_id == user_id)
            .execution_options(populate_existing=True)
        )
        row = (await session.execute(stmt)).scalar_one()
        return _to_domain(row)

    # ------------------------------------------------------------------
    # articles
    async def list_articles(
        self, user_id: str, limit: Optional[int] = DEFAULT_LIST_LIMIT
    ) -> List[Article]:
        user_id = require_user(user_id)
        async with self._scope() as session:
            rows = await ArticleRepo(session).list_for_owner(user_id, limit)
            return [_to_domain(r) for r in rows]

    async def get_article(self, user_id: str, article_id: str) -> Article:
        user_id = require_user(user_id)
        async with self._scope() as session:
            row = await ArticleRepo(session).get_owned(user_id, article_id)
            if row is None:
                raise NotFoundError(f"article {article_id} not found")
            return _to_domain(row)

    async def find_article_by_url(self, user_id: str, url: str) -> Optional[Article]:
        user_id = require_user(user_id)
        async with self._scope() as session:
            row = await ArticleRepo(session).get_by_url(user_id, url)
            return _to_domain(row) if row else None

    async def create_article(self, user_id: str, fields: NewArticle) -> Article:
        user_id = require_user(user_id)
        data = fields.model_dump(exclude={"tags", "owner_email", "owner_name"})
        async with self._scope() as session:
            await UserRepo(session).ensure(user_id, fields.owner_email, fields.owner_name)
            row = await ArticleRepo(session).create(user_id, **data)
            tags = TagRepo(session)
            for name in dict.fromkeys(fields.tags):
                tag = await tags.get_by_name(name) or await tags.create(name)
                await tags.attach(row.id, tag.id)
            return await self._reload(session, user_id, row.id)

    async def update_article(
        self, user_id: str, article_id: str, patch: Mapping[str, Any]
    ) -> Article:
        user_id = require_user(user_id)
        changes = clean_patch(patch)
        async with self._scope() as session:
            repo = ArticleRepo(session)
            row = await repo.get_owned(user_id, article_id)
            if row is None:
                raise NotFoundError(f"article {article_id} not found")
            await repo.update(row, **changes)
            return await self._reload(session, user_id, article_id)

    async def delete_article(self, user_id: str, article_id: str) -> bool:
        user_id = require_user(user_id)
        async with self._scope() as session:
            repo = ArticleRepo(session)
            row = await repo.get_owned(user_id, article_id)
            if row is None:
                return False
            tag_ids = await repo.delete(row)
            await TagRepo(session).delete_orphans(tag_ids)
            return True

    async def search_articles_lexical(
        self, user_id: str, query: str, limit: Optional[int] = DEFAULT_LIST_LIMIT
    ) -> List[Article]:
        user_id = require_user(user_id)
        async with self._scope() as session:
            rows = await ArticleRepo(session).search(user_id, query or "", limit)
            return [_to_domain(r) for r in rows]

    async def list_untagged_articles(
        self, user_id: str, limit: Optional[int] = 200
    ) -> List[Article]:
        user_id = require_user(user_id)
        async with self._scope() as session:
            rows = await ArticleRepo(session).list_untagged(user_id, limit)
            return [_to_domain(r) for r in rows]

    # ------------------------------------------------------------------
    # tags
    async def get_or_create_tag(self, name: str) -> str:
        async with self._scope() as session:
            tag = await TagRepo(session).get_by_name(name)
            if tag is not None:
                return tag.id
        try:
            async with self._scope() as session:
                return (await TagRepo(session).create(name)).id
        except ConflictError:
            # Created concurrently by another enrichment
            logger.info("tag_create_conflict", extra={"tag": name})
        async with self._scope() as session:
            tag = await TagRepo(session).get_by_name(name)
            if tag is None:
                raise StorageError(f"tag {name!r} vanished after a create conflict")
            return tag.id

    async def attach_tag(self, user_id: str, article_id: str, tag_id: str) -> bool:
        user_id = require_user(user_id)
        try:
            async with self._scope() as session:
                if await ArticleRepo(session).get_owned(user_id, article_id) is None:
                    raise NotFoundError(f"article {article_id} not found")
                tags = TagRepo(session)
                if await tags.get_link(article_id, tag_id) is not None:
                    return False
                await tags.attach(article_id, tag_id)
                return True
        except ConflictError:
            logger.info(
                "tag_attach_conflict", extra={"article_id": article_id, "tag_id": tag_id}
            )
            return False

    async def count_article_tags(self, user_id: str, article_id: str) -> int:
        user_id = require_user(user_id)
        async with self._scope() as session:
            if await ArticleRepo(session).get_owned(user_id, article_id) is None:
                raise NotFoundError(f"article {article_id} not found")
            return await TagRepo(session).count_for_article(article_id)

    async def list_user_tag_names(self, user_id: str) -> List[str]:
        user_id = require_user(user_id)
        async with self._scope() as session:
            return await TagRepo(session).names_for_owner(user_id)

    async def detach_tag(self, user_id: str, name: str) -> int:
        user_id = require_user(user_id)
        async with self._scope() as session:
            tags = TagRepo(session)
            tag = await tags.get_by_name(name)
            if tag is None:
                return 0
            removed = await tags.detach_for_owner(user_id, tag.id)
            await tags.delete_orphans([tag.id])
            return removed

    async def count_user_tag_links(self, user_id: str) -> int:
        user_id = require_user(user_id)
        async with self._scope() as session:
            return await TagRepo(session).count_for_owner(user_id)

    # ------------------------------------------------------------------
    # users (import path)
    async def upsert_user_by_email(self, email: str, name: Optional[str] = None) -> User:
        async with self._scope() as session:
            row = await UserRepo(session).upsert_by_email(email, name)
            return User(
                id=row.id,
                email=row.email,
                name=row.name,
                invite_accepted_at=row.invite_accepted_at,
                created_at=row.created_at,
            )

    # ------------------------------------------------------------------
    async def ping(self) -> None:
        async with self._scope() as session:
            await session.execute(text("SELECT 1"))

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()


__all__ = ["SqlArticleStore"]
