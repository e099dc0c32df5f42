"""Repository classes for CRUD operations on ORM models."""

from __future__ import annotations

from typing import Any, List, Optional

from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from libs.core.models import utcnow

from . import models


class UserRepo:
    """CRUD operations for :class:`models.User`."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, user_id: str) -> Optional[models.User]:
        return await self.session.get(models.User, user_id)

    async def get_by_email(self, email: str) -> Optional[models.User]:
        stmt = select(models.User).where(models.User.email == email.strip().lower())
        res = await self.session.execute(stmt)
        return res.scalar_one_or_none()

    async def create(
        self,
        email: Optional[str] = None,
        name: Optional[str] = None,
        id: Optional[str] = None,
        **kwargs: Any,
    ) -> models.User:
        user = models.User(
            id=id,
            email=email.strip().lower() if email else None,
            name=name,
            **kwargs,
        )
        self.session.add(user)
        await self.session.flush()
        return user

    async def ensure(
        self, user_id: str, email: Optional[str] = None, name: Optional[str] = None
    ) -> models.User:
        """Return the user row for an authenticated id, creating it on first use."""
        user = await self.get(user_id)
        if user is None:
            # The email may already belong to an imported account
            if email and await self.get_by_email(email) is not None:
                email = None
            user = await self.create(email=email, name=name, id=user_id)
        return user

    async def upsert_by_email(self, email: str, name: Optional[str] = None) -> models.User:
        user = await self.get_by_email(email)
        if user is None:
            return await self.create(email=email, name=name, invite_accepted_at=utcnow())
        if name:
            user.name = name
            await self.session.flush()
        return user


class ArticleRepo:
    """CRUD operations for :class:`models.Article`, always scoped to an owner."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create(self, owner_id: str, **fields: Any) -> models.Article:
        now = utcnow()
        fields.setdefault("created_at", None)
        if fields["created_at"] is None:
            fields["created_at"] = now
        article = models.Article(owner_id=owner_id, updated_at=now, **fields)
        self.session.add(article)
        await self.session.flush()
        return article

    async def get_owned(self, owner_id: str, article_id: str) -> Optional[models.Article]:
        stmt = select(models.Article).where(
            models.Article.id == article_id, models.Article.owner_id == owner_id
        )
        res = await self.session.execute(stmt)
        return res.scalar_one_or_none()

    async def get_by_url(self, owner_id: str, url: str) -> Optional[models.Article]:
        stmt = select(models.Article).where(
            models.Article.owner_id == owner_id, models.Article.url == url
        )
        res = await self.session.execute(stmt)
        return res.scalars().first()

    async def list_for_owner(
        self, owner_id: str, limit: Optional[int] = 50
    ) -> List[models.Article]:
        stmt = (
            select(models.Article)
            .where(models.Article.owner_id == owner_id)
            .order_by(models.Article.created_at.desc())
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        res = await self.session.execute(stmt)
        return list(res.scalars().all())

    async def search(
        self, owner_id: str, query: str, limit: Optional[int] = 50
    ) -> List[models.Article]:
        tag_match = models.Article.tag_links.any(
            models.ArticleTag.tag.has(models.Tag.name.icontains(query, autoescape=True))
        )
        stmt = (
            select(models.Article)
            .where(
                models.Article.owner_id == owner_id,
                or_(
                    models.Article.title.icontains(query, autoescape=True),
                    models.Article.url.icontains(query, autoescape=True),
                    models.Article.summary.icontains(query, autoescape=True),
                    tag_match,
                ),
            )
            .order_by(models.Article.created_at.desc())
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        res = await self.session.execute(stmt)
        return list(res.scalars().all())

    async def list_untagged(
        self, owner_id: str, limit: Optional[int] = 200
    ) -> List[models.Article]:
        stmt = (
            select(models.Article)
            .where(models.Article.owner_id == owner_id, ~models.Article.tag_links.any())
            .order_by(models.Article.created_at.desc())
            .limit(limit)
        )
        res = await self.session.execute(stmt)
        return list(res.scalars().all())

    async def update(self, article: models.Article, **fields: Any) -> models.Article:
        for key, value in fields.items():
            setattr(article, key, value)
        article.updated_at = utcnow()
        await self.session.flush()
        return article

    async def delete(self, article: models.Article) -> List[str]:
        """Delete the article and return the ids of the tags it referenced."""
        tag_ids = [link.tag_id for link in article.tag_links]
        await self.session.delete(article)
        await self.session.flush()
        return tag_ids


class TagRepo:
    """Operations on :class:`models.Tag` and the article/tag association."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_by_name(self, name: str) -> Optional[models.Tag]:
        stmt = select(models.Tag).where(models.Tag.name == name)
        res = await self.session.execute(stmt)
        return res.scalar_one_or_none()

    async def create(self, name: str) -> models.Tag:
        tag = models.Tag(name=name)
        self.session.add(tag)
        await self.session.flush()
        return tag

    async def get_link(self, article_id: str, tag_id: str) -> Optional[models.ArticleTag]:
        return await self.session.get(models.ArticleTag, (article_id, tag_id))

    async def attach(self, article_id: str, tag_id: str) -> models.ArticleTag:
        link = models.ArticleTag(article_id=article_id, tag_id=tag_id, created_at=utcnow())
        self.session.add(link)
        await self.session.flush()
        return link

    async def count_for_article(self, article_id: str) -> int:
        stmt = select(func.count()).select_from(models.ArticleTag).where(
            models.ArticleTag.article_id == article_id
        )
        return int((await self.session.execute(stmt)).scalar_one())

    async def count_for_owner(self, owner_id: str) -> int:
        stmt = (
            select(func.count())
            .select_from(models.ArticleTag)
            .join(models.Article, models.Article.id == models.ArticleTag.article_id)
            .where(models.Article.owner_id == owner_id)
        )
        return int((await self.session.execute(stmt)).scalar_one())

    async def names_for_owner(self, owner_id: str) -> List[str]:
        stmt = (
            select(models.Tag.name)
            .join(models.ArticleTag, models.ArticleTag.tag_id == models.Tag.id)
            .join(models.Article, models.Article.id == models.ArticleTag.article_id)
            .where(models.Article.owner_id == owner_id)
            .distinct()
            .order_by(models.Tag.name)
        )
        res = await self.session.execute(stmt)
        return list(res.scalars().all())

    async def detach_for_owner(self, owner_id: str, tag_id: str) -> int:
        owned = select(models.Article.id).where(models.Article.owner_id == owner_id)
        stmt = delete(models.ArticleTag).where(
            models.ArticleTag.tag_id == tag_id,
            models.ArticleTag.article_id.in_(owned),
        )
        res = await self.session.execute(
            stmt, execution_options={"synchronize_session": False}
        )
        return int(res.rowcount or 0)

    async def delete_orphans(self, tag_ids: List[str]) -> int:
        """Delete tags among ``tag_ids`` that no article references any more."""
        if not tag_ids:
            return 0
        used = select(models.ArticleTag.tag_id).where(models.ArticleTag.tag_id.in_(tag_ids))
        stmt = delete(models.Tag).where(
            models.Tag.id.in_(tag_ids), models.Tag.id.not_in(used)
        )
        res = await self.session.execute(
            stmt, execution_options={"synchronize_session": False}
        )
        return int(res.rowcount or 0)


__all__ = ["UserRepo", "ArticleRepo", "TagRepo"]
