from __future__ import annotations

import logging
from dataclasses import dataclass

from libs.core.models import NewArticle
from libs.storage import FileArticleStore, SqlArticleStore

logger = logging.getLogger(__name__)


@dataclass
class ImportResult:
    imported: int = 0
    skipped: int = 0


class ImportFallback:
    """Copy articles from the local JSON store into the database.

    Owners are matched by email, so records written before the store kept an
    owner email cannot be attributed and are skipped. Re-running the import
    is safe: a URL the owner already has in the database is skipped.
    """

    def __init__(self, source: FileArticleStore, target: SqlArticleStore) -> None:
        self.source = source
        self.target = target

    async def __call__(self) -> ImportResult:
        result = ImportResult()
        for article in await self.source.list_all_articles():
            url = article.url.strip()
            title = article.title.strip()
            email = (article.owner_email or "").strip().lower()
            if not url or not title or not email:
                result.skipped += 1
                continue

            name = article.owner_name.strip() if article.owner_name else None
            user = await self.target.upsert_user_by_email(email, name or None)
            if await self.target.find_article_by_url(user.id, url) is not None:
                result.skipped += 1
                continue

            await self.target.create_article(
                user.id,
                NewArticle(
                    url=url,
                    title=title,
                    summary=article.summary,
                    body_length=article.body_length,
                    embedding=article.embedding,
                    tags=[t.strip() for t in article.tags if t.strip()],
                    read_at=article.read_at,
                    created_at=article.created_at,
                    owner_email=email,
                    owner_name=name,
                ),
            )
            result.imported += 1

        logger.info(
            "fallback_import_finished",
            extra={"imported": result.imported, "skipped": result.skipped},
        )
        return result


__all__ = ["ImportFallback", "ImportResult"]
