from __future__ import annotations

import logging
from dataclasses import dataclass

from libs.storage import ArticleStore
from libs.tagging import extract_article_tags, is_noisy_tag

from .merge_tags import MergeTags

logger = logging.getLogger(__name__)


@dataclass
class AutoTagResult:
    processed: int
    added_tags: int
    remaining: int


@dataclass
class CleanupResult:
    removed: int
    remaining: int


class AutoTag:
    """Run rule-based tag extraction over a user's untagged articles."""

    def __init__(self, store: ArticleStore, merge_tags: MergeTags | None = None) -> None:
        self.store = store
        self.merge_tags = merge_tags or MergeTags(store)

    async def __call__(self, user_id: str, limit: int = 200) -> AutoTagResult:
        targets = await self.store.list_untagged_articles(user_id, limit=limit)
        added = 0
        for article in targets:
            names = extract_article_tags(article.title, article.summary, article.url)
            result = await self.merge_tags(user_id, article.id, names)
            added += result.added
        remaining = len(await self.store.list_untagged_articles(user_id, limit=None))
        logger.info(
            "auto_tag_finished",
            extra={"processed": len(targets), "added": added, "remaining": remaining},
        )
        return AutoTagResult(processed=len(targets), added_tags=added, remaining=remaining)


class CleanupTags:
    """Detach noisy tags from a user's articles.

    Only this user's associations are removed; the tag row itself goes away
    once no article of any user references it.
    """

    def __init__(self, store: ArticleStore) -> None:
        self.store = store

    async def __call__(self, user_id: str) -> CleanupResult:
        removed = 0
        for name in await self.store.list_user_tag_names(user_id):
            if not is_noisy_tag(name):
                continue
            count = await self.store.detach_tag(user_id, name)
            logger.debug("noisy_tag_removed", extra={"tag": name, "links": count})
            removed += count
        remaining = await self.store.count_user_tag_links(user_id)
        logger.info("tag_cleanup_finished", extra={"removed": removed, "remaining": remaining})
        return CleanupResult(removed=removed, remaining=remaining)


__all__ = ["AutoTag", "AutoTagResult", "CleanupTags", "CleanupResult"]
