from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, List

from libs.storage import ArticleStore

logger = logging.getLogger(__name__)


@dataclass
class MergeResult:
    added: int
    total: int


def _clean_names(names: Iterable[str]) -> List[str]:
    out: List[str] = []
    for name in names:
        name = (name or "").strip()
        if name and name not in out:
            out.append(name)
    return out


class MergeTags:
    """Attach tag names to an article without ever creating duplicates.

    Running the same merge twice leaves the article unchanged the second
    time. Concurrent merges are safe because the store reports an existing
    association instead of failing.
    """

    def __init__(self, store: ArticleStore) -> None:
        self.store = store

    async def __call__(
        self, user_id: str, article_id: str, tag_names: Iterable[str]
    ) -> MergeResult:
        article = await self.store.get_article(user_id, article_id)
        existing = set(article.tags)
        added = 0
        for name in _clean_names(tag_names):
            if name in existing:
                continue
            tag_id = await self.store.get_or_create_tag(name)
            if await self.store.attach_tag(user_id, article_id, tag_id):
                added += 1
            existing.add(name)
        total = await self.store.count_article_tags(user_id, article_id)
        if added:
            logger.debug(
                "tags_merged",
                extra={"article_id": article_id, "added": added, "total": total},
            )
        return MergeResult(added=added, total=total)


__all__ = ["MergeTags", "MergeResult"]
