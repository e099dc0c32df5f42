from __future__ import annotations

import asyncio
import logging
from typing import List, Optional, Tuple

from libs.core.exceptions import ValidationError
from libs.core.models import Article
from libs.llm import EmbeddingsProvider
from libs.rag import cosine_similarity, parse_embedding
from libs.storage import ArticleStore

logger = logging.getLogger(__name__)

# Only the most recent articles are scored semantically
CANDIDATE_LIMIT = 200


class Search:
    """Rank a user's articles by semantic similarity to a query.

    Lexical substring search is the answer whenever semantic ranking is not
    possible: no embedding service, no comparable article embeddings, or any
    failure along the way.
    """

    def __init__(self, store: ArticleStore, embeddings: EmbeddingsProvider) -> None:
        self.store = store
        self.embeddings = embeddings

    async def _semantic(self, user_id: str, query: str, limit: int) -> Optional[List[Article]]:
        query_vec = await asyncio.to_thread(self.embeddings.embed, query)
        if not query_vec:
            return None

        candidates = await self.store.list_articles(user_id, limit=CANDIDATE_LIMIT)
        scored: List[Tuple[float, Article]] = []
        mismatched = 0
        for article in candidates:
            vec = parse_embedding(article.embedding)
            if not vec:
                continue
            if len(vec) != len(query_vec):
                mismatched += 1
                continue
            scored.append((cosine_similarity(query_vec, vec), article))
        if mismatched:
            logger.warning(
                "search_skipped_mismatched_embeddings",
                extra={"count": mismatched, "dimension": len(query_vec)},
            )
        if not scored:
            return None
        # sorted() is stable: equal scores keep recency order
        scored = sorted(scored, key=lambda pair: pair[0], reverse=True)
        return [article for _, article in scored[:limit]]

    async def __call__(self, user_id: str, query: str, limit: int = 50) -> List[Article]:
        query = (query or "").strip()
        if not query:
            raise ValidationError("query must not be empty")
        try:
            results = await self._semantic(user_id, query, limit)
        except Exception:  # noqa: BLE001 - any failure degrades to lexical search
            logger.exception("semantic_search_failed")
            results = None
        if results is None:
            logger.debug("search_lexical_fallback", extra={"query_length": len(query)})
            results = await self.store.search_articles_lexical(user_id, query, limit)
        return results


__all__ = ["Search", "CANDIDATE_LIMIT"]
