from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from libs.core.exceptions import ConflictError, UnavailableCollaboratorError, ValidationError
from libs.core.models import Article, NewArticle, User
from libs.core.types import Result, is_error
from libs.llm import EmbeddingsProvider
from libs.rag import serialize_embedding
from libs.storage import ArticleStore
from libs.tagging import extract_article_tags
from libs.web import PageMetadata, PageMetadataFetcher, provisional_title

from .merge_tags import MergeTags

logger = logging.getLogger(__name__)


class EnrichmentState(str, Enum):
    CREATED = "created"
    ENRICHING = "enriching"
    ENRICHED = "enriched"
    ENRICH_FAILED = "enrich_failed"


@dataclass
class EnrichmentReport:
    article: Article
    state: EnrichmentState
    # step name -> reason, only for steps that failed
    failures: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failures


def validate_url(url: Optional[str]) -> str:
    url = (url or "").strip()
    if not url:
        raise ValidationError("url is required")
    try:
        parsed = urlparse(url)
    except ValueError as exc:
        raise ValidationError(f"invalid url: {url}") from exc
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ValidationError(f"url must be an absolute http(s) URL: {url}")
    return url


class IngestArticle:
    """Save a URL for a user and enrich it with page metadata, embedding and tags.

    Enrichment is best effort. A failing collaborator never removes data that
    an earlier run already stored, so calling :meth:`enrich` again is the
    retry mechanism.
    """

    def __init__(
        self,
        store: ArticleStore,
        fetcher: PageMetadataFetcher,
        embeddings: EmbeddingsProvider,
        merge_tags: MergeTags | None = None,
    ) -> None:
        self.store = store
        self.fetcher = fetcher
        self.embeddings = embeddings
        self.merge_tags = merge_tags or MergeTags(store)

    # ------------------------------------------------------------------
    async def create(self, user: User, url: str, fast: bool = False) -> EnrichmentReport:
        url = validate_url(url)
        existing = await self.store.find_article_by_url(user.id, url)
        if existing is not None:
            logger.info("article_exists", extra={"article_id": existing.id})
            return EnrichmentReport(article=existing, state=EnrichmentState.CREATED)

        fields = NewArticle(
            url=url,
            title=provisional_title(url),
            owner_email=user.email,
            owner_name=user.name,
        )
        try:
            article = await self.store.create_article(user.id, fields)
        except ConflictError:
            # Saved concurrently under the same URL
            article = await self.store.find_article_by_url(user.id, url)
            if article is None:
                raise
            return EnrichmentReport(article=article, state=EnrichmentState.CREATED)

        logger.info("article_created", extra={"article_id": article.id, "fast": fast})
        if fast:
            return EnrichmentReport(article=article, state=EnrichmentState.CREATED)
        return await self.enrich(user.id, article.id)

    # ------------------------------------------------------------------
    async def _fetch_metadata(self, url: str) -> Result[PageMetadata]:
        try:
            meta = await self.fetcher.fetch(url)
        except Exception as exc:  # noqa: BLE001 - collaborator contract says never raises
            logger.warning("metadata_fetch_failed", extra={"url": url, "error": str(exc)})
            return UnavailableCollaboratorError(str(exc))
        if meta is None:
            return UnavailableCollaboratorError("page metadata unavailable")
        return meta

    async def _embed(self, text: str) -> Result[Optional[List[float]]]:
        try:
            return await asyncio.to_thread(self.embeddings.embed, text)
        except Exception as exc:  # noqa: BLE001
            logger.warning("embedding_failed", extra={"error": str(exc)})
            return UnavailableCollaboratorError(str(exc))

    async def enrich(self, user_id: str, article_id: str) -> EnrichmentReport:
        article = await self.store.get_article(user_id, article_id)
        logger.info(
            "enrichment_started",
            extra={"article_id": article_id, "state": EnrichmentState.ENRICHING.value},
        )
        failures: Dict[str, str] = {}
        title, summary, body_length = article.title, article.summary, article.body_length

        meta = await self._fetch_metadata(article.url)
        if is_error(meta):
            failures["metadata"] = str(meta)
        else:
            if meta.title and meta.title.strip() and meta.title != article.url:
                title = meta.title.strip()
            if meta.summary and meta.summary.strip():
                summary = meta.summary.strip()
            if meta.body_length and meta.body_length > 0:
                body_length = meta.body_length

        embedding = article.embedding
        vector = await self._embed(f"{title} {article.url}")
        if is_error(vector):
            failures["embedding"] = str(vector)
        elif vector:
            embedding = serialize_embedding(vector)

        patch: Dict[str, Any] = {}
        for name, value in (
            ("title", title),
            ("summary", summary),
            ("body_length", body_length),
            ("embedding", embedding),
        ):
            if getattr(article, name) != value:
                patch[name] = value
        if patch:
            article = await self.store.update_article(user_id, article_id, patch)

        tags = extract_article_tags(article.title, article.summary, article.url)
        merged = await self.merge_tags(user_id, article_id, tags)
        if merged.added:
            article = await self.store.get_article(user_id, article_id)

        state = EnrichmentState.ENRICH_FAILED if failures else EnrichmentState.ENRICHED
        log = logger.warning if failures else logger.info
        log(
            "enrichment_finished",
            extra={
                "article_id": article_id,
                "state": state.value,
                "failures": failures,
                "changed": sorted(patch),
                "tags_added": merged.added,
            },
        )
        return EnrichmentReport(article=article, state=state, failures=failures)


__all__ = ["IngestArticle", "EnrichmentReport", "EnrichmentState", "validate_url"]
