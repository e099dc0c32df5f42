from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from functools import lru_cache
from typing import Any, AsyncIterator, Dict, Literal, Optional

from fastapi import BackgroundTasks, Depends, FastAPI, Header, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from libs.core.exceptions import (
    ConfigurationError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from libs.core.models import Article, User
from libs.core.settings import get_settings
from libs.llm import EmbeddingsProvider, LLMClient, LLMClientError, ReplicateLLMClient
from libs.logging import setup_logging
from libs.storage import ArticleStore, SqlArticleStore, build_store
from libs.usecases.ingest_article import EnrichmentReport, IngestArticle
from libs.usecases.insights import Insights
from libs.usecases.merge_tags import MergeTags
from libs.usecases.search import Search
from libs.usecases.tag_maintenance import AutoTag, CleanupTags
from libs.web import PageMetadataFetcher

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings = get_settings()
    setup_logging(settings)
    store = build_store(settings)
    if isinstance(store, SqlArticleStore):
        await store.init_schema()
    app.state.store = store
    logger.info("api_started", extra={"storage": store.kind})
    try:
        yield
    finally:
        await store.close()


app = FastAPI(title="LoreLog API", lifespan=lifespan)


# ---------------------------------------------------------------------------
# Error mapping


@app.exception_handler(ValidationError)
async def _validation_error(_: Request, exc: ValidationError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": str(exc)})


@app.exception_handler(NotFoundError)
async def _not_found(_: Request, exc: NotFoundError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})


@app.exception_handler(StorageError)
async def _storage_error(_: Request, exc: StorageError) -> JSONResponse:
    logger.error("storage_unavailable", extra={"error": str(exc)})
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "Storage is unavailable"},
    )


# ---------------------------------------------------------------------------
# Dependency factories


def get_store(request: Request) -> ArticleStore:
    store = getattr(request.app.state, "store", None)
    if store is None:
        raise ConfigurationError("storage backend was not initialised")
    return store


@lru_cache
def get_embeddings_provider() -> EmbeddingsProvider:
    """One provider per process so its vector cache outlives a request."""
    return EmbeddingsProvider()


def get_page_fetcher() -> PageMetadataFetcher:
    return PageMetadataFetcher()


def get_llm_client() -> Optional[LLMClient]:
    try:
        return ReplicateLLMClient()
    except LLMClientError as exc:
        # Insights fall back to the bullet summary
        logger.warning("summarizer_unavailable", extra={"error": str(exc)})
        return None


async def current_user(
    user_id: str | None = Header(None, alias="X-User-Id"),
    email: str | None = Header(None, alias="X-User-Email"),
    name: str | None = Header(None, alias="X-User-Name"),
) -> User:
    """Identity is established upstream and forwarded in headers."""
    if not user_id or not user_id.strip():
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    return User(id=user_id.strip(), email=email, name=name)


def merge_tags_uc(store: ArticleStore = Depends(get_store)) -> MergeTags:
    return MergeTags(store)


def ingest_article_uc(
    store: ArticleStore = Depends(get_store),
    fetcher: PageMetadataFetcher = Depends(get_page_fetcher),
    emb: EmbeddingsProvider = Depends(get_embeddings_provider),
    merge: MergeTags = Depends(merge_tags_uc),
) -> IngestArticle:
    return IngestArticle(store, fetcher, emb, merge)


def search_uc(
    store: ArticleStore = Depends(get_store),
    emb: EmbeddingsProvider = Depends(get_embeddings_provider),
) -> Search:
    return Search(store, emb)


def insights_uc(
    store: ArticleStore = Depends(get_store),
    llm: Optional[LLMClient] = Depends(get_llm_client),
) -> Insights:
    return Insights(store, llm, tz=get_settings().insights_timezone)


def auto_tag_uc(
    store: ArticleStore = Depends(get_store),
    merge: MergeTags = Depends(merge_tags_uc),
) -> AutoTag:
    return AutoTag(store, merge)


def cleanup_tags_uc(store: ArticleStore = Depends(get_store)) -> CleanupTags:
    return CleanupTags(store)


# ---------------------------------------------------------------------------
# Pydantic schemas


class CreateArticleRequest(BaseModel):
    url: str
    mode: Literal["fast", "full"] = "full"
    # Respond right away and enrich after the response is sent
    background: bool = False


class SearchRequest(BaseModel):
    query: str
    limit: int = Field(50, ge=1, le=200)


def _article_out(article: Article) -> Dict[str, Any]:
    return article.model_dump(mode="json", exclude={"embedding"})


def _report_out(report: EnrichmentReport, store: ArticleStore) -> Dict[str, Any]:
    return {
        "article": _article_out(report.article),
        "state": report.state.value,
        "failures": report.failures,
        "storage": store.kind,
    }


async def _enrich_in_background(uc: IngestArticle, user_id: str, article_id: str) -> None:
    try:
        await uc.enrich(user_id, article_id)
    except Exception:  # noqa: BLE001 - nobody is waiting for the result
        logger.exception("background_enrichment_failed", extra={"article_id": article_id})


# Routes ---------------------------------------------------------------------


@app.get("/health")
async def health(store: ArticleStore = Depends(get_store)) -> JSONResponse:
    try:
        await store.ping()
    except StorageError as exc:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "error", "storage": store.kind, "detail": str(exc)},
        )
    return JSONResponse(content={"status": "ok", "storage": store.kind})


@app.get("/articles")
async def list_articles(
    limit: int = Query(50, ge=1, le=500),
    store: ArticleStore = Depends(get_store),
    user: User = Depends(current_user),
) -> Dict[str, Any]:
    articles = await store.list_articles(user.id, limit=limit)
    return {"articles": [_article_out(a) for a in articles], "storage": store.kind}


@app.post("/articles", status_code=status.HTTP_201_CREATED)
async def create_article(
    req: CreateArticleRequest,
    background_tasks: BackgroundTasks,
    uc: IngestArticle = Depends(ingest_article_uc),
    store: ArticleStore = Depends(get_store),
    user: User = Depends(current_user),
) -> Dict[str, Any]:
    fast = req.mode == "fast" or req.background
    report = await uc.create(user, req.url, fast=fast)
    if req.background and req.mode == "full":
        background_tasks.add_task(_enrich_in_background, uc, user.id, report.article.id)
    return _report_out(report, store)


@app.delete("/articles/{article_id}")
async def delete_article(
    article_id: str,
    store: ArticleStore = Depends(get_store),
    user: User = Depends(current_user),
) -> Dict[str, Any]:
    if not await store.delete_article(user.id, article_id):
        raise NotFoundError(f"article {article_id} not found")
    return {"deleted": True, "storage": store.kind}


@app.post("/articles/{article_id}/read")
async def mark_read(
    article_id: str,
    store: ArticleStore = Depends(get_store),
    user: User = Depends(current_user),
) -> Dict[str, Any]:
    article = await store.mark_read(user.id, article_id)
    return {"article": _article_out(article), "storage": store.kind}


@app.post("/articles/{article_id}/unread")
async def mark_unread(
    article_id: str,
    store: ArticleStore = Depends(get_store),
    user: User = Depends(current_user),
) -> Dict[str, Any]:
    article = await store.mark_unread(user.id, article_id)
    return {"article": _article_out(article), "storage": store.kind}


@app.post("/articles/{article_id}/enrich")
async def enrich_article(
    article_id: str,
    uc: IngestArticle = Depends(ingest_article_uc),
    store: ArticleStore = Depends(get_store),
    user: User = Depends(current_user),
) -> Dict[str, Any]:
    report = await uc.enrich(user.id, article_id)
    return _report_out(report, store)


@app.post("/search")
async def search(
    req: SearchRequest,
    uc: Search = Depends(search_uc),
    store: ArticleStore = Depends(get_store),
    user: User = Depends(current_user),
) -> Dict[str, Any]:
    results = await uc(user.id, req.query, req.limit)
    return {"articles": [_article_out(a) for a in results], "storage": store.kind}


@app.get("/insights")
async def weekly_insights(
    uc: Insights = Depends(insights_uc),
    store: ArticleStore = Depends(get_store),
    user: User = Depends(current_user),
) -> Dict[str, Any]:
    insights = await uc.weekly(user.id)
    return {
        "insights": [i.model_dump(mode="json") for i in insights],
        "storage": store.kind,
    }


@app.get("/insights/stats")
async def insight_stats(
    week_offset: int = Query(0, ge=0, le=520),
    uc: Insights = Depends(insights_uc),
    store: ArticleStore = Depends(get_store),
    user: User = Depends(current_user),
) -> Dict[str, Any]:
    stats = await uc.stats(user.id, week_offset=week_offset)
    return {**stats.model_dump(mode="json"), "storage": store.kind}


@app.post("/tags/auto")
async def auto_tag(
    uc: AutoTag = Depends(auto_tag_uc),
    store: ArticleStore = Depends(get_store),
    user: User = Depends(current_user),
) -> Dict[str, Any]:
    result = await uc(user.id)
    return {
        "processed": result.processed,
        "added_tags": result.added_tags,
        "remaining": result.remaining,
        "storage": store.kind,
    }


@app.post("/tags/cleanup")
async def cleanup_tags(
    uc: CleanupTags = Depends(cleanup_tags_uc),
    store: ArticleStore = Depends(get_store),
    user: User = Depends(current_user),
) -> Dict[str, Any]:
    result = await uc(user.id)
    return {"removed": result.removed, "remaining": result.remaining, "storage": store.kind}


__all__ = ["app"]
