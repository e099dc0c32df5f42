from __future__ import annotations

import asyncio
import datetime as dt
import logging
import math
from collections import Counter
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional
from zoneinfo import ZoneInfo

from pydantic import BaseModel, Field

from libs.core.models import Article, as_utc, utcnow
from libs.llm import LLMClient
from libs.storage import ArticleStore

logger = logging.getLogger(__name__)

TOP_TAGS_PER_WEEK = 5
RECOMMENDED_TAGS_LIMIT = 12
RECENCY_DECAY_DAYS = 14.0
DAY_LABELS = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")


class WeeklyInsight(BaseModel):
    week_start: date
    count: int
    top_tags: List[str] = Field(default_factory=list)
    summary: str


class DayActivity(BaseModel):
    day: str
    date: dt.date
    saved: int = 0
    read: int = 0


class TagCount(BaseModel):
    name: str
    count: int


class RecommendedTag(BaseModel):
    name: str
    score: float
    count: int
    read_count: int
    reason: str = ""


class InsightStats(BaseModel):
    saved: int
    read: int
    read_percentage: int
    weekly_activity: List[DayActivity]
    tags: List[TagCount]
    recommended_tags: List[RecommendedTag]


def week_start(day: date) -> date:
    """Monday of the week containing ``day``."""
    return day - timedelta(days=day.weekday())


def bullet_summary(count: int, top_tags: List[str]) -> str:
    lines = [f"- Articles read this week: {count}"]
    if top_tags:
        lines.append(f"- Frequent topics: {', '.join(top_tags)}")
    else:
        lines.append("- No tagged articles yet.")
    return "\n".join(lines)


def _top_tags(articles: List[Article], n: int) -> List[str]:
    # Counter.most_common keeps first-seen order among equal counts
    counts = Counter(t for a in articles for t in a.tags)
    return [name for name, _ in counts.most_common(n)]


def _reason(total: int, read: int, recency: float) -> str:
    reasons: List[str] = []
    if read >= max(2, math.ceil(total * 0.5)):
        reasons.append("often in read articles")
    if recency >= 1.5:
        reasons.append("recently active")
    if not reasons and total >= 2:
        reasons.append("frequent")
    return " / ".join(reasons)


class Insights:
    """Reading statistics and weekly digests for one user."""

    def __init__(
        self,
        store: ArticleStore,
        summarizer: LLMClient | None = None,
        tz: str = "UTC",
    ) -> None:
        self.store = store
        self.summarizer = summarizer
        self.tz = ZoneInfo(tz)

    def _local_date(self, moment: datetime) -> date:
        return moment.astimezone(self.tz).date()

    async def _summarize(self, bullets: str) -> str:
        if self.summarizer is None:
            return bullets
        try:
            text = await asyncio.to_thread(self.summarizer.summarize_week, bullets)
        except Exception:  # noqa: BLE001 - the bullets are a complete answer
            logger.exception("weekly_summary_failed")
            return bullets
        return text or bullets

    async def weekly(self, user_id: str) -> List[WeeklyInsight]:
        """One entry per week with reads, newest week first."""

        read = await self.store.list_read_articles(user_id)
        by_week: Dict[date, List[Article]] = {}
        for article in read:
            moment = article.read_at or article.created_at
            by_week.setdefault(week_start(self._local_date(moment)), []).append(article)

        insights: List[WeeklyInsight] = []
        for start in sorted(by_week, reverse=True):
            articles = by_week[start]
            top = _top_tags(articles, TOP_TAGS_PER_WEEK)
            summary = await self._summarize(bullet_summary(len(articles), top))
            insights.append(
                WeeklyInsight(week_start=start, count=len(articles), top_tags=top, summary=summary)
            )
        return insights

    async def stats(
        self, user_id: str, week_offset: int = 0, now: Optional[datetime] = None
    ) -> InsightStats:
        now = as_utc(now) if now else utcnow()
        articles = await self.store.list_articles(user_id, limit=None)

        saved = len(articles)
        read = sum(1 for a in articles if a.read_at is not None)
        read_percentage = round(read / saved * 100) if saved else 0

        start = week_start(self._local_date(now)) - timedelta(weeks=week_offset)
        activity = [
            DayActivity(day=label, date=start + timedelta(days=i))
            for i, label in enumerate(DAY_LABELS)
        ]
        for article in articles:
            idx = (self._local_date(article.created_at) - start).days
            if 0 <= idx < 7:
                activity[idx].saved += 1
            if article.read_at is not None:
                idx = (self._local_date(article.read_at) - start).days
                if 0 <= idx < 7:
                    activity[idx].read += 1

        counts = Counter(t for a in articles for t in a.tags)
        tags = [TagCount(name=name, count=count) for name, count in counts.most_common()]

        totals: Dict[str, List[float]] = {}
        for article in articles:
            if not article.tags:
                continue
            moment = article.read_at or article.created_at
            days = max(0.0, (now - moment).total_seconds() / 86400)
            recency = math.exp(-days / RECENCY_DECAY_DAYS)
            for name in article.tags:
                entry = totals.setdefault(name, [0, 0, 0.0])
                entry[0] += 1
                entry[1] += 1 if article.read_at is not None else 0
                entry[2] += recency

        recommended = [
            RecommendedTag(
                name=name,
                score=round(total + read_count * 2 + recency * 3, 2),
                count=int(total),
                read_count=int(read_count),
                reason=_reason(int(total), int(read_count), recency),
            )
            for name, (total, read_count, recency) in totals.items()
        ]
        recommended.sort(key=lambda r: r.score, reverse=True)

        return InsightStats(
            saved=saved,
            read=read,
            read_percentage=read_percentage,
            weekly_activity=activity,
            tags=tags,
            recommended_tags=recommended[:RECOMMENDED_TAGS_LIMIT],
        )


__all__ = [
    "Insights",
    "WeeklyInsight",
    "DayActivity",
    "TagCount",
    "RecommendedTag",
    "InsightStats",
    "bullet_summary",
    "week_start",
]
