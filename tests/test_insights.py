import asyncio
import math
from datetime import date, datetime, timezone
from unittest.mock import MagicMock

import pytest

from libs.usecases.insights import Insights, bullet_summary, week_start


def _utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def test_week_start_is_monday():
    assert week_start(date(2024, 3, 4)) == date(2024, 3, 4)
    assert week_start(date(2024, 3, 6)) == date(2024, 3, 4)
    assert week_start(date(2024, 3, 10)) == date(2024, 3, 4)
    assert week_start(date(2024, 3, 11)) == date(2024, 3, 11)


def test_bullet_summary():
    assert bullet_summary(2, ["python", "rag"]) == (
        "- Articles read this week: 2\n- Frequent topics: python, rag"
    )
    assert bullet_summary(1, []) == "- Articles read this week: 1\n- No tagged articles yet."


def test_weekly_groups_reads_by_monday(store, alice, make_article):
    make_article(
        store, alice, "https://example.com/mon", tags=["python"], read_at=_utc(2024, 3, 4, 9)
    )
    make_article(
        store,
        alice,
        "https://example.com/wed",
        tags=["python", "rag"],
        read_at=_utc(2024, 3, 6, 18),
    )
    make_article(store, alice, "https://example.com/sun", read_at=_utc(2024, 3, 3, 12))
    make_article(store, alice, "https://example.com/unread", tags=["go"])

    insights = asyncio.run(Insights(store).weekly(alice.id))

    assert [(i.week_start, i.count) for i in insights] == [
        (date(2024, 3, 4), 2),
        (date(2024, 2, 26), 1),
    ]
    assert insights[0].top_tags == ["python", "rag"]
    assert insights[0].summary == bullet_summary(2, ["python", "rag"])
    assert insights[1].summary.endswith("- No tagged articles yet.")


def test_weekly_uses_configured_timezone(file_store, alice, make_article):
    # Sunday 16:00 UTC is already Monday in Tokyo
    make_article(file_store, alice, "https://example.com/x", read_at=_utc(2024, 3, 3, 16))

    utc = asyncio.run(Insights(file_store).weekly(alice.id))
    tokyo = asyncio.run(Insights(file_store, tz="Asia/Tokyo").weekly(alice.id))

    assert utc[0].week_start == date(2024, 2, 26)
    assert tokyo[0].week_start == date(2024, 3, 4)


def test_weekly_summary_from_llm(file_store, alice, make_article):
    make_article(file_store, alice, "https://example.com/x", read_at=_utc(2024, 3, 4))
    llm = MagicMock()
    llm.summarize_week.return_value = "You read one article."

    insights = asyncio.run(Insights(file_store, llm).weekly(alice.id))

    assert insights[0].summary == "You read one article."
    llm.summarize_week.assert_called_once_with(bullet_summary(1, []))


@pytest.mark.parametrize("behaviour", [None, RuntimeError("llm down")])
def test_weekly_summary_keeps_bullets_on_llm_failure(file_store, alice, make_article, behaviour):
    make_article(file_store, alice, "https://example.com/x", read_at=_utc(2024, 3, 4))
    llm = MagicMock()
    if isinstance(behaviour, Exception):
        llm.summarize_week.side_effect = behaviour
    else:
        llm.summarize_week.return_value = behaviour

    insights = asyncio.run(Insights(file_store, llm).weekly(alice.id))

    assert insights[0].summary == bullet_summary(1, [])


def test_weekly_without_reads(file_store, alice):
    assert asyncio.run(Insights(file_store).weekly(alice.id)) == []


def test_stats(store, alice, make_article):
    now = _utc(2024, 3, 6, 12)
    make_article(
        store,
        alice,
        "https://example.com/old",
        tags=["go"],
        created_at=_utc(2024, 2, 1),
        read_at=_utc(2024, 2, 2),
    )
    make_article(
        store,
        alice,
        "https://example.com/mon",
        tags=["python", "rag"],
        created_at=_utc(2024, 3, 4, 9),
        read_at=_utc(2024, 3, 5, 10),
    )
    make_article(
        store,
        alice,
        "https://example.com/wed",
        tags=["python"],
        created_at=_utc(2024, 3, 6, 8),
    )

    stats = asyncio.run(Insights(store).stats(alice.id, now=now))

    assert (stats.saved, stats.read, stats.read_percentage) == (3, 2, 67)
    assert [d.day for d in stats.weekly_activity] == ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
    assert stats.weekly_activity[0].date == date(2024, 3, 4)
    assert [(d.saved, d.read) for d in stats.weekly_activity] == [
        (1, 0),
        (0, 1),
        (1, 0),
        (0, 0),
        (0, 0),
        (0, 0),
        (0, 0),
    ]
    assert stats.tags[0].name == "python"
    assert stats.tags[0].count == 2
    assert sorted(t.name for t in stats.tags) == ["go", "python", "rag"]

    names = [r.name for r in stats.recommended_tags]
    assert names == ["python", "rag", "go"]
    python = stats.recommended_tags[0]
    recency = math.exp(-(4 / 24) / 14) + math.exp(-(26 / 24) / 14)
    assert python.score == pytest.approx(round(2 + 2 * 1 + 3 * recency, 2))
    assert (python.count, python.read_count) == (2, 1)
    assert python.reason == "recently active"
    assert stats.recommended_tags[1].reason == ""


def test_stats_previous_week(file_store, alice, make_article):
    make_article(file_store, alice, "https://example.com/x", created_at=_utc(2024, 2, 28, 12))

    stats = asyncio.run(Insights(file_store).stats(alice.id, week_offset=1, now=_utc(2024, 3, 6)))

    assert stats.weekly_activity[0].date == date(2024, 2, 26)
    assert stats.weekly_activity[2].saved == 1


def test_stats_reason_for_read_heavy_tag(file_store, alice, make_article):
    now = _utc(2024, 6, 1)
    for i in range(2):
        make_article(
            file_store,
            alice,
            f"https://example.com/{i}",
            tags=["python"],
            created_at=_utc(2024, 1, 1),
            read_at=_utc(2024, 1, 2),
        )

    stats = asyncio.run(Insights(file_store).stats(alice.id, now=now))

    assert stats.recommended_tags[0].reason == "often in read articles"


def test_stats_empty(file_store, alice):
    stats = asyncio.run(Insights(file_store).stats(alice.id))
    assert (stats.saved, stats.read, stats.read_percentage) == (0, 0, 0)
    assert stats.tags == []
    assert stats.recommended_tags == []
