import asyncio
import json
from datetime import datetime, timedelta, timezone

import pytest

from libs.core.exceptions import NotFoundError, StorageError, ValidationError
from libs.core.models import NewArticle


def test_create_and_get(store, alice, make_article):
    created = make_article(store, alice, "https://example.com/a", title="First")
    assert created.owner_id == alice.id
    assert created.tags == []
    assert created.read_at is None

    fetched = asyncio.run(store.get_article(alice.id, created.id))
    assert fetched.id == created.id
    assert fetched.title == "First"
    assert fetched.created_at.tzinfo is not None


def test_list_newest_first_with_limit(store, alice, make_article):
    base = datetime(2024, 1, 1, tzinfo=timezone.utc)
    for i in range(3):
        make_article(store, alice, f"https://example.com/{i}", created_at=base + timedelta(days=i))

    articles = asyncio.run(store.list_articles(alice.id))
    assert [a.url for a in articles] == [
        "https://example.com/2",
        "https://example.com/1",
        "https://example.com/0",
    ]
    assert len(asyncio.run(store.list_articles(alice.id, limit=2))) == 2
    assert len(asyncio.run(store.list_articles(alice.id, limit=None))) == 3


def test_ownership_isolation(store, alice, bob, make_article):
    art = make_article(store, alice, "https://example.com/private")

    assert asyncio.run(store.list_articles(bob.id)) == []
    with pytest.raises(NotFoundError):
        asyncio.run(store.get_article(bob.id, art.id))
    with pytest.raises(NotFoundError):
        asyncio.run(store.update_article(bob.id, art.id, {"title": "hijacked"}))
    with pytest.raises(NotFoundError):
        asyncio.run(store.mark_read(bob.id, art.id))
    assert asyncio.run(store.delete_article(bob.id, art.id)) is False
    assert asyncio.run(store.find_article_by_url(bob.id, art.url)) is None
    assert asyncio.run(store.search_articles_lexical(bob.id, "private")) == []

    assert asyncio.run(store.get_article(alice.id, art.id)).title == art.title


def test_update_patch_rules(store, alice, make_article):
    art = make_article(store, alice, "https://example.com/p")

    updated = asyncio.run(
        store.update_article(alice.id, art.id, {"summary": "s", "body_length": 120})
    )
    assert updated.summary == "s"
    assert updated.body_length == 120
    assert updated.updated_at >= art.updated_at

    with pytest.raises(ValidationError):
        asyncio.run(store.update_article(alice.id, art.id, {"owner_id": "someone"}))
    with pytest.raises(ValidationError):
        asyncio.run(store.update_article(alice.id, art.id, {"body_length": -1}))
    with pytest.raises(NotFoundError):
        asyncio.run(store.update_article(alice.id, "missing", {"summary": "x"}))


def test_mark_read_and_unread(store, alice, make_article):
    art = make_article(store, alice, "https://example.com/r")
    when = datetime(2024, 3, 4, 10, 0, tzinfo=timezone.utc)

    read = asyncio.run(store.mark_read(alice.id, art.id, when))
    assert read.read_at == when
    assert [a.id for a in asyncio.run(store.list_read_articles(alice.id))] == [art.id]

    unread = asyncio.run(store.mark_unread(alice.id, art.id))
    assert unread.read_at is None


def test_delete_article(store, alice, make_article):
    art = make_article(store, alice, "https://example.com/d", tags=["python"])

    assert asyncio.run(store.delete_article(alice.id, art.id)) is True
    assert asyncio.run(store.delete_article(alice.id, art.id)) is False
    with pytest.raises(NotFoundError):
        asyncio.run(store.get_article(alice.id, art.id))
    assert asyncio.run(store.list_user_tag_names(alice.id)) == []


def test_lexical_search_matches_fields_and_tags(store, alice, make_article):
    make_article(store, alice, "https://example.com/1", title="Intro to FastAPI")
    make_article(store, alice, "https://docs.python.org/3/", title="Docs")
    make_article(store, alice, "https://example.com/3", title="Other", summary="About RUST")
    make_article(store, alice, "https://example.com/4", title="Tagged", tags=["kubernetes"])

    def titles(query):
        return [a.title for a in asyncio.run(store.search_articles_lexical(alice.id, query))]

    assert titles("fastapi") == ["Intro to FastAPI"]
    assert titles("PYTHON.ORG") == ["Docs"]
    assert titles("rust") == ["Other"]
    assert titles("kube") == ["Tagged"]
    assert titles("nothing-here") == []


def test_lexical_search_escapes_wildcards(store, alice, make_article):
    make_article(store, alice, "https://example.com/1", title="100% coverage")
    make_article(store, alice, "https://example.com/2", title="1000 ways")

    found = asyncio.run(store.search_articles_lexical(alice.id, "100%"))
    assert [a.title for a in found] == ["100% coverage"]


def test_tag_primitives(store, alice, bob, make_article):
    art = make_article(store, alice, "https://example.com/t")
    other = make_article(store, bob, "https://example.com/t")

    tag_id = asyncio.run(store.get_or_create_tag("python"))
    assert asyncio.run(store.get_or_create_tag("python")) == tag_id

    assert asyncio.run(store.attach_tag(alice.id, art.id, tag_id)) is True
    assert asyncio.run(store.attach_tag(alice.id, art.id, tag_id)) is False
    assert asyncio.run(store.attach_tag(bob.id, other.id, tag_id)) is True
    assert asyncio.run(store.count_article_tags(alice.id, art.id)) == 1
    assert asyncio.run(store.list_user_tag_names(alice.id)) == ["python"]

    with pytest.raises(NotFoundError):
        asyncio.run(store.attach_tag(bob.id, art.id, tag_id))

    assert asyncio.run(store.detach_tag(alice.id, "python")) == 1
    assert asyncio.run(store.count_user_tag_links(alice.id)) == 0
    # the other user's association is untouched
    assert asyncio.run(store.get_article(bob.id, other.id)).tags == ["python"]


def test_list_untagged(store, alice, make_article):
    make_article(store, alice, "https://example.com/1", tags=["python"])
    bare = make_article(store, alice, "https://example.com/2")

    untagged = asyncio.run(store.list_untagged_articles(alice.id))
    assert [a.id for a in untagged] == [bare.id]


def test_store_requires_user(store):
    with pytest.raises(ValidationError):
        asyncio.run(store.list_articles(""))


# File store specifics ---------------------------------------------------------


def test_file_store_missing_file_is_empty(file_store):
    assert asyncio.run(file_store.list_articles("anyone")) == []
    assert not file_store.path.exists()


def test_file_store_document_layout(file_store, alice, make_article):
    make_article(file_store, alice, "https://example.com/x", tags=["python"])

    doc = json.loads(file_store.path.read_text(encoding="utf-8"))
    assert doc["version"] == 1
    record = doc["articles"][0]
    assert record["ownerId"] == alice.id
    assert record["ownerEmail"] == "alice@example.com"
    assert record["tags"] == ["python"]
    assert "readAt" in record
    assert not file_store.path.with_name("articles.json.tmp").exists()


def test_file_store_reads_legacy_keys(file_store):
    file_store.data_dir.mkdir(parents=True)
    file_store.path.write_text(
        json.dumps(
            {
                "version": 1,
                "articles": [
                    {
                        "id": "a1",
                        "userId": "u1",
                        "userEmail": "old@example.com",
                        "url": "https://example.com",
                        "title": "Old",
                        "createdAt": "2024-01-01T00:00:00.000Z",
                        "updatedAt": "2024-01-01T00:00:00.000Z",
                    }
                ],
            }
        ),
        encoding="utf-8",
    )
    [article] = asyncio.run(file_store.list_articles("u1"))
    assert article.owner_email == "old@example.com"


def test_file_store_corrupt_file_raises(file_store):
    file_store.data_dir.mkdir(parents=True)
    file_store.path.write_text("{broken", encoding="utf-8")
    with pytest.raises(StorageError):
        asyncio.run(file_store.list_articles("u1"))


def test_file_store_keeps_unreadable_records_on_rewrite(file_store, alice):
    legacy = {
        "id": "old",
        "userId": alice.id,
        "url": "https://example.com/legacy",
        "title": None,
        "createdAt": "2024-01-01T00:00:00.000Z",
    }
    file_store.data_dir.mkdir(parents=True)
    file_store.path.write_text(
        json.dumps({"version": 1, "articles": [legacy]}), encoding="utf-8"
    )

    assert asyncio.run(file_store.list_articles(alice.id)) == []
    new = asyncio.run(
        file_store.create_article(alice.id, NewArticle(url="https://example.com/new", title="New"))
    )

    records = json.loads(file_store.path.read_text(encoding="utf-8"))["articles"]
    assert [r["id"] for r in records] == [new.id, "old"]
    assert records[1] == legacy


# Relational store specifics ---------------------------------------------------


def test_sql_store_unique_owner_url(sql_store, alice):
    from libs.core.exceptions import ConflictError

    new = NewArticle(url="https://example.com/dup", title="Dup")
    asyncio.run(sql_store.create_article(alice.id, new))
    with pytest.raises(ConflictError):
        asyncio.run(sql_store.create_article(alice.id, new))


def test_sql_store_tag_gc_on_delete(sql_store, alice, bob):
    art = asyncio.run(
        sql_store.create_article(alice.id, NewArticle(url="https://a", title="A", tags=["solo"]))
    )
    asyncio.run(
        sql_store.create_article(bob.id, NewArticle(url="https://b", title="B", tags=["shared"]))
    )
    asyncio.run(sql_store.delete_article(alice.id, art.id))

    # "solo" lost its last association, so a new tag row is created
    new_id = asyncio.run(sql_store.get_or_create_tag("solo"))
    assert new_id
    assert asyncio.run(sql_store.list_user_tag_names(bob.id)) == ["shared"]


def test_sql_store_ping(sql_store):
    asyncio.run(sql_store.ping())


def test_sql_store_tag_create_conflict_returns_existing(sql_store, monkeypatch):
    from sqlalchemy.exc import IntegrityError

    from libs.db.repositories import TagRepo

    existing_id = asyncio.run(sql_store.get_or_create_tag("python"))

    original_get = TagRepo.get_by_name
    lookups = []

    async def stale_lookup(self, name):
        # First lookup misses, as if another writer had not committed yet
        lookups.append(name)
        if len(lookups) == 1:
            return None
        return await original_get(self, name)

    async def conflicting_create(self, name):
        raise IntegrityError("INSERT INTO tags", {"name": name}, Exception("UNIQUE constraint failed"))

    monkeypatch.setattr(TagRepo, "get_by_name", stale_lookup)
    monkeypatch.setattr(TagRepo, "create", conflicting_create)

    assert asyncio.run(sql_store.get_or_create_tag("python")) == existing_id
    assert lookups == ["python", "python"]
