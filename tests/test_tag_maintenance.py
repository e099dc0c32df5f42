import asyncio

from libs.usecases.tag_maintenance import AutoTag, CleanupTags


def test_auto_tag_untagged_articles(store, alice, make_article):
    make_article(store, alice, "https://example.com/1", title="Intro to #python")
    make_article(store, alice, "https://example.com/2", title="Building with React")
    make_article(store, alice, "https://example.com/3", title="Nothing here")
    tagged = make_article(store, alice, "https://example.com/4", title="#go", tags=["golang"])

    result = asyncio.run(AutoTag(store)(alice.id))

    assert (result.processed, result.added_tags, result.remaining) == (3, 2, 1)
    by_url = {a.url: a for a in asyncio.run(store.list_articles(alice.id))}
    assert by_url["https://example.com/1"].tags == ["python"]
    assert by_url["https://example.com/2"].tags == ["react"]
    # already tagged articles are left alone
    assert by_url[tagged.url].tags == ["golang"]


def test_auto_tag_respects_limit(file_store, alice, make_article):
    for i in range(3):
        make_article(file_store, alice, f"https://example.com/{i}", title=f"#topic{i}")

    result = asyncio.run(AutoTag(file_store)(alice.id, limit=2))

    assert (result.processed, result.added_tags, result.remaining) == (2, 2, 1)


def test_cleanup_removes_noisy_tags_for_user_only(store, alice, bob, make_article):
    make_article(
        store, alice, "https://example.com/a", tags=["python", "2024", "入門", "a/b"]
    )
    theirs = make_article(store, bob, "https://example.com/b", tags=["2024"])

    result = asyncio.run(CleanupTags(store)(alice.id))

    assert (result.removed, result.remaining) == (3, 1)
    assert asyncio.run(store.list_user_tag_names(alice.id)) == ["python"]
    assert asyncio.run(store.get_article(bob.id, theirs.id)).tags == ["2024"]


def test_cleanup_with_nothing_to_do(file_store, alice, make_article):
    make_article(file_store, alice, "https://example.com/a", tags=["python"])

    result = asyncio.run(CleanupTags(file_store)(alice.id))

    assert (result.removed, result.remaining) == (0, 1)
