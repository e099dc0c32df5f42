import asyncio
import sys
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

# Ensure project root on sys.path
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from libs.core.models import NewArticle, User
from libs.core.settings import get_settings
from libs.storage import FileArticleStore, SqlArticleStore


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch, tmp_path):
    """Keep tests away from real credentials, databases and data dirs."""

    monkeypatch.setenv("DATABASE_URL", "")
    monkeypatch.setenv("REPLICATE_API_TOKEN", "")
    monkeypatch.setenv("ENVIRONMENT", "test")
    monkeypatch.setenv("DATA_DIR", str(tmp_path / "data"))
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture()
def file_store(tmp_path):
    return FileArticleStore(tmp_path / "fallback")


@pytest.fixture()
def sql_store(tmp_path):
    store = SqlArticleStore.from_url(f"sqlite+aiosqlite:///{tmp_path / 'lorelog.db'}")
    asyncio.run(store.init_schema())
    yield store
    asyncio.run(store.close())


@pytest.fixture(params=["fallback", "db"])
def store(request):
    """Every storage-level behaviour is checked against both backends."""
    name = "file_store" if request.param == "fallback" else "sql_store"
    return request.getfixturevalue(name)


@pytest.fixture()
def alice() -> User:
    return User(id="user-alice", email="alice@example.com", name="Alice")


@pytest.fixture()
def bob() -> User:
    return User(id="user-bob", email="bob@example.com", name="Bob")


@pytest.fixture()
def make_article():
    """Create an article synchronously; handy for arranging test data."""

    def _make(store, user: User, url: str, **fields):
        fields.setdefault("title", url)
        new = NewArticle(url=url, owner_email=user.email, owner_name=user.name, **fields)
        return asyncio.run(store.create_article(user.id, new))

    return _make


@pytest.fixture()
def embeddings():
    """Embeddings collaborator that is not configured (returns ``None``)."""
    emb = MagicMock()
    emb.embed.return_value = None
    return emb


@pytest.fixture()
def fetcher():
    """Page fetcher that cannot reach anything."""
    f = MagicMock()
    f.fetch = AsyncMock(return_value=None)
    return f
