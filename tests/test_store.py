"""文档存储测试。"""

from datetime import UTC, datetime, timedelta

import pytest

from estatehub.core.store import DocumentStore


@pytest.fixture
def store(temp_dir):
    return DocumentStore(str(temp_dir / "store.db"))


@pytest.mark.asyncio
async def test_insert_assigns_metadata(store) -> None:
    doc = await store.insert("listings", {"title": "A"})

    assert doc["id"]
    assert doc["version"] == 1
    assert doc["created_at"] == doc["updated_at"]

    loaded = await store.get("listings", doc["id"])
    assert loaded == doc


@pytest.mark.asyncio
async def test_replace_bumps_version(store) -> None:
    doc = await store.insert("listings", {"title": "A"})
    updated = await store.replace("listings", doc["id"], {"title": "B"})

    assert updated["title"] == "B"
    assert updated["version"] == 2
    assert updated["created_at"] == doc["created_at"]


@pytest.mark.asyncio
async def test_replace_missing_returns_none(store) -> None:
    assert await store.replace("listings", "missing", {"title": "B"}) is None


@pytest.mark.asyncio
async def test_delete_and_collections_are_isolated(store) -> None:
    doc = await store.insert("listings", {"id": "same", "title": "A"})
    await store.insert("users", {"id": "same", "username": "u"})

    assert await store.delete("listings", doc["id"]) is True
    assert await store.delete("listings", doc["id"]) is False
    assert await store.get("listings", "same") is None
    assert (await store.get("users", "same"))["username"] == "u"


@pytest.mark.asyncio
async def test_find_one_and_all(store) -> None:
    await store.insert("users", {"email": "a@example.com"})
    second = await store.insert("users", {"email": "b@example.com"})

    found = await store.find_one("users", "email", "b@example.com")
    assert found["id"] == second["id"]
    assert await store.find_one("users", "email", "c@example.com") is None
    assert len(await store.all("users")) == 2
    assert len(await store.all("users", limit=1)) == 1


@pytest.mark.asyncio
async def test_upsert_inserts_then_overwrites(store) -> None:
    first = await store.upsert("staged", {"id": "k", "url": "a"})
    assert first["version"] == 1

    second = await store.upsert("staged", {"id": "k", "url": "b"})
    assert second["url"] == "b"
    assert second["version"] == 2
    assert second["created_at"] == first["created_at"]
    assert len(await store.all("staged")) == 1


@pytest.mark.asyncio
async def test_created_before(store) -> None:
    doc = await store.insert("staged", {"url": "a"})

    assert await store.created_before("staged", datetime.now(UTC) - timedelta(hours=1)) == []
    older = await store.created_before("staged", datetime.now(UTC) + timedelta(seconds=1))
    assert [d["id"] for d in older] == [doc["id"]]
