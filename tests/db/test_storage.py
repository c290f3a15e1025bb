"""Tests for the document-collection layer over SQLAlchemy."""
from datetime import UTC, datetime, timedelta
from uuid import UUID

import pytest
from sqlalchemy.exc import IntegrityError

from db.storage import (
    InvalidQueryError,
    StorageManager,
    UnknownCollectionError,
    UnknownPluginOperationError,
)


T0 = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)


async def seed_tags(storage: StorageManager) -> None:
    tags = storage.collection("tags")
    for name, url in [
        ("python", "example.com/a"),
        ("rust", "example.com/a"),
        ("python", "example.com/b"),
        ("Pyramid", "example.com/c"),
    ]:
        await tags.create_object({"name": name, "url": url})


# =============================================================================
# Collection registry
# =============================================================================


def test__collection__unknown_name_raises(storage: StorageManager) -> None:
    with pytest.raises(UnknownCollectionError):
        storage.collection("bookmarks")


def test__collection__registered_by_table_name(storage: StorageManager) -> None:
    for name in ("pages", "visits", "custom_lists", "page_list_entries", "annotations",
                 "annotation_bookmarks", "annotation_list_entries", "tags", "preferences"):
        assert storage.has_collection(name)


def test__collection__pk_fields(storage: StorageManager) -> None:
    assert storage.collection("tags").pk_fields == ("name", "url")
    assert storage.collection("pages").pk_fields == ("url",)


# =============================================================================
# find_object / find_objects
# =============================================================================


async def test__find_object__returns_none_when_missing(storage: StorageManager) -> None:
    assert await storage.collection("pages").find_object({"url": "example.com/missing"}) is None


async def test__find_objects__equality_and_in(storage: StorageManager) -> None:
    await seed_tags(storage)
    tags = storage.collection("tags")

    found = await tags.find_objects({"url": "example.com/a"}, order_by=[("name", "asc")])
    assert [t.name for t in found] == ["python", "rust"]

    found = await tags.find_objects({"url": {"$in": ["example.com/b", "example.com/c"]}})
    assert {t.url for t in found} == {"example.com/b", "example.com/c"}


async def test__find_objects__nin_and_ne(storage: StorageManager) -> None:
    await seed_tags(storage)
    tags = storage.collection("tags")

    found = await tags.find_objects({"url": {"$nin": ["example.com/a"]}, "name": {"$ne": "Pyramid"}})
    assert [(t.name, t.url) for t in found] == [("python", "example.com/b")]


async def test__find_objects__prefix_ignore_case(storage: StorageManager) -> None:
    await seed_tags(storage)
    tags = storage.collection("tags")

    found = await tags.find_objects(
        {"name": {"$prefix": "PY"}},
        ignore_case=["name"],
        order_by=[("url", "asc")],
    )
    assert [(t.name, t.url) for t in found] == [
        ("python", "example.com/a"),
        ("python", "example.com/b"),
        ("Pyramid", "example.com/c"),
    ]


async def test__find_objects__prefix_escapes_wildcards(storage: StorageManager) -> None:
    tags = storage.collection("tags")
    await tags.create_object({"name": "100%", "url": "example.com/a"})
    await tags.create_object({"name": "1000", "url": "example.com/a"})

    found = await tags.find_objects({"name": {"$prefix": "100%"}})
    assert [t.name for t in found] == ["100%"]


async def test__find_objects__range_order_skip_limit(storage: StorageManager) -> None:
    visits = storage.collection("visits")
    for hours in range(5):
        await visits.create_object({"url": "example.com/a", "time": T0 + timedelta(hours=hours)})

    found = await visits.find_objects(
        {"time": {"$gte": T0 + timedelta(hours=1), "$lte": T0 + timedelta(hours=4)}},
        order_by=[("time", "desc")],
        skip=1,
        limit=2,
    )
    assert [v.time for v in found] == [T0 + timedelta(hours=3), T0 + timedelta(hours=2)]


async def test__find_objects__none_condition_matches_null(storage: StorageManager) -> None:
    pages = storage.collection("pages")
    await pages.create_object({"url": "example.com/a", "full_url": "https://example.com/a"})
    await pages.create_object(
        {"url": "example.com/b", "full_url": "https://example.com/b", "title": "B"},
    )

    found = await pages.find_objects({"title": None})
    assert [p.url for p in found] == ["example.com/a"]


async def test__find_objects__unknown_field_raises(storage: StorageManager) -> None:
    with pytest.raises(InvalidQueryError, match="no field 'colour'"):
        await storage.collection("tags").find_objects({"colour": "red"})


async def test__find_objects__unknown_operator_raises(storage: StorageManager) -> None:
    with pytest.raises(InvalidQueryError, match=r"\$regex"):
        await storage.collection("tags").find_objects({"name": {"$regex": "^p"}})


async def test__count_objects(storage: StorageManager) -> None:
    await seed_tags(storage)
    assert await storage.collection("tags").count_objects({"name": "python"}) == 2
    assert await storage.collection("tags").count_objects() == 4


# =============================================================================
# create_object conflict policies
# =============================================================================


async def test__create_object__duplicate_key_raises_by_default(storage: StorageManager) -> None:
    tags = storage.collection("tags")
    await tags.create_object({"name": "python", "url": "example.com/a"})

    with pytest.raises(IntegrityError):
        await tags.create_object({"name": "python", "url": "example.com/a"})


async def test__create_object__ignore_returns_existing(storage: StorageManager) -> None:
    entries = storage.collection("page_list_entries")
    first = await entries.create_object(
        {"list_id": UUID(int=1), "page_url": "example.com/a", "full_url": "https://example.com/a"},
    )
    again = await entries.create_object(
        {"list_id": UUID(int=1), "page_url": "example.com/a", "full_url": "http://example.com/a"},
        on_conflict="ignore",
    )

    assert again.full_url == "https://example.com/a"
    assert again.created_at == first.created_at
    assert await entries.count_objects() == 1


async def test__create_object__update_overwrites_fields(storage: StorageManager) -> None:
    prefs = storage.collection("preferences")
    await prefs.create_object({"key": "index_links", "value": False})
    updated = await prefs.create_object({"key": "index_links", "value": True}, on_conflict="update")

    assert updated.value is True
    assert (await prefs.find_object({"key": "index_links"})).value is True


async def test__create_object__unique_index_conflict_not_recovered(storage: StorageManager) -> None:
    """A clash on a secondary unique index has no stored object under the new key."""
    lists = storage.collection("custom_lists")
    await lists.create_object({"name": "Research"})

    with pytest.raises(IntegrityError):
        await lists.create_object({"id": UUID(int=2), "name": "research"}, on_conflict="ignore")


async def test__create_object__fills_defaults(storage: StorageManager) -> None:
    created = await storage.collection("custom_lists").create_object({"name": "Reading"})

    assert created.id is not None
    assert created.created_at.tzinfo is not None


# =============================================================================
# update / delete
# =============================================================================


async def test__update_objects__returns_rowcount(storage: StorageManager) -> None:
    await seed_tags(storage)
    tags = storage.collection("tags")

    changed = await tags.update_objects({"name": "python"}, {"name": "py"})

    assert changed == 2
    assert await tags.count_objects({"name": "py"}) == 2


async def test__update_object__no_match_returns_zero(storage: StorageManager) -> None:
    changed = await storage.collection("pages").update_object(
        {"url": "example.com/none"}, {"title": "x"},
    )
    assert changed == 0


async def test__delete_objects__returns_rowcount(storage: StorageManager) -> None:
    await seed_tags(storage)
    tags = storage.collection("tags")

    assert await tags.delete_objects({"url": "example.com/a"}) == 2
    assert await tags.delete_objects({"url": "example.com/a"}) == 0
    assert await tags.count_objects() == 2


# =============================================================================
# Plugins and execute
# =============================================================================


class EchoPlugin:
    """Plugin exposing one operation that echoes its argument."""

    def install(self, storage: StorageManager) -> dict:
        async def echo(value: str) -> str:
            return value

        return {"test:echo": echo}


async def test__execute__runs_collection_verb(storage: StorageManager) -> None:
    await storage.execute("tags", "create_object", {"name": "a", "url": "example.com/a"})

    found = await storage.execute("tags", "find_object", {"name": "a"})
    assert found.url == "example.com/a"


async def test__execute__runs_plugin_operation(storage: StorageManager) -> None:
    storage.register_plugin(EchoPlugin())

    assert storage.has_plugin_operation("test:echo")
    assert await storage.execute(None, "test:echo", "hello") == "hello"


async def test__execute__unknown_plugin_operation_raises(storage: StorageManager) -> None:
    with pytest.raises(UnknownPluginOperationError):
        await storage.execute(None, "test:missing")


def test__register_plugin__duplicate_operation_raises(storage: StorageManager) -> None:
    storage.register_plugin(EchoPlugin())

    with pytest.raises(ValueError, match="already registered"):
        storage.register_plugin(EchoPlugin())
