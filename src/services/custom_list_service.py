"""Service layer for custom lists and page-to-list membership."""
import asyncio
import logging
from collections import defaultdict
from collections.abc import Iterable, Sequence
from typing import Any
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from uuid6 import uuid7

from core.events import EventName, EventSink, emit_event
from core.urls import normalize_url
from db.storage import StorageManager
from schemas.custom_list import ListSuggestion, ListView, PageListEntryView
from services.exceptions import ListNotFoundError
from services.operations import Operation, StorageModule, Verb
from services.page_service import PageMaterializer

logger = logging.getLogger(__name__)

LISTS_COLL = "custom_lists"
LIST_ENTRIES_COLL = "page_list_entries"

SUGGESTION_LIMIT = 10


class CustomListStorage(StorageModule):
    """Persistence for lists and their page entries."""

    operations = {
        "create_list": Operation(
            collection=LISTS_COLL,
            verb=Verb.CREATE_OBJECT,
        ),
        "find_list_by_id": Operation(
            collection=LISTS_COLL,
            verb=Verb.FIND_OBJECT,
            args={"id": "$id:uuid"},
        ),
        "find_list_ignore_case": Operation(
            collection=LISTS_COLL,
            verb=Verb.FIND_OBJECT,
            args={"name": "$name:string"},
            kwargs={"ignore_case": ["name"]},
        ),
        "find_lists": Operation(
            collection=LISTS_COLL,
            verb=Verb.FIND_OBJECTS,
            args={"id": {"$nin": "$excluded_ids:any"}},
            kwargs={
                "order_by": [("created_at", "desc"), ("id", "desc")],
                "skip": "$skip:int",
                "limit": "$limit:int",
            },
        ),
        "find_lists_by_ids": Operation(
            collection=LISTS_COLL,
            verb=Verb.FIND_OBJECTS,
            args={"id": {"$in": "$ids:any"}},
        ),
        "find_lists_by_name_prefix": Operation(
            collection=LISTS_COLL,
            verb=Verb.FIND_OBJECTS,
            args={"name": {"$prefix": "$name:string"}},
            kwargs={
                "ignore_case": ["name"],
                "order_by": [("name", "asc")],
                "limit": "$limit:int",
            },
        ),
        "update_list_name": Operation(
            collection=LISTS_COLL,
            verb=Verb.UPDATE_OBJECT,
            args=[{"id": "$id:uuid"}, {"name": "$name:string"}],
        ),
        "delete_list": Operation(
            collection=LISTS_COLL,
            verb=Verb.DELETE_OBJECT,
            args={"id": "$id:uuid"},
        ),
        "create_list_entry": Operation(
            collection=LIST_ENTRIES_COLL,
            verb=Verb.CREATE_OBJECT,
            kwargs={"on_conflict": "ignore"},
        ),
        "find_entries_by_list": Operation(
            collection=LIST_ENTRIES_COLL,
            verb=Verb.FIND_OBJECTS,
            args={"list_id": "$list_id:uuid"},
            kwargs={"order_by": [("created_at", "asc")]},
        ),
        "find_entries_by_lists": Operation(
            collection=LIST_ENTRIES_COLL,
            verb=Verb.FIND_OBJECTS,
            args={"list_id": {"$in": "$list_ids:any"}},
            kwargs={"order_by": [("created_at", "asc")]},
        ),
        "find_entries_by_url": Operation(
            collection=LIST_ENTRIES_COLL,
            verb=Verb.FIND_OBJECTS,
            args={"page_url": "$url:string"},
        ),
        "delete_list_entry": Operation(
            collection=LIST_ENTRIES_COLL,
            verb=Verb.DELETE_OBJECTS,
            args={"list_id": "$list_id:uuid", "page_url": "$url:string"},
        ),
    }

    async def _with_pages(self, lists: Sequence[Any]) -> list[ListView]:
        if not lists:
            return []
        entries = await self.operation(
            "find_entries_by_lists", {"list_ids": [lst.id for lst in lists]},
        )
        pages: dict[UUID, list[str]] = defaultdict(list)
        for entry in entries:
            pages[entry.list_id].append(entry.page_url)
        return [
            ListView(id=lst.id, name=lst.name, created_at=lst.created_at, pages=pages[lst.id])
            for lst in lists
        ]

    async def require_list(self, list_id: UUID) -> UUID:
        """
        Return list_id if the list exists.

        Raises:
            ListNotFoundError: If no list has this id.
        """
        found = await self.operation("find_list_by_id", {"id": list_id})
        if found is None:
            raise ListNotFoundError(list_id)
        return found.id

    async def insert_custom_list(self, list_id: UUID, name: str) -> UUID:
        """Persist a new list. A case-insensitive name clash raises IntegrityError."""
        created = await self.operation("create_list", {"id": list_id, "name": name})
        return created.id

    async def update_list_name(self, list_id: UUID, name: str) -> int:
        """Rename a list. Returns the number of lists changed (0 or 1)."""
        return await self.operation("update_list_name", {"id": list_id, "name": name})

    async def remove_list(self, list_id: UUID) -> int:
        """Delete a list record. Entries that reference it are left in place."""
        return await self.operation("delete_list", {"id": list_id})

    async def fetch_all_lists(
        self,
        excluded_ids: Iterable[UUID] = (),
        skip: int = 0,
        limit: int = 20,
    ) -> list[ListView]:
        """Newest lists first, skipping excluded ids."""
        lists = await self.operation(
            "find_lists",
            {"excluded_ids": list(excluded_ids), "skip": skip, "limit": limit},
        )
        return await self._with_pages(lists)

    async def fetch_list_by_id(self, list_id: UUID) -> ListView | None:
        """Get a list with its pages, or None."""
        found = await self.operation("find_list_by_id", {"id": list_id})
        if found is None:
            return None
        return (await self._with_pages([found]))[0]

    async def fetch_list_ignore_case(self, name: str) -> ListView | None:
        """Get the list whose name matches case-insensitively, or None."""
        found = await self.operation("find_list_ignore_case", {"name": name})
        if found is None:
            return None
        return (await self._with_pages([found]))[0]

    async def fetch_list_pages_by_id(self, list_id: UUID) -> list[PageListEntryView]:
        """Entries of one list, oldest first."""
        entries = await self.operation("find_entries_by_list", {"list_id": list_id})
        return [PageListEntryView.model_validate(entry) for entry in entries]

    async def fetch_list_pages_by_url(self, url: str) -> list[ListView]:
        """Lists that contain the page with this normalized URL."""
        entries = await self.operation("find_entries_by_url", {"url": url})
        if not entries:
            return []
        lists = await self.operation(
            "find_lists_by_ids", {"ids": list({entry.list_id for entry in entries})},
        )
        lists = sorted(lists, key=lambda lst: lst.created_at, reverse=True)
        return await self._with_pages(lists)

    async def fetch_list_name_suggestions(
        self,
        name: str,
        url: str,
        limit: int = SUGGESTION_LIMIT,
    ) -> list[ListSuggestion]:
        """Lists whose name starts with name, flagged active if the page is already in them."""
        lists = await self.operation("find_lists_by_name_prefix", {"name": name, "limit": limit})
        entries = await self.operation("find_entries_by_url", {"url": url})
        containing = {entry.list_id for entry in entries}
        return [
            ListSuggestion(id=lst.id, name=lst.name, active=lst.id in containing)
            for lst in lists
        ]

    async def insert_page_to_list(
        self,
        list_id: UUID,
        page_url: str,
        full_url: str,
    ) -> PageListEntryView:
        """
        Add a page entry to a list. Re-inserting an existing entry is a no-op.

        Raises:
            ListNotFoundError: If the list does not exist; nothing is written.
        """
        await self.require_list(list_id)
        entry = await self.operation(
            "create_list_entry",
            {"list_id": list_id, "page_url": page_url, "full_url": full_url},
        )
        return PageListEntryView.model_validate(entry)

    async def remove_page_from_list(self, list_id: UUID, page_url: str) -> int:
        """Remove a page entry from a list. Returns the number of entries removed."""
        return await self.operation("delete_list_entry", {"list_id": list_id, "url": page_url})


class CustomListService:
    """
    List operations exposed to the UI.

    Every page-referencing write materializes the page first, and list ids are
    checked before any join row is written.
    """

    def __init__(
        self,
        storage: CustomListStorage,
        materializer: PageMaterializer,
        events: EventSink,
        default_limit: int = 20,
    ) -> None:
        self.storage = storage
        self._materializer = materializer
        self._events = events
        self._default_limit = default_limit

        self.remote_functions = {
            "create_custom_list": self.create_custom_list,
            "create_custom_lists": self.create_custom_lists,
            "insert_page_to_list": self.insert_page_to_list,
            "update_list_name": self.update_list_name,
            "remove_list": self.remove_list,
            "remove_page_from_list": self.remove_page_from_list,
            "fetch_all_lists": self.fetch_all_lists,
            "fetch_list_by_id": self.fetch_list_by_id,
            "fetch_list_pages_by_url": self.fetch_list_pages_by_url,
            "fetch_list_name_suggestions": self.fetch_list_name_suggestions,
            "fetch_list_pages_by_id": self.fetch_list_pages_by_id,
            "fetch_list_ignore_case": self.fetch_list_ignore_case,
        }

    @classmethod
    def from_storage(
        cls,
        storage: StorageManager,
        materializer: PageMaterializer,
        events: EventSink,
        default_limit: int = 20,
    ) -> "CustomListService":
        """Build the service and its storage module over a storage manager."""
        return cls(CustomListStorage(storage), materializer, events, default_limit)

    def generate_list_id(self) -> UUID:
        """New list id. UUIDv7 sorts by creation time."""
        return uuid7()

    async def fetch_all_lists(
        self,
        excluded_ids: Sequence[UUID] = (),
        skip: int = 0,
        limit: int | None = None,
    ) -> list[ListView]:
        """Page through lists, newest first."""
        return await self.storage.fetch_all_lists(
            excluded_ids=excluded_ids,
            skip=skip,
            limit=self._default_limit if limit is None else limit,
        )

    async def fetch_list_by_id(self, list_id: UUID) -> ListView | None:
        """Get a list with its pages, or None."""
        return await self.storage.fetch_list_by_id(list_id)

    async def fetch_list_ignore_case(self, name: str) -> ListView | None:
        """Get a list by case-insensitive name, or None."""
        return await self.storage.fetch_list_ignore_case(name)

    async def create_custom_list(self, name: str) -> UUID:
        """
        Create a list and return its id.

        Raises:
            IntegrityError: If a list with the same name (ignoring case) exists.
        """
        list_id = await self.storage.insert_custom_list(self.generate_list_id(), name)
        emit_event(self._events, EventName.CREATE_COLLECTION, list_id=str(list_id))
        return list_id

    async def create_custom_lists(self, names: Sequence[str]) -> list[UUID]:
        """
        Resolve names to list ids, creating the lists that don't exist yet.

        Existing lists are matched ignoring case. Missing ones are created
        concurrently; when a creation loses a race with another writer creating the
        same name, the winner's id is fetched instead of failing. The result is
        aligned with names, including repeated names.
        """
        unique_names = list(dict.fromkeys(names))
        found = await asyncio.gather(*(self.fetch_list_ignore_case(name) for name in unique_names))
        ids: dict[str, UUID] = {
            name: lst.id for name, lst in zip(unique_names, found, strict=True) if lst is not None
        }

        async def create_or_fetch(name: str) -> tuple[str, UUID]:
            try:
                return name, await self.create_custom_list(name)
            except IntegrityError:
                existing = await self.fetch_list_ignore_case(name)
                if existing is None:
                    raise
                logger.info("List %r was created concurrently; using id %s", name, existing.id)
                return name, existing.id

        missing = [name for name in unique_names if name not in ids]
        ids.update(await asyncio.gather(*(create_or_fetch(name) for name in missing)))

        return [ids[name] for name in names]

    async def fetch_list_pages_by_id(self, list_id: UUID) -> list[PageListEntryView]:
        """Entries of one list."""
        return await self.storage.fetch_list_pages_by_id(list_id)

    async def fetch_list_pages_by_url(self, url: str) -> list[ListView]:
        """Lists that contain the page at url."""
        return await self.storage.fetch_list_pages_by_url(normalize_url(url))

    async def update_list_name(self, list_id: UUID, name: str) -> int:
        """Rename a list without checking for name collisions."""
        return await self.storage.update_list_name(list_id, name)

    async def insert_page_to_list(self, list_id: UUID, url: str) -> PageListEntryView:
        """
        Add the page at url to a list, materializing the page first.

        Raises:
            ListNotFoundError: If the list does not exist.
            InvalidUrlError: If url cannot be normalized.
        """
        await self.storage.require_list(list_id)
        page = await self._materializer.ensure_page(url)
        entry = await self.storage.insert_page_to_list(list_id, page.url, url)
        emit_event(self._events, EventName.INSERT_PAGE_COLLECTION, list_id=str(list_id))
        return entry

    async def remove_list(self, list_id: UUID) -> int:
        """Delete a list. Its page and annotation entries are not removed."""
        removed = await self.storage.remove_list(list_id)
        emit_event(self._events, EventName.REMOVE_COLLECTION, list_id=str(list_id))
        return removed

    async def remove_page_from_list(self, list_id: UUID, url: str) -> int:
        """Remove the page at url from a list. Removing an absent entry is not an error."""
        removed = await self.storage.remove_page_from_list(list_id, normalize_url(url))
        emit_event(self._events, EventName.REMOVE_PAGE_COLLECTION, list_id=str(list_id))
        return removed

    async def fetch_list_name_suggestions(self, name: str, url: str) -> list[ListSuggestion]:
        """Lists whose name starts with name, flagged active when they already hold url."""
        return await self.storage.fetch_list_name_suggestions(name, normalize_url(url))
