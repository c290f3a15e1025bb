"""Service layer for annotations, their bookmarks, tags and list membership."""
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import UUID

from core.urls import normalize_url
from db.storage import StorageManager
from models.base import as_utc, utc_now
from schemas.annotation import AnnotationCreate, AnnotationView, AnnotSearchParams
from schemas.page import PageView
from services.annots_list import AnnotationsListPlugin
from services.batch import BatchOutcome, fan_out
from services.exceptions import ListNotFoundError
from services.operations import Operation, StorageModule, Verb
from services.page_service import PageIndex, PageMaterializer
from services.preference_service import should_index_links

logger = logging.getLogger(__name__)

ANNOTS_COLL = "annotations"
BOOKMARKS_COLL = "annotation_bookmarks"
LIST_ENTRIES_COLL = "annotation_list_entries"
TAGS_COLL = "tags"
LISTS_COLL = "custom_lists"


def annotation_url(page_url: str, created_when: datetime) -> str:
    """Annotation identity: the normalized page URL plus a millisecond fragment."""
    return f"{normalize_url(page_url)}#{int(created_when.timestamp() * 1000)}"


@dataclass
class TagEditOutcome:
    """Per-tag results of an annotation tag patch, one BatchOutcome per phase."""

    deleted: BatchOutcome = field(default_factory=BatchOutcome)
    added: BatchOutcome = field(default_factory=BatchOutcome)

    @property
    def ok(self) -> bool:
        """Whether every delete and every add succeeded."""
        return self.deleted.ok and self.added.ok


class AnnotationStorage(StorageModule):
    """Persistence for annotations and the rows that hang off them."""

    operations = {
        "find_list_by_id": Operation(
            collection=LISTS_COLL,
            verb=Verb.FIND_OBJECT,
            args={"id": "$id:uuid"},
        ),
        "create_annotation_for_list": Operation(
            collection=LIST_ENTRIES_COLL,
            verb=Verb.CREATE_OBJECT,
            kwargs={"on_conflict": "ignore"},
        ),
        "delete_annotation_from_list": Operation(
            collection=LIST_ENTRIES_COLL,
            verb=Verb.DELETE_OBJECTS,
            args={"list_id": "$list_id:uuid", "url": "$url:pk"},
        ),
        "find_list_entries_by_url": Operation(
            collection=LIST_ENTRIES_COLL,
            verb=Verb.FIND_OBJECTS,
            args={"url": "$url:pk"},
        ),
        "delete_list_entries_by_url": Operation(
            collection=LIST_ENTRIES_COLL,
            verb=Verb.DELETE_OBJECTS,
            args={"url": "$url:pk"},
        ),
        "find_bookmark_by_url": Operation(
            collection=BOOKMARKS_COLL,
            verb=Verb.FIND_OBJECT,
            args={"url": "$url:pk"},
        ),
        "create_bookmark": Operation(
            collection=BOOKMARKS_COLL,
            verb=Verb.CREATE_OBJECT,
        ),
        "delete_bookmark_by_url": Operation(
            collection=BOOKMARKS_COLL,
            verb=Verb.DELETE_OBJECT,
            args={"url": "$url:pk"},
        ),
        "find_annotation_by_url": Operation(
            collection=ANNOTS_COLL,
            verb=Verb.FIND_OBJECT,
            args={"url": "$url:pk"},
        ),
        "create_annotation": Operation(
            collection=ANNOTS_COLL,
            verb=Verb.CREATE_OBJECT,
        ),
        "edit_annotation": Operation(
            collection=ANNOTS_COLL,
            verb=Verb.UPDATE_OBJECT,
            args=[
                {"url": "$url:pk"},
                {"comment": "$comment:string", "last_edited": "$last_edited:datetime"},
            ],
        ),
        "delete_annotation": Operation(
            collection=ANNOTS_COLL,
            verb=Verb.DELETE_OBJECT,
            args={"url": "$url:pk"},
        ),
        "find_tags_by_url": Operation(
            collection=TAGS_COLL,
            verb=Verb.FIND_OBJECTS,
            args={"url": "$url:pk"},
            kwargs={"order_by": [("name", "asc")]},
        ),
        "create_tag": Operation(
            collection=TAGS_COLL,
            verb=Verb.CREATE_OBJECT,
        ),
        "delete_tag": Operation(
            collection=TAGS_COLL,
            verb=Verb.DELETE_OBJECTS,
            args={"name": "$name:string", "url": "$url:pk"},
        ),
        "delete_tags_by_url": Operation(
            collection=TAGS_COLL,
            verb=Verb.DELETE_OBJECTS,
            args={"url": "$url:pk"},
        ),
        "list_annots_by_page": Operation(
            verb=AnnotationsListPlugin.LIST_BY_PAGE_OP_ID,
            args=["$params:any"],
        ),
    }

    async def get_list_by_id(self, list_id: UUID) -> Any:
        """
        Return the list record for list_id.

        Raises:
            ListNotFoundError: If no list has this id.
        """
        found = await self.operation("find_list_by_id", {"id": list_id})
        if found is None:
            raise ListNotFoundError(list_id)
        return found

    async def insert_annot_to_list(self, list_id: UUID, url: str) -> None:
        """
        Add an annotation to a list. Re-inserting an existing entry is a no-op.

        Raises:
            ListNotFoundError: If the list does not exist; nothing is written.
        """
        await self.get_list_by_id(list_id)
        await self.operation(
            "create_annotation_for_list",
            {"list_id": list_id, "url": url, "created_at": utc_now()},
        )

    async def remove_annot_from_list(self, list_id: UUID, url: str) -> int:
        """
        Remove an annotation from a list. Returns the number of entries removed.

        Raises:
            ListNotFoundError: If the list does not exist.
        """
        await self.get_list_by_id(list_id)
        return await self.operation("delete_annotation_from_list", {"list_id": list_id, "url": url})

    async def annot_has_bookmark(self, url: str) -> bool:
        """Whether a bookmark row exists for the annotation."""
        return await self.operation("find_bookmark_by_url", {"url": url}) is not None

    async def toggle_annot_bookmark(self, url: str) -> bool:
        """
        Flip the bookmark state of an annotation.

        Returns True when the annotation is bookmarked after the call, False when the
        bookmark was removed.
        """
        if await self.annot_has_bookmark(url):
            await self.delete_bookmark_by_url(url)
            return False
        await self.operation("create_bookmark", {"url": url, "created_at": utc_now()})
        return True

    async def delete_bookmark_by_url(self, url: str) -> int:
        """Clear the bookmark on an annotation. Clearing an absent bookmark is a no-op."""
        return await self.operation("delete_bookmark_by_url", {"url": url})

    async def get_annotation_by_pk(self, url: str) -> Any | None:
        """Annotation record by its URL, or None."""
        return await self.operation("find_annotation_by_url", {"url": url})

    async def get_all_annotations_by_url(self, params: AnnotSearchParams) -> list[AnnotationView]:
        """Annotations of one page, filtered and paged by params."""
        return await self.operation("list_annots_by_page", {"params": params})

    async def create_annotation(
        self,
        *,
        page_url: str,
        page_title: str | None = None,
        body: str | None = None,
        comment: str | None = None,
        selector: dict[str, Any] | None = None,
        url: str | None = None,
        created_when: datetime | None = None,
    ) -> Any:
        """
        Persist a new annotation and return it.

        created_when defaults to now and last_edited starts out equal to it. When url
        is omitted it is derived from the page URL and created_when.

        Raises:
            InvalidUrlError: If page_url cannot be normalized.
            IntegrityError: If an annotation with this url already exists.
        """
        created_when = as_utc(created_when) if created_when is not None else utc_now()
        return await self.operation(
            "create_annotation",
            {
                "url": url or annotation_url(page_url, created_when),
                "page_url": normalize_url(page_url),
                "page_title": page_title,
                "body": body,
                "comment": comment,
                "selector": selector,
                "created_when": created_when,
                "last_edited": created_when,
            },
        )

    async def edit_annotation(
        self,
        url: str,
        comment: str | None,
        last_edited: datetime | None = None,
    ) -> int:
        """Update comment and last_edited only. Returns the number of annotations changed."""
        return await self.operation(
            "edit_annotation",
            {"url": url, "comment": comment, "last_edited": last_edited or utc_now()},
        )

    async def delete_annotation(self, url: str) -> int:
        """Delete the annotation record. Tags, bookmark and list entries are left in place."""
        return await self.operation("delete_annotation", {"url": url})

    async def get_tags_by_annotation_url(self, url: str) -> list[str]:
        """Tag names on an annotation, sorted."""
        tags = await self.operation("find_tags_by_url", {"url": url})
        return [tag.name for tag in tags]

    async def modify_tag(self, should_add: bool, name: str, url: str) -> Any:
        """
        Add or remove a single tag on url.

        Raises:
            IntegrityError: If the tag being added is already on url.
        """
        if should_add:
            return await self.operation("create_tag", {"name": name, "url": url})
        return await self.operation("delete_tag", {"name": name, "url": url})

    async def edit_annotation_tags(
        self,
        tags_to_add: Sequence[str],
        tags_to_delete: Sequence[str],
        url: str,
    ) -> TagEditOutcome:
        """
        Apply a tag patch to url.

        Every deletion settles before any addition starts; within a phase the writes
        run concurrently. A name in both sequences is deleted, not re-added.
        Deleting a tag that is not there is a no-op; adding one that is already
        there fails for that name with IntegrityError.
        """
        to_delete = list(dict.fromkeys(tags_to_delete))
        to_add = [name for name in dict.fromkeys(tags_to_add) if name not in to_delete]

        deleted = await fan_out(
            to_delete,
            lambda name: self.modify_tag(False, name, url),
            key=str,
            label=f"Deleting tag from {url}",
        )
        added = await fan_out(
            to_add,
            lambda name: self.modify_tag(True, name, url),
            key=str,
            label=f"Adding tag to {url}",
        )
        return TagEditOutcome(deleted=deleted, added=added)

    async def delete_tags_by_url(self, url: str) -> int:
        """Remove every tag on url."""
        return await self.operation("delete_tags_by_url", {"url": url})

    async def delete_list_entries_by_url(self, url: str) -> int:
        """Remove the annotation from every list."""
        return await self.operation("delete_list_entries_by_url", {"url": url})

    async def find_list_entries_by_url(self, url: str) -> list[UUID]:
        """Ids of the lists that contain the annotation."""
        entries = await self.operation("find_list_entries_by_url", {"url": url})
        return [entry.list_id for entry in entries]


class AnnotationService:
    """
    Annotation operations exposed to the UI.

    Creating an annotation materializes its page first. Deleting one removes its
    tags, bookmark and list entries along with the record.
    """

    def __init__(
        self,
        storage: AnnotationStorage,
        materializer: PageMaterializer,
        page_index: PageIndex,
        index_links_default: bool = False,
    ) -> None:
        self.storage = storage
        self._materializer = materializer
        self._page_index = page_index
        self._index_links_default = index_links_default

        self.remote_functions = {
            "create_annotation": self.create_annotation,
            "edit_annotation": self.edit_annotation,
            "delete_annotation": self.delete_annotation,
            "get_annotation_by_pk": self.get_annotation_by_pk,
            "get_all_annotations_by_url": self.get_all_annotations_by_url,
            "toggle_annot_bookmark": self.toggle_annot_bookmark,
            "annot_has_bookmark": self.annot_has_bookmark,
            "delete_bookmark_by_url": self.delete_bookmark_by_url,
            "insert_annot_to_list": self.insert_annot_to_list,
            "remove_annot_from_list": self.remove_annot_from_list,
            "find_list_entries_by_url": self.find_list_entries_by_url,
            "get_tags_by_annotation_url": self.get_tags_by_annotation_url,
            "edit_annotation_tags": self.edit_annotation_tags,
            "index_page_from_tab": self.index_page_from_tab,
        }

    @classmethod
    def from_storage(
        cls,
        storage: StorageManager,
        materializer: PageMaterializer,
        page_index: PageIndex,
        index_links_default: bool = False,
    ) -> "AnnotationService":
        """Build the service and its storage module over a storage manager."""
        return cls(AnnotationStorage(storage), materializer, page_index, index_links_default)

    async def _view(self, record: Any) -> AnnotationView:
        tags = await self.storage.get_tags_by_annotation_url(record.url)
        has_bookmark = await self.storage.annot_has_bookmark(record.url)
        view = AnnotationView.model_validate(record)
        return view.model_copy(update={"tags": tags, "has_bookmark": has_bookmark})

    async def create_annotation(self, annotation: AnnotationCreate) -> AnnotationView:
        """
        Create an annotation, making sure its page exists and is visited first.

        Raises:
            InvalidUrlError: If page_url cannot be normalized.
            IntegrityError: If an annotation with this url already exists.
        """
        await self._materializer.ensure_page(annotation.page_url)
        record = await self.storage.create_annotation(**annotation.model_dump())
        return await self._view(record)

    async def edit_annotation(
        self,
        url: str,
        comment: str | None,
        last_edited: datetime | None = None,
    ) -> int:
        """Change an annotation's comment."""
        return await self.storage.edit_annotation(url, comment, last_edited)

    async def delete_annotation(self, url: str) -> int:
        """
        Delete an annotation together with its tags, bookmark and list entries.

        Returns the number of annotation records removed (0 or 1).
        """
        await self.storage.delete_tags_by_url(url)
        await self.storage.delete_bookmark_by_url(url)
        await self.storage.delete_list_entries_by_url(url)
        return await self.storage.delete_annotation(url)

    async def get_annotation_by_pk(self, url: str) -> AnnotationView | None:
        """Annotation with its tags and bookmark state, or None."""
        record = await self.storage.get_annotation_by_pk(url)
        if record is None:
            return None
        return await self._view(record)

    async def get_all_annotations_by_url(self, params: AnnotSearchParams) -> list[AnnotationView]:
        """Annotations of one page matching params."""
        return await self.storage.get_all_annotations_by_url(params)

    async def toggle_annot_bookmark(self, url: str) -> bool:
        """Flip the bookmark state; returns the new state."""
        return await self.storage.toggle_annot_bookmark(url)

    async def annot_has_bookmark(self, url: str) -> bool:
        """Whether the annotation is bookmarked."""
        return await self.storage.annot_has_bookmark(url)

    async def delete_bookmark_by_url(self, url: str) -> int:
        """Un-bookmark the annotation whatever its current state."""
        return await self.storage.delete_bookmark_by_url(url)

    async def insert_annot_to_list(self, list_id: UUID, url: str) -> None:
        """Add an annotation to a list."""
        await self.storage.insert_annot_to_list(list_id, url)

    async def remove_annot_from_list(self, list_id: UUID, url: str) -> int:
        """Remove an annotation from a list."""
        return await self.storage.remove_annot_from_list(list_id, url)

    async def find_list_entries_by_url(self, url: str) -> list[UUID]:
        """Ids of the lists holding the annotation."""
        return await self.storage.find_list_entries_by_url(url)

    async def get_tags_by_annotation_url(self, url: str) -> list[str]:
        """Tag names on the annotation."""
        return await self.storage.get_tags_by_annotation_url(url)

    async def edit_annotation_tags(
        self,
        tags_to_add: list[str],
        tags_to_delete: list[str],
        url: str,
    ) -> TagEditOutcome:
        """Delete then add tags on the annotation."""
        outcome = await self.storage.edit_annotation_tags(tags_to_add, tags_to_delete, url)
        if not outcome.ok:
            logger.warning(
                "Tag edit on %s partially failed: %d delete(s), %d add(s)",
                url,
                len(outcome.deleted.failed),
                len(outcome.added.failed),
            )
        return outcome

    async def index_page_from_tab(self, url: str, tab_id: int | None = None) -> PageView:
        """
        Store the page a followed link leads to, with at least one visit.

        When the link-indexing preference is on the page's content is loaded;
        otherwise it is stored as a stub. A page already stored with content is
        kept as is.

        Raises:
            InvalidUrlError: If url cannot be normalized.
        """
        index_links = await should_index_links(self.storage.storage, self._index_links_default)

        page = await self._page_index.get_page(url)
        if page is None or page.is_stub:
            page = await self._page_index.create_page_from_tab(
                url, tab_id=tab_id, stub_only=not index_links,
            )
            await page.load_rels()

        if not page.has_visits:
            page.add_visit()
        await page.save()
        return page.to_view()
