"""Storage plugin that lists the annotations of one page with optional filters."""
from collections import defaultdict
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

from core.urls import normalize_url
from db.storage import StorageManager
from schemas.annotation import AnnotationView, AnnotSearchParams

ANNOTS_COLL = "annotations"
BOOKMARKS_COLL = "annotation_bookmarks"
TAGS_COLL = "tags"
LIST_ENTRIES_COLL = "annotation_list_entries"


class AnnotationsListPlugin:
    """Provides the list-by-page query as a plugin operation."""

    LIST_BY_PAGE_OP_ID = "annotations:list_by_page"

    def __init__(self) -> None:
        self._storage: StorageManager | None = None

    def install(self, storage: StorageManager) -> Mapping[str, Callable[..., Awaitable[Any]]]:
        """Bind to storage and expose the list-by-page operation."""
        self._storage = storage
        return {self.LIST_BY_PAGE_OP_ID: self.list_by_page}

    @property
    def storage(self) -> StorageManager:
        """The storage manager this plugin was installed on."""
        if self._storage is None:
            raise RuntimeError("AnnotationsListPlugin is not installed")
        return self._storage

    async def list_by_page(self, params: AnnotSearchParams | Mapping[str, Any]) -> list[AnnotationView]:
        """
        Annotations of the page at params.url, newest first.

        Filters combine with AND: created_when between start_date and end_date,
        bookmarked only, carrying every tag in tags_included, belonging to any list
        in lists_included. skip and limit apply after filtering.
        """
        if not isinstance(params, AnnotSearchParams):
            params = AnnotSearchParams.model_validate(params)

        where: dict[str, Any] = {"page_url": normalize_url(params.url)}
        created: dict[str, Any] = {}
        if params.start_date is not None:
            created["$gte"] = params.start_date
        if params.end_date is not None:
            created["$lte"] = params.end_date
        if created:
            where["created_when"] = created

        annotations = await self.storage.collection(ANNOTS_COLL).find_objects(
            where,
            order_by=[("created_when", "desc")],
        )
        if not annotations:
            return []
        urls = [annot.url for annot in annotations]

        bookmarks = await self.storage.collection(BOOKMARKS_COLL).find_objects(
            {"url": {"$in": urls}},
        )
        bookmarked = {bookmark.url for bookmark in bookmarks}

        tag_rows = await self.storage.collection(TAGS_COLL).find_objects({"url": {"$in": urls}})
        tags: dict[str, list[str]] = defaultdict(list)
        for tag in tag_rows:
            tags[tag.url].append(tag.name)

        in_lists: set[str] | None = None
        if params.lists_included:
            entries = await self.storage.collection(LIST_ENTRIES_COLL).find_objects(
                {"url": {"$in": urls}, "list_id": {"$in": params.lists_included}},
            )
            in_lists = {entry.url for entry in entries}

        required_tags = set(params.tags_included)
        matches = [
            annot
            for annot in annotations
            if (not params.bookmarks_only or annot.url in bookmarked)
            and required_tags.issubset(tags[annot.url])
            and (in_lists is None or annot.url in in_lists)
        ]

        page = matches[params.skip:params.skip + params.limit]
        return [
            AnnotationView(
                url=annot.url,
                page_url=annot.page_url,
                page_title=annot.page_title,
                body=annot.body,
                comment=annot.comment,
                selector=annot.selector,
                created_when=annot.created_when,
                last_edited=annot.last_edited,
                tags=sorted(tags[annot.url]),
                has_bookmark=annot.url in bookmarked,
            )
            for annot in page
        ]
