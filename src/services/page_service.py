"""
Page retrieval, creation and on-demand materialization.

Any association that references a page (a list entry, an annotation) first makes
sure a page record exists for the normalized URL, and that the record has at least
one visit: pages without visits are excluded from discovery.
"""
import logging
from collections.abc import Awaitable, Callable, Iterable
from datetime import datetime
from typing import Any

from core.urls import extract_domain, normalize_url
from db.storage import StorageManager
from models.base import as_utc, utc_now
from schemas.page import PageView
from services.url_scraper import ScrapedPage, scrape_url

logger = logging.getLogger(__name__)

PAGES_COLL = "pages"
VISITS_COLL = "visits"

Scraper = Callable[[str], Awaitable[ScrapedPage]]


class PageDocument:
    """
    A page record plus its visit history, with unsaved changes tracked locally.

    Visits added with add_visit() are written by the next save().
    """

    def __init__(
        self,
        storage: StorageManager,
        *,
        full_url: str,
        title: str | None = None,
        text: str | None = None,
        is_stub: bool = True,
        visits: Iterable[datetime] = (),
        persisted: bool = False,
    ) -> None:
        self._storage = storage
        self.url = normalize_url(full_url)
        self.full_url = full_url
        self.domain = extract_domain(full_url)
        self.title = title
        self.text = text
        self.is_stub = is_stub
        self.visits: list[datetime] = sorted(visits)
        self._pending_visits: list[datetime] = []
        self._persisted = persisted

    def __repr__(self) -> str:
        return f"PageDocument(url={self.url!r}, is_stub={self.is_stub}, visits={len(self.visits)})"

    @classmethod
    def from_record(cls, storage: StorageManager, record: Any) -> "PageDocument":
        """Build a document from a stored pages row."""
        page = cls(
            storage,
            full_url=record.full_url,
            title=record.title,
            text=record.text,
            is_stub=record.is_stub,
            persisted=True,
        )
        # Keep the stored identity even if normalization rules changed since it was written
        page.url = record.url
        return page

    @property
    def has_visits(self) -> bool:
        """Whether at least one visit is recorded (stored or pending)."""
        return bool(self.visits)

    def add_visit(self, time: datetime | None = None) -> datetime:
        """Record a visit at time (default now). Written on the next save()."""
        visit_time = as_utc(time) if time is not None else utc_now()
        self.visits.append(visit_time)
        self.visits.sort()
        self._pending_visits.append(visit_time)
        return visit_time

    def to_view(self) -> PageView:
        """Serializable snapshot of this page."""
        return PageView(
            url=self.url,
            full_url=self.full_url,
            domain=self.domain,
            title=self.title,
            is_stub=self.is_stub,
            visits=list(self.visits),
        )

    async def load_rels(self) -> None:
        """Merge visits already stored for this URL into the in-memory history."""
        stored = await self._storage.collection(VISITS_COLL).find_objects(
            {"url": self.url},
            order_by=[("time", "asc")],
        )
        self.visits = sorted({visit.time for visit in stored} | set(self.visits))

    def _fields(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "full_url": self.full_url,
            "domain": self.domain,
            "title": self.title,
            "text": self.text,
            "is_stub": self.is_stub,
        }

    def _take_stored(self, record: Any) -> None:
        self.full_url = record.full_url
        self.domain = record.domain
        self.title = record.title
        self.text = record.text
        self.is_stub = record.is_stub

    async def _save_stub(self, fields: dict[str, Any]) -> None:
        # Only ever overwrite another stub
        pages = self._storage.collection(PAGES_COLL)
        updates = {key: value for key, value in fields.items() if key != "url"}
        updated = await pages.update_object({"url": self.url, "is_stub": True}, updates)
        if updated:
            return
        stored = await pages.create_object(fields, on_conflict="ignore")
        if not stored.is_stub:
            logger.debug("Kept stored content for %s over a stub save", self.url)
            self._take_stored(stored)

    async def save(self) -> "PageDocument":
        """
        Upsert the page row, then write any pending visits.

        A stub never replaces a stored page that has content. When one is found,
        this document takes the stored fields instead.
        """
        pages = self._storage.collection(PAGES_COLL)
        fields = self._fields()
        if self.is_stub:
            await self._save_stub(fields)
        elif self._persisted:
            updates = {key: value for key, value in fields.items() if key != "url"}
            updated = await pages.update_object({"url": self.url}, updates)
            if not updated:
                await pages.create_object(fields, on_conflict="update")
        else:
            await pages.create_object(fields, on_conflict="update")
        self._persisted = True

        visits = self._storage.collection(VISITS_COLL)
        for visit_time in self._pending_visits:
            await visits.create_object({"url": self.url, "time": visit_time}, on_conflict="ignore")
        self._pending_visits.clear()
        return self


class PageIndex:
    """Looks up stored pages and builds new (unsaved) page documents."""

    def __init__(self, storage: StorageManager, scrape: Scraper = scrape_url) -> None:
        self._storage = storage
        self._scrape = scrape

    async def get_page(self, url: str) -> PageDocument | None:
        """
        Return the stored page for url with its visits loaded, or None.

        Raises:
            InvalidUrlError: If url cannot be normalized.
        """
        normalized = normalize_url(url)
        record = await self._storage.collection(PAGES_COLL).find_object({"url": normalized})
        if record is None:
            return None
        page = PageDocument.from_record(self._storage, record)
        await page.load_rels()
        return page

    def create_stub_page(self, url: str) -> PageDocument:
        """Build an unsaved stub page for url."""
        return PageDocument(self._storage, full_url=url, is_stub=True)

    async def create_page_from_tab(
        self,
        url: str,
        tab_id: int | None = None,
        stub_only: bool = False,
    ) -> PageDocument:
        """
        Build an unsaved page for the URL shown in a tab.

        With stub_only the page is a stub. Otherwise its title and text are loaded;
        loading is best-effort and a page that cannot be fetched comes back as a
        stub so callers can still link it.
        """
        if stub_only:
            return self.create_stub_page(url)

        # Validate before doing any network I/O
        normalize_url(url)
        scraped = await self._scrape(url)
        if scraped.error:
            logger.warning(
                "Could not load content for tab %s (%s): %s; storing a stub",
                tab_id,
                url,
                scraped.error,
            )
            return self.create_stub_page(url)

        return PageDocument(
            self._storage,
            full_url=url,
            title=scraped.title,
            text=scraped.text,
            is_stub=False,
        )


class PageMaterializer:
    """Returns an existing page or creates a stub, guaranteeing at least one visit."""

    def __init__(self, page_index: PageIndex) -> None:
        self._page_index = page_index

    async def ensure_page(self, url: str, time: datetime | None = None) -> PageDocument:
        """
        Return the page for url, creating a stub if none exists.

        A page that is new, or that exists with no visits, gets a visit at time
        (default now) and is persisted before returning. A page that already has
        visits is returned unchanged.

        Raises:
            InvalidUrlError: If url cannot be normalized.
        """
        page = await self._page_index.get_page(url)
        if page is not None and page.has_visits:
            return page

        if page is None:
            page = self._page_index.create_stub_page(url)
            logger.debug("Materializing stub page for %s", page.url)
        page.add_visit(time)
        return await page.save()
