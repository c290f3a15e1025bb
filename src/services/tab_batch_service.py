"""Adds or removes every open tab of a window to or from a list in one call."""
import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID

from core.tabs import TabManager, Windows
from core.urls import normalize_url
from models.base import utc_now
from schemas.tab import Tab
from services.batch import BatchOutcome, fan_out
from services.custom_list_service import CustomListStorage
from services.page_service import PageIndex

logger = logging.getLogger(__name__)


def _tab_key(tab: Tab) -> str:
    return f"{tab.tab_id}:{tab.url}"


@dataclass
class TabBatchOutcome:
    """
    Per-tab results of a tab batch.

    pages holds the page materialization results (empty for removals) and entries
    the list entry writes. Keys are "<tab_id>:<url>".
    """

    pages: BatchOutcome = field(default_factory=BatchOutcome)
    entries: BatchOutcome = field(default_factory=BatchOutcome)

    @property
    def ok(self) -> bool:
        """Whether every page and entry write succeeded."""
        return self.pages.ok and self.entries.ok


class TabBatchCoordinator:
    """Applies list membership changes to a batch of browser tabs."""

    def __init__(
        self,
        list_storage: CustomListStorage,
        page_index: PageIndex,
        tab_manager: TabManager,
        windows: Windows,
    ) -> None:
        self._lists = list_storage
        self._page_index = page_index
        self._tab_manager = tab_manager
        self._windows = windows

        self.remote_functions = {
            "add_open_tabs_to_list": self.add_open_tabs_to_list,
            "remove_open_tabs_from_list": self.remove_open_tabs_from_list,
        }

    async def _resolve_tabs(self, tabs: Sequence[Tab] | None) -> list[Tab]:
        if tabs is not None:
            return list(tabs)
        window = await self._windows.get_current()
        return self._tab_manager.get_tab_urls(window.id)

    async def _materialize(self, tab: Tab, time: datetime) -> None:
        page = await self._page_index.get_page(tab.url)
        if page is None or page.is_stub:
            page = await self._page_index.create_page_from_tab(tab.url, tab_id=tab.tab_id)
            await page.load_rels()
        if not page.has_visits:
            page.add_visit(time)
        await page.save()

    async def _link(self, list_id: UUID, tab: Tab) -> None:
        await self._lists.insert_page_to_list(list_id, normalize_url(tab.url), tab.url)

    async def add_open_tabs_to_list(
        self,
        list_id: UUID,
        tabs: list[Tab] | None = None,
    ) -> TabBatchOutcome:
        """
        Add every tab to a list, storing a visited page for each.

        Without tabs, the open tabs of the current window are used. Page storage and
        list entry writes run side by side: an entry may become visible before its
        page is saved, and a tab whose page fails to load still gets its entry.

        Raises:
            ListNotFoundError: If the list does not exist; nothing is written.
            NoActiveWindowError: If tabs is omitted and no window is focused.
        """
        await self._lists.require_list(list_id)
        batch = await self._resolve_tabs(tabs)
        time = utc_now()

        pages, entries = await asyncio.gather(
            fan_out(
                batch,
                lambda tab: self._materialize(tab, time),
                key=_tab_key,
                label="Storing page for tab",
            ),
            fan_out(
                batch,
                lambda tab: self._link(list_id, tab),
                key=_tab_key,
                label=f"Adding tab to list {list_id}",
            ),
        )
        outcome = TabBatchOutcome(pages=pages, entries=entries)
        logger.info(
            "Added %d/%d tab(s) to list %s",
            len(entries.succeeded),
            len(batch),
            list_id,
        )
        return outcome

    async def remove_open_tabs_from_list(
        self,
        list_id: UUID,
        tabs: list[Tab] | None = None,
    ) -> TabBatchOutcome:
        """
        Remove every tab's page from a list. Tabs whose page is not in it are no-ops.

        Raises:
            NoActiveWindowError: If tabs is omitted and no window is focused.
        """
        batch = await self._resolve_tabs(tabs)
        entries = await fan_out(
            batch,
            lambda tab: self._lists.remove_page_from_list(list_id, normalize_url(tab.url)),
            key=_tab_key,
            label=f"Removing tab from list {list_id}",
        )
        return TabBatchOutcome(entries=entries)
