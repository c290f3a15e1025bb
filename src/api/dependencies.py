"""Service container and FastAPI dependencies for injection."""
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.config import Settings, get_settings
from core.events import EventSink, LoggingEventSink
from core.tabs import TabManager, Windows
from db.storage import StorageManager
from services.annotation_service import AnnotationService
from services.annots_list import AnnotationsListPlugin
from services.custom_list_service import CustomListService
from services.page_service import PageIndex, PageMaterializer, Scraper
from services.tab_batch_service import TabBatchCoordinator
from services.url_scraper import scrape_url

logger = logging.getLogger(__name__)

RemoteFunction = Callable[..., Awaitable[Any]]


@dataclass
class Services:
    """Everything a request handler needs, wired over one storage manager."""

    storage: StorageManager
    page_index: PageIndex
    tab_manager: TabManager
    windows: Windows
    lists: CustomListService
    annotations: AnnotationService
    tabs: TabBatchCoordinator

    @property
    def remote_functions(self) -> dict[str, RemoteFunction]:
        """Every remote-callable operation by name."""
        functions: dict[str, RemoteFunction] = {}
        for service in (self.lists, self.annotations, self.tabs):
            clash = functions.keys() & service.remote_functions.keys()
            if clash:
                raise ValueError(f"Remote function name(s) registered twice: {sorted(clash)}")
            functions.update(service.remote_functions)
        return functions


def build_services(
    session_factory: async_sessionmaker[AsyncSession],
    settings: Settings,
    scrape: Scraper = scrape_url,
    events: EventSink | None = None,
) -> Services:
    """
    Wire storage, plugins and services together.

    Plugins are registered before any storage module is built, since modules check
    their plugin operations at construction.
    """
    storage = StorageManager(session_factory)
    storage.register_plugin(AnnotationsListPlugin())

    page_index = PageIndex(storage, scrape=scrape)
    materializer = PageMaterializer(page_index)
    if events is None:
        events = LoggingEventSink(enabled=settings.analytics_enabled)

    lists = CustomListService.from_storage(
        storage, materializer, events, default_limit=settings.default_list_page_size,
    )
    tab_manager = TabManager()
    windows = Windows()
    services = Services(
        storage=storage,
        page_index=page_index,
        tab_manager=tab_manager,
        windows=windows,
        lists=lists,
        annotations=AnnotationService.from_storage(
            storage, materializer, page_index, settings.index_links_default,
        ),
        tabs=TabBatchCoordinator(lists.storage, page_index, tab_manager, windows),
    )
    logger.debug("Wired %d remote functions", len(services.remote_functions))
    return services


def get_services(request: Request) -> Services:
    """Return the services built at application startup."""
    return request.app.state.services


__all__ = [
    "Services",
    "build_services",
    "get_services",
    "get_settings",
]
