"""In-process registry of browser windows and their open tabs."""
import logging
from dataclasses import dataclass, field

from schemas.tab import Tab

logger = logging.getLogger(__name__)


class NoActiveWindowError(LookupError):
    """Raised when the current window is requested but none has been focused."""

    def __init__(self) -> None:
        super().__init__("No browser window is currently focused")


@dataclass
class Window:
    """A browser window and the ids of the tabs open in it, in tab-strip order."""

    id: int
    tab_ids: list[int] = field(default_factory=list)


@dataclass
class TrackedTab:
    """A tab the manager knows about."""

    id: int
    window_id: int
    url: str
    title: str | None = None


class TabManager:
    """
    Tracks open tabs per window.

    The browser integration feeds tab lifecycle changes in through track_tab,
    update_tab and remove_tab; the list operations read the open tabs of a window
    through get_tab_urls.
    """

    def __init__(self) -> None:
        self._tabs: dict[int, TrackedTab] = {}
        self._windows: dict[int, Window] = {}

    def track_tab(self, tab_id: int, window_id: int, url: str, title: str | None = None) -> None:
        """Register a newly opened tab, or move an existing one to another window."""
        existing = self._tabs.get(tab_id)
        if existing is not None and existing.window_id != window_id:
            self._windows[existing.window_id].tab_ids.remove(tab_id)
        window = self._windows.setdefault(window_id, Window(id=window_id))
        if tab_id not in window.tab_ids:
            window.tab_ids.append(tab_id)
        self._tabs[tab_id] = TrackedTab(id=tab_id, window_id=window_id, url=url, title=title)

    def update_tab(self, tab_id: int, url: str, title: str | None = None) -> None:
        """Record a navigation inside an already tracked tab."""
        tab = self._tabs.get(tab_id)
        if tab is None:
            logger.debug("Ignoring update for untracked tab %s", tab_id)
            return
        tab.url = url
        tab.title = title

    def remove_tab(self, tab_id: int) -> None:
        """Forget a closed tab."""
        tab = self._tabs.pop(tab_id, None)
        if tab is None:
            return
        window = self._windows.get(tab.window_id)
        if window is not None and tab_id in window.tab_ids:
            window.tab_ids.remove(tab_id)

    def remove_window(self, window_id: int) -> None:
        """Forget a closed window and all of its tabs."""
        window = self._windows.pop(window_id, None)
        if window is None:
            return
        for tab_id in window.tab_ids:
            self._tabs.pop(tab_id, None)

    def get_tab(self, tab_id: int) -> TrackedTab | None:
        """Return a tracked tab by id."""
        return self._tabs.get(tab_id)

    def get_tab_urls(self, window_id: int) -> list[Tab]:
        """Return the open tabs of a window, in tab-strip order."""
        window = self._windows.get(window_id)
        if window is None:
            return []
        return [
            Tab(tab_id=tab_id, url=self._tabs[tab_id].url)
            for tab_id in window.tab_ids
        ]


class Windows:
    """Tracks which window currently has focus."""

    def __init__(self) -> None:
        self._current: Window | None = None

    def focus(self, window_id: int) -> None:
        """Mark a window as the current one."""
        self._current = Window(id=window_id)

    async def get_current(self) -> Window:
        """
        Return the currently focused window.

        Raises:
            NoActiveWindowError: If no window has been focused yet.
        """
        if self._current is None:
            raise NoActiveWindowError
        return self._current
