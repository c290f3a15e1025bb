"""Browser tab and window tracking endpoints, fed by the browser integration."""
from fastapi import APIRouter, Depends
from pydantic import BaseModel

from api.dependencies import Services, get_services
from schemas.tab import Tab

router = APIRouter(tags=["tabs"])


class TabOpened(BaseModel):
    """A tab that was opened or moved to another window."""

    tab_id: int
    window_id: int
    url: str
    title: str | None = None


class TabNavigated(BaseModel):
    """A navigation inside an open tab."""

    url: str
    title: str | None = None


@router.post("/tabs", status_code=204)
async def track_tab(
    data: TabOpened,
    services: Services = Depends(get_services),
) -> None:
    """Register an open tab."""
    services.tab_manager.track_tab(data.tab_id, data.window_id, data.url, data.title)


@router.patch("/tabs/{tab_id}", status_code=204)
async def update_tab(
    tab_id: int,
    data: TabNavigated,
    services: Services = Depends(get_services),
) -> None:
    """Record the new URL of a tab."""
    services.tab_manager.update_tab(tab_id, data.url, data.title)


@router.delete("/tabs/{tab_id}", status_code=204)
async def remove_tab(
    tab_id: int,
    services: Services = Depends(get_services),
) -> None:
    """Forget a closed tab."""
    services.tab_manager.remove_tab(tab_id)


@router.post("/windows/{window_id}/focus", status_code=204)
async def focus_window(
    window_id: int,
    services: Services = Depends(get_services),
) -> None:
    """Mark a window as the current one."""
    services.windows.focus(window_id)


@router.get("/windows/{window_id}/tabs", response_model=list[Tab])
async def get_window_tabs(
    window_id: int,
    services: Services = Depends(get_services),
) -> list[Tab]:
    """Open tabs of a window, in tab-strip order."""
    return services.tab_manager.get_tab_urls(window_id)


@router.delete("/windows/{window_id}", status_code=204)
async def remove_window(
    window_id: int,
    services: Services = Depends(get_services),
) -> None:
    """Forget a closed window and its tabs."""
    services.tab_manager.remove_window(window_id)
