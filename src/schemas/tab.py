"""Pydantic schemas for browser tabs."""
from pydantic import BaseModel, ConfigDict


class Tab(BaseModel):
    """An open browser tab: its id and the URL it shows."""

    model_config = ConfigDict(frozen=True)

    tab_id: int
    url: str
