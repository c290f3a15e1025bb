"""Pydantic schemas for pages."""
from datetime import datetime

from pydantic import BaseModel, Field


class PageView(BaseModel):
    """A page identity, its display fields and its visit times."""

    url: str
    full_url: str
    domain: str | None = None
    title: str | None = None
    is_stub: bool
    visits: list[datetime] = Field(default_factory=list)
