"""Pydantic schemas for custom lists and their entries."""
from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class ListView(BaseModel):
    """A list together with the normalized URLs of the pages it contains."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    created_at: datetime
    pages: list[str] = Field(default_factory=list)


class ListSuggestion(BaseModel):
    """A list whose name matches a prefix; active tells whether the page is already in it."""

    id: UUID
    name: str
    active: bool


class PageListEntryView(BaseModel):
    """A page's membership in a list."""

    model_config = ConfigDict(from_attributes=True)

    list_id: UUID
    page_url: str
    full_url: str
    created_at: datetime
