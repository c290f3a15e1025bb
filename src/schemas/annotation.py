"""Pydantic schemas for annotations."""
from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator


class AnnotationCreate(BaseModel):
    """Fields accepted when creating an annotation."""

    page_url: str
    page_title: str | None = None
    body: str | None = None
    comment: str | None = None
    selector: dict[str, Any] | None = None
    url: str | None = None
    created_when: datetime | None = None


class AnnotSearchParams(BaseModel):
    """
    Parameters for listing the annotations of one page.

    All filters combine with AND. Dates bound created_when inclusively.
    """

    url: str
    start_date: datetime | None = None
    end_date: datetime | None = None
    bookmarks_only: bool = False
    tags_included: list[str] = Field(default_factory=list)
    lists_included: list[UUID] = Field(default_factory=list)
    skip: int = Field(default=0, ge=0)
    limit: int = Field(default=10, ge=1, le=1000)

    @field_validator("tags_included", mode="before")
    @classmethod
    def strip_tags(cls, v: list[str] | None) -> list[str]:
        """Drop blank tag names."""
        if v is None:
            return []
        return [tag.strip() for tag in v if tag and tag.strip()]


class AnnotationView(BaseModel):
    """An annotation with its tag names and bookmark state."""

    model_config = ConfigDict(from_attributes=True)

    url: str
    page_url: str
    page_title: str | None
    body: str | None
    comment: str | None
    selector: dict[str, Any] | None
    created_when: datetime
    last_edited: datetime
    tags: list[str] = Field(default_factory=list)
    has_bookmark: bool = False
