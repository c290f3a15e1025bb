"""Annotation, annotation bookmark and annotation list entry models."""
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from models.base import Base, CreatedAtMixin, UTCDateTime, utc_now


class Annotation(Base):
    """
    Annotation model - a highlight and/or comment anchored inside a page.

    The url primary key is derived from the parent page URL plus a fragment and never
    changes after creation.
    """

    __tablename__ = "annotations"

    url: Mapped[str] = mapped_column(Text, primary_key=True)
    page_url: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    page_title: Mapped[str | None] = mapped_column(String(500), nullable=True)
    body: Mapped[str | None] = mapped_column(Text, nullable=True)
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    selector: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    created_when: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utc_now, index=True,
    )
    last_edited: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utc_now,
    )


class AnnotationBookmark(Base, CreatedAtMixin):
    """AnnotationBookmark model - presence of a row means the annotation is bookmarked."""

    __tablename__ = "annotation_bookmarks"

    url: Mapped[str] = mapped_column(Text, primary_key=True)


class AnnotationListEntry(Base, CreatedAtMixin):
    """AnnotationListEntry model - join row between a list and an annotation."""

    __tablename__ = "annotation_list_entries"

    list_id: Mapped[UUID] = mapped_column(Uuid, primary_key=True)
    url: Mapped[str] = mapped_column(Text, primary_key=True, index=True)
