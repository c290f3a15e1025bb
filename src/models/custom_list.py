"""Custom list and page list entry models."""
from uuid import UUID

from sqlalchemy import Index, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from models.base import Base, CreatedAtMixin, UUIDv7Mixin


class CustomList(Base, UUIDv7Mixin, CreatedAtMixin):
    """CustomList model - a user-defined, named collection of pages and annotations."""

    __tablename__ = "custom_lists"

    # id provided by UUIDv7Mixin
    name: Mapped[str] = mapped_column(String(100), nullable=False)


# Case-insensitive name uniqueness. Concurrent creators racing on the same name get an
# IntegrityError, which create_custom_lists resolves by re-reading the winner.
Index("uq_custom_lists_name_lower", func.lower(CustomList.name), unique=True)


class PageListEntry(Base, CreatedAtMixin):
    """
    PageListEntry model - join row between a list and a page.

    page_url is the normalized page identity; full_url keeps the URL as the user saw
    it for display. Neither column is a foreign key: existence of the list is checked
    by the services and the page is materialized before the entry is written.
    """

    __tablename__ = "page_list_entries"

    list_id: Mapped[UUID] = mapped_column(Uuid, primary_key=True)
    page_url: Mapped[str] = mapped_column(Text, primary_key=True, index=True)
    full_url: Mapped[str] = mapped_column(Text, nullable=False)
