"""Page and visit models."""
from datetime import datetime

from sqlalchemy import Boolean, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from models.base import Base, UTCDateTime


class Page(Base):
    """
    Page model - one row per normalized URL.

    A stub page carries only its identity (no extracted text); it is upgraded in
    place once full content becomes available.
    """

    __tablename__ = "pages"

    url: Mapped[str] = mapped_column(Text, primary_key=True)
    full_url: Mapped[str] = mapped_column(Text, nullable=False)
    domain: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    title: Mapped[str | None] = mapped_column(String(500), nullable=True)
    text: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_stub: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class Visit(Base):
    """Visit model - a timestamped view of a page. Pages without visits are not discoverable."""

    __tablename__ = "visits"
    __table_args__ = (
        Index("ix_visits_url_time", "url", "time"),
    )

    url: Mapped[str] = mapped_column(Text, primary_key=True)
    time: Mapped[datetime] = mapped_column(UTCDateTime, primary_key=True)
