"""Tag model."""
from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column

from models.base import Base


class Tag(Base):
    """
    Tag model - a (name, url) pair.

    url references either a page (normalized URL) or an annotation (annotation URL).
    The natural key is the only uniqueness enforced.
    """

    __tablename__ = "tags"

    name: Mapped[str] = mapped_column(String(100), primary_key=True)
    url: Mapped[str] = mapped_column(Text, primary_key=True, index=True)
