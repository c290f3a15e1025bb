"""SQLAlchemy models."""
from models.annotation import Annotation, AnnotationBookmark, AnnotationListEntry
from models.base import Base, CreatedAtMixin, UUIDv7Mixin
from models.custom_list import CustomList, PageListEntry
from models.page import Page, Visit
from models.preference import Preference
from models.tag import Tag

__all__ = [
    "Annotation",
    "AnnotationBookmark",
    "AnnotationListEntry",
    "Base",
    "CreatedAtMixin",
    "CustomList",
    "Page",
    "PageListEntry",
    "Preference",
    "Tag",
    "UUIDv7Mixin",
    "Visit",
]
