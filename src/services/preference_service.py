"""Service layer for persisted key-value preferences."""
from typing import Any

from db.storage import StorageManager

PREFERENCES_COLL = "preferences"

# Whether pages reached by following links are indexed with full content
INDEX_LINKS_KEY = "index_links"


async def get_preference(storage: StorageManager, key: str, default: Any = None) -> Any:
    """Get a preference value, or default if it was never set."""
    record = await storage.collection(PREFERENCES_COLL).find_object({"key": key})
    if record is None:
        return default
    return record.value


async def set_preference(storage: StorageManager, key: str, value: Any) -> None:
    """Set a preference value, replacing any previous one."""
    await storage.collection(PREFERENCES_COLL).create_object(
        {"key": key, "value": value},
        on_conflict="update",
    )


async def should_index_links(storage: StorageManager, default: bool = False) -> bool:
    """Read the link-indexing preference as a boolean."""
    return bool(await get_preference(storage, INDEX_LINKS_KEY, default))
