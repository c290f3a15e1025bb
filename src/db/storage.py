"""
Document-collection access over the local SQLAlchemy store.

Each collection wraps one model and exposes find/create/update/delete verbs keyed by
plain field dictionaries. Every call runs in its own short-lived session and commits
before returning, so independent calls may overlap on the event loop and nothing
spans more than one collection.

Where-clauses are dictionaries of field -> condition. A condition is either a plain
value (equality, or IS NULL for None) or a mapping of operators:

    {"page_url": "example.com/x", "created_when": {"$gte": start, "$lte": end}}

Supported operators: $eq, $ne, $gt, $gte, $lt, $lte, $in, $nin, $prefix.
"""
import logging
import operator
from collections.abc import Awaitable, Callable, Iterable, Mapping, Sequence
from typing import Any, Literal, Protocol

from sqlalchemy import ColumnElement, delete, func, inspect, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from models import (
    Annotation,
    AnnotationBookmark,
    AnnotationListEntry,
    CustomList,
    Page,
    PageListEntry,
    Preference,
    Tag,
    Visit,
)
from models.base import Base

logger = logging.getLogger(__name__)

ConflictPolicy = Literal["raise", "ignore", "update"]
SortDirection = Literal["asc", "desc"]
Where = Mapping[str, Any]

DEFAULT_MODELS: tuple[type[Base], ...] = (
    Page,
    Visit,
    CustomList,
    PageListEntry,
    Annotation,
    AnnotationBookmark,
    AnnotationListEntry,
    Tag,
    Preference,
)

_OPERATORS: dict[str, Callable[[Any, Any], ColumnElement[bool]]] = {
    "$eq": operator.eq,
    "$ne": operator.ne,
    "$gt": operator.gt,
    "$gte": operator.ge,
    "$lt": operator.lt,
    "$lte": operator.le,
    "$in": lambda column, value: column.in_(list(value)),
    "$nin": lambda column, value: column.not_in(list(value)),
    "$prefix": lambda column, value: column.startswith(value, autoescape=True),
}


class UnknownCollectionError(KeyError):
    """Raised when a collection name is not registered with the storage manager."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Unknown collection: {name}")


class UnknownPluginOperationError(KeyError):
    """Raised when a plugin operation id is not registered with the storage manager."""

    def __init__(self, op_id: str) -> None:
        self.op_id = op_id
        super().__init__(f"Unknown plugin operation: {op_id}")


class InvalidQueryError(ValueError):
    """Raised when a where-clause names an unknown field or operator."""

    pass


def _lower(value: Any) -> Any:
    if isinstance(value, str):
        return value.lower()
    if isinstance(value, Mapping):
        return {op: _lower(v) for op, v in value.items()}
    if isinstance(value, list | tuple | set | frozenset):
        return [_lower(v) for v in value]
    return value


class Collection:
    """A named collection of documents backed by one SQLAlchemy model."""

    def __init__(
        self,
        name: str,
        model: type[Base],
        session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        self.name = name
        self.model = model
        self._session_factory = session_factory
        self._pk_fields = tuple(column.key for column in inspect(model).primary_key)

    def __repr__(self) -> str:
        return f"Collection({self.name!r})"

    @property
    def pk_fields(self) -> tuple[str, ...]:
        """Primary key field names, in declaration order."""
        return self._pk_fields

    def _column(self, field: str) -> Any:
        try:
            return getattr(self.model, field)
        except AttributeError as e:
            raise InvalidQueryError(
                f"Collection '{self.name}' has no field '{field}'",
            ) from e

    def _filters(
        self,
        where: Where | None,
        ignore_case: Iterable[str] = (),
    ) -> list[ColumnElement[bool]]:
        """Translate a where-clause into SQLAlchemy filter expressions."""
        ignore_case = set(ignore_case)
        clauses: list[ColumnElement[bool]] = []
        for field, condition in (where or {}).items():
            column = self._column(field)
            if field in ignore_case:
                column = func.lower(column)
                condition = _lower(condition)

            if isinstance(condition, Mapping):
                for op, value in condition.items():
                    if op not in _OPERATORS:
                        raise InvalidQueryError(f"Unsupported query operator: {op}")
                    clauses.append(_OPERATORS[op](column, value))
            elif condition is None:
                clauses.append(column.is_(None))
            else:
                clauses.append(column == condition)
        return clauses

    def _pk_where(self, obj: Mapping[str, Any]) -> dict[str, Any]:
        missing = [field for field in self._pk_fields if field not in obj]
        if missing:
            raise InvalidQueryError(
                f"Object for '{self.name}' is missing primary key field(s): {', '.join(missing)}",
            )
        return {field: obj[field] for field in self._pk_fields}

    async def find_object(
        self,
        where: Where | None = None,
        *,
        ignore_case: Iterable[str] = (),
    ) -> Any | None:
        """Return the first object matching the where-clause, or None."""
        query = select(self.model).where(*self._filters(where, ignore_case)).limit(1)
        async with self._session_factory() as session:
            result = await session.execute(query)
            return result.scalars().first()

    async def find_objects(
        self,
        where: Where | None = None,
        *,
        order_by: Sequence[tuple[str, SortDirection]] = (),
        skip: int = 0,
        limit: int | None = None,
        ignore_case: Iterable[str] = (),
    ) -> list[Any]:
        """Return all objects matching the where-clause, optionally sorted and paginated."""
        query = select(self.model).where(*self._filters(where, ignore_case))
        for field, direction in order_by:
            column = self._column(field)
            query = query.order_by(column.desc() if direction == "desc" else column.asc())
        if skip:
            query = query.offset(skip)
        if limit is not None:
            query = query.limit(limit)
        async with self._session_factory() as session:
            result = await session.execute(query)
            return list(result.scalars().all())

    async def find_all_objects(self, where: Where | None = None) -> list[Any]:
        """Return every object matching the where-clause, unpaginated."""
        return await self.find_objects(where)

    async def count_objects(self, where: Where | None = None) -> int:
        """Count objects matching the where-clause."""
        query = select(func.count()).select_from(self.model).where(*self._filters(where))
        async with self._session_factory() as session:
            return int(await session.scalar(query) or 0)

    async def create_object(
        self,
        obj: Mapping[str, Any],
        *,
        on_conflict: ConflictPolicy = "raise",
    ) -> Any:
        """
        Insert a new object and return it.

        Args:
            obj: Field values for the new object.
            on_conflict:
                What to do when the insert violates a uniqueness constraint.
                "raise" re-raises the IntegrityError; "ignore" returns the object
                already stored under the same primary key; "update" overwrites that
                object's non-key fields with the given values and returns it.

        Raises:
            IntegrityError: On conflict with on_conflict="raise", or when the conflict
                is not on the primary key (e.g. a unique index) and no stored object
                shares the given key.
        """
        instance = self.model(**obj)
        try:
            async with self._session_factory() as session:
                session.add(instance)
                await session.commit()
        except IntegrityError:
            if on_conflict == "raise":
                raise
            pk_where = self._pk_where(obj)
            existing = await self.find_object(pk_where)
            if existing is None:
                raise
            if on_conflict == "ignore":
                logger.debug("Ignoring duplicate %s object %s", self.name, pk_where)
                return existing
            updates = {k: v for k, v in obj.items() if k not in self._pk_fields}
            if updates:
                await self.update_object(pk_where, updates)
            return await self.find_object(pk_where)
        return instance

    async def _execute_write(self, statement: Any) -> int:
        async with self._session_factory() as session:
            result = await session.execute(statement)
            await session.commit()
            return result.rowcount

    async def update_object(self, where: Where, updates: Mapping[str, Any]) -> int:
        """Update the object matching the where-clause. Returns the number of rows changed."""
        return await self.update_objects(where, updates)

    async def update_objects(self, where: Where, updates: Mapping[str, Any]) -> int:
        """Update every object matching the where-clause. Returns the number of rows changed."""
        if not updates:
            return 0
        statement = update(self.model).where(*self._filters(where)).values(**updates)
        return await self._execute_write(statement)

    async def delete_object(self, where: Where) -> int:
        """Delete the object matching the where-clause. Returns the number of rows removed."""
        return await self.delete_objects(where)

    async def delete_objects(self, where: Where) -> int:
        """Delete every object matching the where-clause. Returns the number of rows removed."""
        statement = delete(self.model).where(*self._filters(where))
        return await self._execute_write(statement)


class StoragePlugin(Protocol):
    """A custom query capability registered on the storage manager."""

    def install(self, storage: "StorageManager") -> Mapping[str, Callable[..., Awaitable[Any]]]:
        """Bind to the storage manager and return the operations it provides by id."""
        ...


class StorageManager:
    """Registry of collections and plugin operations over one session factory."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        models: Iterable[type[Base]] = DEFAULT_MODELS,
    ) -> None:
        self._session_factory = session_factory
        self._collections = {
            model.__tablename__: Collection(model.__tablename__, model, session_factory)
            for model in models
        }
        self._plugin_operations: dict[str, Callable[..., Awaitable[Any]]] = {}

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        """The session factory every collection opens sessions from."""
        return self._session_factory

    def collection(self, name: str) -> Collection:
        """Return the collection registered under name."""
        try:
            return self._collections[name]
        except KeyError:
            raise UnknownCollectionError(name) from None

    def has_collection(self, name: str) -> bool:
        """Whether a collection is registered under name."""
        return name in self._collections

    def register_plugin(self, plugin: StoragePlugin) -> None:
        """Install a plugin and expose its operations by id."""
        operations = plugin.install(self)
        for op_id, handler in operations.items():
            if op_id in self._plugin_operations:
                raise ValueError(f"Plugin operation already registered: {op_id}")
            self._plugin_operations[op_id] = handler
        logger.debug("Registered plugin operations: %s", ", ".join(operations))

    def has_plugin_operation(self, op_id: str) -> bool:
        """Whether a plugin operation is registered under op_id."""
        return op_id in self._plugin_operations

    async def execute(
        self,
        collection: str | None,
        verb: str,
        *args: Any,
        **options: Any,
    ) -> Any:
        """
        Run a verb against a collection, or a plugin operation when collection is None.

        Returns whatever the verb returns: a single object, a list of objects, or a
        row count for mutations.
        """
        if collection is None:
            try:
                plugin_op = self._plugin_operations[verb]
            except KeyError:
                raise UnknownPluginOperationError(verb) from None
            return await plugin_op(*args, **options)

        method = getattr(self.collection(collection), verb)
        return await method(*args, **options)
