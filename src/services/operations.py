"""
Declarative named operations over the document collections.

A storage module declares its persistence needs as a table of named operations:

    operations = {
        "find_bookmark_by_url": Operation(
            collection="annotation_bookmarks",
            verb=Verb.FIND_OBJECT,
            args={"url": "$url:pk"},
        ),
    }

and runs them with a loosely-typed argument bag:

    await self.operation("find_bookmark_by_url", {"url": url})

Argument templates contain placeholders of the form ``$name:kind``. At call time
each placeholder is replaced by the value bound to ``name`` in the bag, after
checking it against ``kind``. A template of ``None`` passes the whole bag through
as the object (used by create verbs). A list template supplies positional
arguments, e.g. ``[where, updates]`` for update verbs.
"""
import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any, ClassVar
from uuid import UUID

from db.storage import StorageManager
from services.exceptions import OperationArgumentError, UnknownOperationError

logger = logging.getLogger(__name__)

PLACEHOLDER_PATTERN = re.compile(r"^\$(?P<name>[A-Za-z_]\w*):(?P<kind>[a-z]+)$")


class Verb(StrEnum):
    """Collection verbs an operation can issue."""

    FIND_OBJECT = "find_object"
    FIND_OBJECTS = "find_objects"
    COUNT_OBJECTS = "count_objects"
    CREATE_OBJECT = "create_object"
    UPDATE_OBJECT = "update_object"
    UPDATE_OBJECTS = "update_objects"
    DELETE_OBJECT = "delete_object"
    DELETE_OBJECTS = "delete_objects"


class ArgKind(StrEnum):
    """Primitive kinds a placeholder can require."""

    PK = "pk"
    STRING = "string"
    INT = "int"
    UUID = "uuid"
    DATETIME = "datetime"
    JSON = "json"
    ANY = "any"


def _check_kind(operation: str, name: str, kind: ArgKind, value: Any) -> Any:  # noqa: PLR0911
    """Validate (and where unambiguous, coerce) one bound value."""
    if kind is ArgKind.ANY:
        return value
    if kind is ArgKind.PK:
        if isinstance(value, UUID):
            return value
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        if isinstance(value, str) and value:
            return value
        raise OperationArgumentError(operation, f"'{name}' must be a non-empty key, got {value!r}")
    if kind is ArgKind.STRING:
        if value is None or isinstance(value, str):
            return value
        raise OperationArgumentError(operation, f"'{name}' must be a string, got {value!r}")
    if kind is ArgKind.INT:
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        raise OperationArgumentError(operation, f"'{name}' must be an integer, got {value!r}")
    if kind is ArgKind.UUID:
        if isinstance(value, UUID):
            return value
        try:
            return UUID(str(value))
        except ValueError:
            raise OperationArgumentError(
                operation, f"'{name}' must be a UUID, got {value!r}",
            ) from None
    if kind is ArgKind.DATETIME:
        if isinstance(value, datetime):
            return value
        raise OperationArgumentError(operation, f"'{name}' must be a datetime, got {value!r}")
    # ArgKind.JSON
    if value is None or isinstance(value, dict | list | str | int | float | bool):
        return value
    raise OperationArgumentError(operation, f"'{name}' must be JSON-serializable, got {value!r}")


@dataclass(frozen=True)
class Placeholder:
    """A ``$name:kind`` slot in an argument template."""

    name: str
    kind: ArgKind

    @classmethod
    def parse(cls, token: str) -> "Placeholder | None":
        """Parse a template token; returns None when the token is a literal."""
        match = PLACEHOLDER_PATTERN.match(token)
        if match is None:
            return None
        try:
            kind = ArgKind(match["kind"])
        except ValueError:
            raise ValueError(f"Unknown placeholder kind in '{token}'") from None
        return cls(name=match["name"], kind=kind)

    def resolve(self, operation: str, args: Mapping[str, Any]) -> Any:
        """Look up and check the bound value for this placeholder."""
        if self.name not in args:
            raise OperationArgumentError(operation, f"missing argument '{self.name}'")
        return _check_kind(operation, self.name, self.kind, args[self.name])


def _compile(template: Any) -> Any:
    if isinstance(template, str):
        placeholder = Placeholder.parse(template)
        return placeholder if placeholder is not None else template
    if isinstance(template, Mapping):
        return {key: _compile(value) for key, value in template.items()}
    if isinstance(template, list | tuple):
        return [_compile(item) for item in template]
    return template


def _bind(compiled: Any, operation: str, args: Mapping[str, Any]) -> Any:
    if isinstance(compiled, Placeholder):
        return compiled.resolve(operation, args)
    if isinstance(compiled, dict):
        return {key: _bind(value, operation, args) for key, value in compiled.items()}
    if isinstance(compiled, list):
        return [_bind(item, operation, args) for item in compiled]
    return compiled


def _collect(compiled: Any) -> list[Placeholder]:
    if isinstance(compiled, Placeholder):
        return [compiled]
    if isinstance(compiled, dict):
        return [p for value in compiled.values() for p in _collect(value)]
    if isinstance(compiled, list):
        return [p for item in compiled for p in _collect(item)]
    return []


@dataclass(frozen=True)
class Operation:
    """
    One named persistence operation.

    Attributes:
        verb: A collection Verb, or a plugin operation id when collection is None.
        collection: Target collection name; None for plugin operations.
        args: Argument template (None, a dict, or a list of positional templates).
        kwargs: Keyword argument template for the verb (e.g. on_conflict, skip, limit).
            Placeholders are resolved like args; literals pass through.
    """

    verb: Verb | str
    collection: str | None = None
    args: Any = None
    kwargs: Mapping[str, Any] = field(default_factory=dict)
    _compiled: Any = field(init=False, repr=False, compare=False)
    _compiled_kwargs: Any = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if self.collection is not None and not isinstance(self.verb, Verb):
            object.__setattr__(self, "verb", Verb(self.verb))
        object.__setattr__(self, "_compiled", _compile(self.args))
        object.__setattr__(self, "_compiled_kwargs", _compile(self.kwargs))

    @property
    def placeholders(self) -> list[Placeholder]:
        """Every placeholder in the template, in template order."""
        return _collect(self._compiled) + _collect(self._compiled_kwargs)

    def bind(
        self,
        name: str,
        args: Mapping[str, Any],
    ) -> tuple[tuple[Any, ...], dict[str, Any]]:
        """Resolve the templates against an argument bag into verb (args, kwargs)."""
        kwargs = _bind(self._compiled_kwargs, name, args)
        if self.args is None:
            return (dict(args),), kwargs
        bound = _bind(self._compiled, name, args)
        if isinstance(self.args, list | tuple):
            return tuple(bound), kwargs
        return (bound,), kwargs


class StorageModule:
    """
    Base class for stores that talk to collections through named operations.

    Subclasses set ``operations``. Every operation is checked against the storage
    manager when the module is constructed, so a typo in a collection name or a
    missing plugin fails at startup rather than on first use.
    """

    operations: ClassVar[Mapping[str, Operation]] = {}

    def __init__(self, storage: StorageManager) -> None:
        self.storage = storage
        module = type(self).__name__
        for name, op in self.operations.items():
            if op.collection is None:
                if not storage.has_plugin_operation(op.verb):
                    raise ValueError(
                        f"{module}.{name} uses plugin operation '{op.verb}' which is not registered",
                    )
            elif not storage.has_collection(op.collection):
                raise ValueError(
                    f"{module}.{name} targets unknown collection '{op.collection}'",
                )

    async def operation(self, name: str, args: Mapping[str, Any] | None = None) -> Any:
        """
        Run a declared operation with the given argument bag.

        Returns the raw verb result: an object, a list of objects, or a row count.

        Raises:
            UnknownOperationError: If name is not declared by this module.
            OperationArgumentError: If the bag is missing a placeholder or a value has
                the wrong kind.
        """
        op = self.operations.get(name)
        if op is None:
            raise UnknownOperationError(type(self).__name__, name)
        call_args, call_kwargs = op.bind(name, args or {})
        logger.debug("operation %s -> %s.%s", name, op.collection or "<plugin>", op.verb)
        return await self.storage.execute(op.collection, op.verb, *call_args, **call_kwargs)
