"""Shared exceptions for service layer operations."""
from uuid import UUID


class ListNotFoundError(Exception):
    """Raised when a join row would reference a list id that does not resolve."""

    def __init__(self, list_id: UUID) -> None:
        self.list_id = list_id
        super().__init__(f"No list exists for ID: {list_id}")


class UnknownOperationError(KeyError):
    """Raised when a storage module is asked to run an operation it does not declare."""

    def __init__(self, module: str, name: str) -> None:
        self.module = module
        self.name = name
        super().__init__(f"{module} has no operation named '{name}'")


class OperationArgumentError(ValueError):
    """Raised when the argument bag for a named operation is missing or mistyped."""

    def __init__(self, operation: str, message: str) -> None:
        self.operation = operation
        super().__init__(f"Operation '{operation}': {message}")
