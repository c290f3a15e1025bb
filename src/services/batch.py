"""Concurrent fan-out that records a result for every item instead of failing fast."""
import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Any, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class ItemResult:
    """Outcome of one item in a batch. error is None on success."""

    key: str
    error: str | None = None

    @property
    def ok(self) -> bool:
        """Whether this item succeeded."""
        return self.error is None


@dataclass
class BatchOutcome:
    """Per-item outcomes of a batch, in input order."""

    results: list[ItemResult] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        """Whether every item succeeded."""
        return all(result.ok for result in self.results)

    @property
    def succeeded(self) -> list[str]:
        """Keys of the items that succeeded."""
        return [result.key for result in self.results if result.ok]

    @property
    def failed(self) -> list[ItemResult]:
        """Results of the items that failed."""
        return [result for result in self.results if not result.ok]


async def fan_out(
    items: Sequence[T],
    action: Callable[[T], Awaitable[Any]],
    key: Callable[[T], str],
    label: str,
) -> BatchOutcome:
    """
    Run action for every item concurrently and collect per-item outcomes.

    Sibling actions are not ordered relative to each other. A failing item is logged
    and recorded; it never cancels or hides the others. Cancellation still
    propagates.

    Args:
        items: The batch.
        action: Coroutine function applied to each item.
        key: Maps an item to the key reported in its ItemResult.
        label: Short description of the action, used in log messages.
    """
    raw = await asyncio.gather(*(action(item) for item in items), return_exceptions=True)

    results = []
    for item, result in zip(items, raw, strict=True):
        if isinstance(result, BaseException):
            if not isinstance(result, Exception):
                raise result
            logger.warning("%s failed for %s: %s", label, key(item), result)
            results.append(ItemResult(key=key(item), error=f"{type(result).__name__}: {result}"))
        else:
            results.append(ItemResult(key=key(item)))
    return BatchOutcome(results=results)
