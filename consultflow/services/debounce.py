"""Latest-only debounce for search-style lookups.

Each call for a key waits out the debounce window. If a newer call for the
same key arrives meanwhile, or while the lookup runs, the older call's result
is discarded. Nothing is aborted mid-flight.
"""

import asyncio
import itertools
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

import structlog

logger = structlog.get_logger(__name__)

T = TypeVar("T")


@dataclass
class DebouncedResult(Generic[T]):
    superseded: bool
    value: T | None = None


class LatestOnlyDebouncer:
    """Latest generation per key with a timer-based debounce window."""

    def __init__(self, delay_seconds: float = 0.3):
        self.delay_seconds = delay_seconds
        self._generations: dict[str, int] = {}
        self._counter = itertools.count(1)

    def _is_current(self, key: str, generation: int) -> bool:
        return self._generations.get(key) == generation

    async def run(self, key: str, func: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> DebouncedResult[T]:
        generation = next(self._counter)
        self._generations[key] = generation

        if self.delay_seconds > 0:
            await asyncio.sleep(self.delay_seconds)

        if not self._is_current(key, generation):
            logger.debug("debounced_call_skipped", key=key, generation=generation)
            return DebouncedResult(superseded=True)

        try:
            value = await func(*args, **kwargs)
        finally:
            current = self._is_current(key, generation)
            if current:
                self._generations.pop(key, None)

        if not current:
            logger.debug("debounced_result_discarded", key=key, generation=generation)
            return DebouncedResult(superseded=True)

        return DebouncedResult(superseded=False, value=value)
