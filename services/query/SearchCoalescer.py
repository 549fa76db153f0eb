import asyncio
import itertools
from typing import Awaitable, Callable, TypeVar

from shared.helper.HelperConfig import HelperConfig

T = TypeVar("T")


class SearchCoalescer:
    """Latest-wins coalescing of search-as-you-type requests.

    Every request is tagged with a sequence number per client key and waits for
    the debounce delay before it runs. A request that is no longer the latest
    for its key when the delay ends is dropped without running; one that is
    superseded while its search is in flight still finishes, but its result is
    discarded. Discarded requests resolve to None.
    """

    def __init__(self, helper_config: HelperConfig, debounce_ms: float | None = None) -> None:
        self.logging = helper_config.get_logger()
        if debounce_ms is None:
            debounce_ms = helper_config.get_number_val("SEARCH_DEBOUNCE_MS", default=300)
        self._debounce = max(0.0, float(debounce_ms) / 1000.0)
        self._seq = itertools.count(1)
        self._latest: dict[str, int] = {}

    def is_latest(self, key: str, seq: int) -> bool:
        return self._latest.get(key) == seq

    async def submit(self, key: str, search: Callable[[], Awaitable[T]]) -> T | None:
        """Run search for key unless a newer request for the same key arrives first.

        Args:
            key (str): Identifies the caller, e.g. a client or input-field id.
            search (Callable[[], Awaitable[T]]): Factory of the search to run; only
                called if the request survives the debounce delay.

        Returns:
            T | None: The search result, or None if the request was superseded.
        """
        seq = next(self._seq)
        self._latest[key] = seq

        try:
            await asyncio.sleep(self._debounce)
            if not self.is_latest(key, seq):
                self.logging.debug("Search request %d for '%s' superseded before running.", seq, key)
                return None

            result = await search()
            if not self.is_latest(key, seq):
                self.logging.debug("Discarding stale result of search request %d for '%s'.", seq, key)
                return None
            return result
        finally:
            # a newer request owns the entry once it has replaced our seq
            if self.is_latest(key, seq):
                del self._latest[key]
