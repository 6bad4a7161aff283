"""Debounced, latest-wins fetching for type-ahead inputs.

``DebouncedFetcher`` waits for a quiet period after the last ``submit`` before
calling the fetch coroutine. Every dispatched call gets the next sequence
number; only the response of the most recently dispatched call is delivered.
Older in-flight calls are cancelled, and a response that still arrives for an
older sequence number is dropped.
"""

import asyncio
from typing import Awaitable, Callable, Generic, Optional, TypeVar

import structlog

from xpshare.config import settings

logger = structlog.get_logger(__name__)

T = TypeVar("T")


async def _settle(task: Optional[asyncio.Task]) -> None:
    """Wait for ``task``; a cancellation of the task itself is not an error."""
    if task is None:
        return
    try:
        await task
    except asyncio.CancelledError:
        if not task.cancelled():
            raise


class DebouncedFetcher(Generic[T]):
    """Latest-wins debouncer around an async fetch function.

    Must be used from within a running event loop.
    """

    def __init__(
        self,
        fetch: Callable[[str], Awaitable[T]],
        delay: Optional[float] = None,
        on_result: Optional[Callable[[str, T], None]] = None,
    ):
        """Initialize the fetcher.

        Args:
            fetch: Coroutine function called with the input value
            delay: Quiet period in seconds (default AUTOCOMPLETE_DEBOUNCE_MS)
            on_result: Called with (value, result) for every delivered response
        """
        self.fetch = fetch
        self.delay = delay if delay is not None else settings.AUTOCOMPLETE_DEBOUNCE_MS / 1000
        self.on_result = on_result

        self.result: Optional[T] = None
        self.delivered_sequence = 0
        self.dropped = 0

        self._sequence = 0
        self._timer: Optional[asyncio.Task] = None
        self._inflight: Optional[asyncio.Task] = None

    @property
    def sequence(self) -> int:
        """Sequence number of the most recently dispatched call."""
        return self._sequence

    def submit(self, value: str) -> None:
        """Register new input, restarting the quiet period."""
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        self._timer = asyncio.create_task(self._wait_then_dispatch(value))

    async def _wait_then_dispatch(self, value: str) -> None:
        await asyncio.sleep(self.delay)
        self._dispatch(value)

    def _dispatch(self, value: str) -> None:
        self._sequence += 1
        if self._inflight is not None and not self._inflight.done():
            self._inflight.cancel()
            logger.debug("debounced_fetch_cancelled", superseded_by=self._sequence)
        self._inflight = asyncio.create_task(self._fetch(self._sequence, value))

    async def _fetch(self, sequence: int, value: str) -> None:
        result = await self.fetch(value)

        if sequence != self._sequence:
            self.dropped += 1
            logger.debug("stale_response_dropped", sequence=sequence, latest=self._sequence)
            return

        self.result = result
        self.delivered_sequence = sequence
        if self.on_result is not None:
            self.on_result(value, result)

    async def drain(self) -> Optional[T]:
        """Wait for the pending quiet period and the latest fetch.

        Returns:
            The latest delivered result

        Raises:
            Exception: Whatever the latest fetch raised
        """
        await _settle(self._timer)
        await _settle(self._inflight)
        return self.result

    def cancel(self) -> None:
        """Abandon pending input and any in-flight fetch."""
        for task in (self._timer, self._inflight):
            if task is not None and not task.done():
                task.cancel()
