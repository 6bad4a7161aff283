"""Tests for DebouncedFetcher."""

import asyncio

import pytest

from xpshare.services.debounce import DebouncedFetcher


class TestDebouncedFetcher:
    """Tests for quiet-period debouncing and latest-wins delivery."""

    async def test_burst_dispatches_once_with_last_value(self):
        calls = []

        async def fetch(value: str) -> str:
            calls.append(value)
            return value.upper()

        fetcher = DebouncedFetcher(fetch, delay=0.05)
        for prefix in ["u", "uf", "ufo"]:
            fetcher.submit(prefix)
            await asyncio.sleep(0.01)

        assert await fetcher.drain() == "UFO"
        assert calls == ["ufo"]
        assert fetcher.sequence == 1
        assert fetcher.delivered_sequence == 1

    async def test_default_delay_is_300ms(self):
        async def fetch(value: str) -> str:
            return value

        assert DebouncedFetcher(fetch).delay == pytest.approx(0.3)

    async def test_superseded_fetch_is_cancelled(self):
        started = []
        delivered = []

        async def fetch(value: str) -> str:
            started.append(value)
            if value == "slow":
                await asyncio.sleep(1)
            return value

        fetcher = DebouncedFetcher(fetch, delay=0.01, on_result=lambda v, r: delivered.append(r))
        fetcher.submit("slow")
        await asyncio.sleep(0.05)  # "slow" is now in flight
        fetcher.submit("fast")

        assert await fetcher.drain() == "fast"
        assert started == ["slow", "fast"]
        assert delivered == ["fast"]
        assert fetcher.sequence == 2

    async def test_stale_response_is_dropped(self):
        """A fetch that finishes despite cancellation must not be delivered."""
        delivered = []

        async def stubborn_fetch(value: str) -> str:
            if value == "old":
                try:
                    await asyncio.sleep(1)
                except asyncio.CancelledError:
                    return "stale"
            return value

        fetcher = DebouncedFetcher(stubborn_fetch, delay=0.01, on_result=lambda v, r: delivered.append(r))
        fetcher.submit("old")
        await asyncio.sleep(0.05)
        fetcher.submit("new")

        assert await fetcher.drain() == "new"
        assert delivered == ["new"]
        assert fetcher.dropped == 1

    async def test_fetch_errors_surface_on_drain(self):
        async def failing(value: str) -> str:
            raise RuntimeError("backend down")

        fetcher = DebouncedFetcher(failing, delay=0.01)
        fetcher.submit("ufo")

        with pytest.raises(RuntimeError):
            await fetcher.drain()

    async def test_cancel_abandons_pending_input(self):
        calls = []

        async def fetch(value: str) -> str:
            calls.append(value)
            return value

        fetcher = DebouncedFetcher(fetch, delay=0.05)
        fetcher.submit("ufo")
        fetcher.cancel()

        assert await fetcher.drain() is None
        assert calls == []
