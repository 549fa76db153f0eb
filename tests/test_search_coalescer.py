"""Tests for latest-wins coalescing of search-as-you-type requests."""

import asyncio

import pytest

from services.query.SearchCoalescer import SearchCoalescer


@pytest.mark.asyncio
async def test_only_latest_request_runs(helper_config):
    coalescer = SearchCoalescer(helper_config, debounce_ms=20)
    executed: list[str] = []

    def search_for(query: str):
        async def _search():
            executed.append(query)
            return query
        return _search

    results = await asyncio.gather(
        coalescer.submit("client-1", search_for("a")),
        coalescer.submit("client-1", search_for("ap")),
        coalescer.submit("client-1", search_for("app")),
    )

    assert results == [None, None, "app"]
    assert executed == ["app"]


@pytest.mark.asyncio
async def test_result_superseded_in_flight_is_discarded(helper_config):
    coalescer = SearchCoalescer(helper_config, debounce_ms=0)
    started = asyncio.Event()
    release = asyncio.Event()

    async def slow_search():
        started.set()
        await release.wait()
        return "stale"

    async def fast_search():
        return "fresh"

    slow = asyncio.create_task(coalescer.submit("client-1", slow_search))
    await started.wait()
    fresh = await coalescer.submit("client-1", fast_search)
    release.set()

    assert fresh == "fresh"
    assert await slow is None


@pytest.mark.asyncio
async def test_keys_are_independent(helper_config):
    coalescer = SearchCoalescer(helper_config, debounce_ms=10)

    async def echo(value):
        return value

    results = await asyncio.gather(
        coalescer.submit("client-1", lambda: echo(1)),
        coalescer.submit("client-2", lambda: echo(2)),
    )
    assert results == [1, 2]


@pytest.mark.asyncio
async def test_debounce_defaults_to_configuration(helper_config, env):
    env.setenv("SEARCH_DEBOUNCE_MS", "150")
    coalescer = SearchCoalescer(helper_config)
    assert coalescer._debounce == pytest.approx(0.15)


@pytest.mark.asyncio
async def test_failed_search_releases_its_key(helper_config):
    coalescer = SearchCoalescer(helper_config, debounce_ms=0)

    async def failing_search():
        raise RuntimeError("index down")

    with pytest.raises(RuntimeError):
        await coalescer.submit("client-1", failing_search)

    assert "client-1" not in coalescer._latest


@pytest.mark.asyncio
async def test_cancelled_request_releases_its_key(helper_config):
    coalescer = SearchCoalescer(helper_config, debounce_ms=1000)

    async def never_runs():
        return "unused"

    pending = asyncio.create_task(coalescer.submit("client-1", never_runs))
    await asyncio.sleep(0)
    assert "client-1" in coalescer._latest

    pending.cancel()
    with pytest.raises(asyncio.CancelledError):
        await pending

    assert "client-1" not in coalescer._latest


@pytest.mark.asyncio
async def test_superseded_request_keeps_newer_entry(helper_config):
    coalescer = SearchCoalescer(helper_config, debounce_ms=0)
    started = asyncio.Event()
    release = asyncio.Event()

    async def failing_search():
        started.set()
        await release.wait()
        raise RuntimeError("index down")

    stale = asyncio.create_task(coalescer.submit("client-1", failing_search))
    await started.wait()
    coalescer._latest["client-1"] = 99
    release.set()

    with pytest.raises(RuntimeError):
        await stale
    assert coalescer._latest["client-1"] == 99
