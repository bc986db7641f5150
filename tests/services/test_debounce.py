"""Tests for latest-only debounced lookups."""

import asyncio

import pytest

from consultflow.services.debounce import LatestOnlyDebouncer

pytestmark = pytest.mark.unit


async def test_single_call_returns_value():
    debouncer = LatestOnlyDebouncer(delay_seconds=0.01)

    async def lookup(query):
        return [query.upper()]

    result = await debouncer.run("search:owner-1", lookup, "saas")

    assert result.superseded is False
    assert result.value == ["SAAS"]


async def test_newer_call_supersedes_older_within_window():
    debouncer = LatestOnlyDebouncer(delay_seconds=0.05)
    calls = []

    async def lookup(query):
        calls.append(query)
        return query

    first = asyncio.create_task(debouncer.run("search:owner-1", lookup, "sa"))
    await asyncio.sleep(0.01)
    second = asyncio.create_task(debouncer.run("search:owner-1", lookup, "saas"))

    first_result, second_result = await asyncio.gather(first, second)

    assert first_result.superseded is True
    assert second_result.superseded is False
    assert second_result.value == "saas"
    assert calls == ["saas"]


async def test_result_of_in_flight_call_is_discarded():
    """A lookup already running is not aborted, its result is just dropped."""
    debouncer = LatestOnlyDebouncer(delay_seconds=0)
    started = asyncio.Event()
    release = asyncio.Event()

    async def slow_lookup(query):
        started.set()
        await release.wait()
        return query

    async def fast_lookup(query):
        return query

    first = asyncio.create_task(debouncer.run("search:owner-1", slow_lookup, "sa"))
    await started.wait()
    second_result = await debouncer.run("search:owner-1", fast_lookup, "saas")
    release.set()
    first_result = await first

    assert second_result.value == "saas"
    assert first_result.superseded is True


async def test_keys_are_independent():
    debouncer = LatestOnlyDebouncer(delay_seconds=0.02)

    async def lookup(query):
        return query

    results = await asyncio.gather(
        debouncer.run("search:owner-1", lookup, "a"),
        debouncer.run("search:owner-2", lookup, "b"),
    )

    assert [result.value for result in results] == ["a", "b"]


async def test_failed_lookup_releases_its_key():
    debouncer = LatestOnlyDebouncer(delay_seconds=0)

    async def lookup(query):
        raise ConnectionError("search backend down")

    with pytest.raises(ConnectionError):
        await debouncer.run("search:owner-1", lookup, "saas")

    assert "search:owner-1" not in debouncer._generations


async def test_failed_older_lookup_keeps_newer_generation():
    debouncer = LatestOnlyDebouncer(delay_seconds=0)
    started = asyncio.Event()
    release = asyncio.Event()

    async def slow_failure(query):
        started.set()
        await release.wait()
        raise ConnectionError("search backend down")

    first = asyncio.create_task(debouncer.run("search:owner-1", slow_failure, "sa"))
    await started.wait()
    # A newer call registers while the older lookup is still running
    debouncer._generations["search:owner-1"] = next(debouncer._counter)
    newer = debouncer._generations["search:owner-1"]
    release.set()

    with pytest.raises(ConnectionError):
        await first

    assert debouncer._generations["search:owner-1"] == newer
