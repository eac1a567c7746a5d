"""Tests for the producer-side history recorder."""

import asyncio

import pytest

from conftest import make_entry
from video_history.models.history import HistorySource, UserContext
from video_history.recorder import HistoryRecorder


@pytest.fixture
def recorder(remote, cache, bus):
    return HistoryRecorder(remote=remote, cache=cache, refresh_bus=bus)


@pytest.fixture
def signals(bus):
    calls = []
    bus.subscribe(lambda: calls.append(1))
    return calls


def test_anonymous_entry_stays_local(recorder, remote, cache, signals):
    entry = make_entry("a", owner="anonymous")

    assert asyncio.run(recorder.record(entry)) is HistorySource.LOCAL
    assert cache.read() == [entry]
    assert remote.calls == []
    assert signals == [1]


def test_authenticated_entry_is_upserted(recorder, remote, cache, signals):
    entry = make_entry("a")

    assert asyncio.run(recorder.record(entry)) is HistorySource.REMOTE
    assert remote.ops() == ["upsert"]
    assert cache.read() == []
    assert signals == [1]


def test_remote_failure_keeps_entry_locally(recorder, remote, cache, signals):
    remote.failing.add("upsert")
    entry = make_entry("a")

    assert asyncio.run(recorder.record(entry)) is HistorySource.LOCAL
    assert cache.read() == [entry]
    assert signals == [1]


def test_nothing_stored_publishes_nothing(recorder, remote, slot, signals):
    remote.failing.add("upsert")
    slot.quota_bytes = 1

    assert asyncio.run(recorder.record(make_entry("a"))) is HistorySource.NONE
    assert signals == []


def test_recording_refreshes_open_stores(recorder, make_store, user):
    async def run():
        store = make_store(user)
        await store.load()
        await recorder.record(make_entry("new"))
        await store.wait_until_idle()
        return store

    store = asyncio.run(run())

    assert [e.id for e in store.entries] == ["new"]


def test_fallback_entry_is_hidden_from_other_users(recorder, remote, make_store, user):
    remote.failing.update({"upsert", "fetch_by_user"})

    async def run():
        await recorder.record(make_entry("secret", owner="user-1"))
        anonymous = await make_store(UserContext.anonymous()).load()
        other = await make_store(UserContext(id="user-2")).load()
        owner = await make_store(user).load()
        return anonymous, other, owner

    anonymous, other, owner = asyncio.run(run())

    assert anonymous == []
    assert other == []
    assert [e.id for e in owner] == ["secret"]
