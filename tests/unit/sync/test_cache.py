"""Tests for meetgrid/sync/cache.py

Background refreshes must never replace a meeting with an unconfirmed local
edit. Everything else follows the server snapshot.
"""

import asyncio
from datetime import timedelta

import pytest

from meetgrid.sync.cache import CollectionCache


def _cache(week_start, meetings, fetcher=None):
    return CollectionCache(week_start, week_start + timedelta(days=7), fetcher=fetcher, meetings=meetings)


def _gated(fetch, gate):
    """Fetcher that takes its snapshot first, then waits for ``gate``."""

    async def fetcher(start, end):
        snapshot = await fetch(start, end)
        await gate.wait()
        return snapshot

    return fetcher


class TestMerge:
    def test_unprotected_entries_follow_the_server(self, week_start, meeting_a, meeting_b):
        cache = _cache(week_start, [meeting_a, meeting_b])
        remote_a = meeting_a.model_copy(update={"notes": "remote"})

        result = cache.merge([remote_a, meeting_b])

        assert result.updated == [meeting_a.id]
        assert cache.get(meeting_a.id) == remote_a
        assert result.changed is True

    def test_protected_entry_is_never_replaced(self, week_start, meeting_a, meeting_b):
        cache = _cache(week_start, [meeting_a, meeting_b])
        cache.protect(meeting_a.id)

        result = cache.merge([meeting_a.model_copy(update={"notes": "remote"}), meeting_b])

        assert cache.get(meeting_a.id) == meeting_a
        assert result.skipped == [meeting_a.id]
        assert result.updated == []

    def test_protected_entry_survives_missing_from_snapshot(self, week_start, meeting_a, meeting_b):
        cache = _cache(week_start, [meeting_a, meeting_b])
        cache.protect(meeting_a.id)

        result = cache.merge([])

        assert meeting_a.id in cache
        assert meeting_b.id not in cache
        assert result.removed == [meeting_b.id]

    def test_new_meetings_are_added(self, week_start, meeting_a, meeting_c):
        cache = _cache(week_start, [meeting_a])
        result = cache.merge([meeting_a, meeting_c])
        assert result.added == [meeting_c.id]
        assert [m.id for m in cache.meetings] == [meeting_a.id, meeting_c.id]

    def test_identical_snapshot_changes_nothing(self, week_start, meeting_a):
        calls = []
        cache = _cache(week_start, [meeting_a])
        cache.add_listener(calls.append)

        result = cache.merge([meeting_a])

        assert result.changed is False
        assert calls == []


class TestPatches:
    def test_upsert_keeps_position(self, week_start, meeting_a, meeting_b):
        cache = _cache(week_start, [meeting_a, meeting_b])
        cache.upsert(meeting_a.model_copy(update={"notes": "edited"}))
        assert [m.id for m in cache.meetings] == [meeting_a.id, meeting_b.id]
        assert cache.get(meeting_a.id).notes == "edited"

    def test_remove_releases_protection(self, week_start, meeting_a):
        cache = _cache(week_start, [meeting_a])
        cache.protect(meeting_a.id)
        assert cache.remove(meeting_a.id) == meeting_a
        assert not cache.is_protected(meeting_a.id)
        assert len(cache) == 0

    def test_replace_id_in_place(self, week_start, meeting_a, meeting_b):
        temp = meeting_a.model_copy(update={"id": "temp-1"})
        cache = _cache(week_start, [temp, meeting_b])
        cache.protect("temp-1")

        cache.replace_id("temp-1", meeting_a)

        assert [m.id for m in cache.meetings] == [meeting_a.id, meeting_b.id]
        assert "temp-1" not in cache
        assert cache.is_protected(meeting_a.id)
        assert not cache.is_protected("temp-1")
        assert cache.protected_ids == frozenset({meeting_a.id})

    def test_replace_id_of_uncached_meeting_inserts(self, week_start, meeting_a):
        cache = _cache(week_start, [])
        cache.replace_id("temp-1", meeting_a)
        assert cache.get(meeting_a.id) == meeting_a

    def test_listeners_notified(self, week_start, meeting_a):
        calls = []
        cache = _cache(week_start, [])
        cache.add_listener(calls.append)
        cache.upsert(meeting_a)
        cache.upsert(meeting_a)
        cache.remove_listener(calls.append)
        cache.remove(meeting_a.id)
        assert calls == [cache]


class TestRevalidate:
    @pytest.mark.asyncio
    async def test_reloads_from_fetcher(self, week_start, store, meeting_a, meeting_b):
        cache = _cache(week_start, [], fetcher=store.list)
        result = await cache.revalidate()
        assert sorted(result.added) == sorted([meeting_a.id, meeting_b.id])
        assert len(cache) == 2

    @pytest.mark.asyncio
    async def test_requires_fetcher(self, week_start):
        with pytest.raises(RuntimeError, match="no fetcher"):
            await _cache(week_start, []).revalidate()

    @pytest.mark.asyncio
    async def test_local_edit_during_fetch_is_kept(self, week_start, store, meeting_a, meeting_b):
        gate = asyncio.Event()
        cache = _cache(week_start, [meeting_a, meeting_b], fetcher=_gated(store.list, gate))
        refresh = asyncio.create_task(cache.revalidate())
        await asyncio.sleep(0.01)

        edited = meeting_a.model_copy(update={"notes": "edited"})
        cache.upsert(edited)
        gate.set()
        result = await refresh

        assert cache.get(meeting_a.id) == edited
        assert result.skipped == [meeting_a.id]
        assert result.updated == []

    @pytest.mark.asyncio
    async def test_protection_at_fetch_start_outlives_release(self, week_start, store, meeting_a, meeting_b):
        gate = asyncio.Event()
        confirmed = meeting_a.model_copy(update={"notes": "confirmed"})
        cache = _cache(week_start, [confirmed, meeting_b], fetcher=_gated(store.list, gate))
        cache.protect(meeting_a.id)
        refresh = asyncio.create_task(cache.revalidate())
        await asyncio.sleep(0.01)

        cache.release(meeting_a.id)
        gate.set()
        await refresh

        assert cache.get(meeting_a.id) == confirmed

    @pytest.mark.asyncio
    async def test_local_removal_during_fetch_is_not_undone(self, week_start, store, meeting_a, meeting_b):
        gate = asyncio.Event()
        cache = _cache(week_start, [meeting_a, meeting_b], fetcher=_gated(store.list, gate))
        refresh = asyncio.create_task(cache.revalidate())
        await asyncio.sleep(0.01)

        cache.remove(meeting_b.id)
        gate.set()
        result = await refresh

        assert meeting_b.id not in cache
        assert result.added == []

    @pytest.mark.asyncio
    async def test_next_refresh_follows_the_server_again(self, week_start, store, meeting_a, meeting_b):
        gate = asyncio.Event()
        cache = _cache(week_start, [meeting_a, meeting_b], fetcher=_gated(store.list, gate))
        refresh = asyncio.create_task(cache.revalidate())
        await asyncio.sleep(0.01)
        cache.upsert(meeting_a.model_copy(update={"notes": "edited"}))
        gate.set()
        await refresh

        result = await cache.revalidate()

        assert result.updated == [meeting_a.id]
        assert cache.get(meeting_a.id) == meeting_a
