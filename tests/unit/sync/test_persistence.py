"""Tests for meetgrid/sync/persistence.py

Both stores must assign canonical ids on create, report unknown ids as
NotFoundError and keep the wire format intact.
"""

from datetime import datetime, timedelta

import pytest

from meetgrid.errors import NetworkError, NotFoundError, PersistenceError, ValidationError
from meetgrid.sync.persistence import InMemoryMeetingStore, SQLiteMeetingStore


# ─────────────────────────────────────────────────────────────────────────────
# Setup: SQLite store in a temp directory
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def sqlite_store(tmp_path):
    return SQLiteMeetingStore(tmp_path / "data" / "meetings.db")


@pytest.fixture
def week_range(week_start):
    return week_start, week_start + timedelta(days=7)


class TestInMemoryStore:
    @pytest.mark.asyncio
    async def test_create_assigns_canonical_id(self, meeting_factory):
        store = InMemoryMeetingStore()
        created = await store.create(meeting_factory("temp-abc", 1, "09:00", "10:00"))

        assert created.id != "temp-abc"
        assert not created.is_temporary()
        assert created.created is not None
        assert created.updated == created.created
        assert store.get(created.id) == created
        assert store.calls == [("create", "temp-abc", store.calls[0][2])]

    @pytest.mark.asyncio
    async def test_update_keeps_created(self, store, meeting_a):
        first = await store.update(meeting_a.id, meeting_a.model_copy(update={"notes": "one"}))
        second = await store.update(meeting_a.id, meeting_a.model_copy(update={"notes": "two"}))
        assert second.created == first.created
        assert second.notes == "two"

    @pytest.mark.asyncio
    async def test_update_unknown_raises_not_found(self, store, meeting_c):
        with pytest.raises(NotFoundError, match="does not exist"):
            await store.update(meeting_c.id, meeting_c)

    @pytest.mark.asyncio
    async def test_delete(self, store, meeting_a):
        await store.delete(meeting_a.id)
        assert store.get(meeting_a.id) is None
        with pytest.raises(NotFoundError):
            await store.delete(meeting_a.id)

    @pytest.mark.asyncio
    async def test_failure_injection(self, store, meeting_a):
        store.fail_next(NetworkError("offline"), times=2)
        for _ in range(2):
            with pytest.raises(NetworkError):
                await store.update(meeting_a.id, meeting_a)
        await store.update(meeting_a.id, meeting_a)
        assert len(store.calls) == 3

    @pytest.mark.asyncio
    async def test_list_filters_by_overlap(self, store, meeting_a, at_time):
        found = await store.list(at_time(1, "09:45"), at_time(1, "09:50"))
        assert {m.id for m in found} == {meeting_a.id, "meeting-b"}

        found = await store.list(at_time(1, "10:00"), at_time(1, "10:15"))
        assert [m.id for m in found] == ["meeting-b"]


class TestSQLiteStore:
    @pytest.mark.asyncio
    async def test_create_and_list(self, sqlite_store, meeting_factory, week_range):
        created = await sqlite_store.create(meeting_factory("temp-1", 1, "09:00", "10:00", notes="hi"))

        found = await sqlite_store.list(*week_range)
        assert [m.id for m in found] == [created.id]
        assert found[0].notes == "hi"
        assert found[0].time == created.time

    @pytest.mark.asyncio
    async def test_list_outside_range(self, sqlite_store, meeting_factory):
        await sqlite_store.create(meeting_factory("temp-1", 1, "09:00", "10:00"))
        found = await sqlite_store.list(datetime(2024, 2, 1), datetime(2024, 2, 8))
        assert found == []

    @pytest.mark.asyncio
    async def test_update(self, sqlite_store, meeting_factory, week_range, at_time):
        created = await sqlite_store.create(meeting_factory("temp-1", 1, "09:00", "10:00"))
        moved = created.with_time(created.time.with_range(at_time(1, "11:00"), at_time(1, "12:00")))

        stored = await sqlite_store.update(created.id, moved)

        assert stored.created == created.created
        (found,) = await sqlite_store.list(*week_range)
        assert found.time.from_ == at_time(1, "11:00")

    @pytest.mark.asyncio
    async def test_update_unknown_raises_not_found(self, sqlite_store, meeting_a):
        with pytest.raises(NotFoundError):
            await sqlite_store.update(meeting_a.id, meeting_a)

    @pytest.mark.asyncio
    async def test_update_temporary_id_rejected(self, sqlite_store, meeting_factory):
        meeting = meeting_factory("temp-9", 1, "09:00", "10:00")
        with pytest.raises(ValidationError, match="unsaved"):
            await sqlite_store.update(meeting.id, meeting)

    @pytest.mark.asyncio
    async def test_delete(self, sqlite_store, meeting_factory, week_range):
        created = await sqlite_store.create(meeting_factory("temp-1", 1, "09:00", "10:00"))
        await sqlite_store.delete(created.id)
        assert await sqlite_store.list(*week_range) == []
        with pytest.raises(NotFoundError):
            await sqlite_store.delete(created.id)

    @pytest.mark.asyncio
    async def test_database_errors_are_persistence_errors(self, tmp_path, meeting_a):
        # A directory where the database file should be.
        db_path = tmp_path / "meetings.db"
        db_path.mkdir()
        store = SQLiteMeetingStore(db_path)
        with pytest.raises(PersistenceError):
            await store.list(meeting_a.time.from_, meeting_a.time.to)
