"""
Collection cache for the meetings of one date range.

The rendering layer and the layout algorithm read ``meetings``; background
revalidation rewrites the list from the store. Ids with an unconfirmed local
edit (dirty or in flight) are *protected*: revalidation never overwrites or
drops them, so a refresh that races a drag cannot snap the meeting back to
its old position.

Usage:
    cache = CollectionCache(start, end, fetcher=store.list)
    cache.protect("abc")          # mutator has a pending edit
    await cache.revalidate()      # "abc" keeps its local value
    cache.release("abc")          # commit confirmed
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable, Iterable, Optional

from meetgrid.calendar.models import Meeting
from meetgrid.logging_config import get_logger

logger = get_logger(__name__)

Fetcher = Callable[[datetime, datetime], Awaitable[list[Meeting]]]


@dataclass
class RevalidationResult:
    """What a refresh changed."""

    updated: list[str] = field(default_factory=list)
    added: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.updated or self.added or self.removed)


class CollectionCache:
    """Ordered meeting list for [start, end) with protected ids."""

    def __init__(
        self,
        start: datetime,
        end: datetime,
        fetcher: Optional[Fetcher] = None,
        meetings: Optional[Iterable[Meeting]] = None,
    ):
        self.start = start
        self.end = end
        self._fetcher = fetcher
        self._meetings: dict[str, Meeting] = {m.id: m for m in meetings or ()}
        self._protected: set[str] = set()
        self._listeners: list[Callable[[CollectionCache], None]] = []
        # Local change counter; ids touched after a refresh started are newer
        # than that refresh's snapshot.
        self._generation = 0
        self._touched: dict[str, int] = {}
        self._refreshes = 0

    @property
    def meetings(self) -> list[Meeting]:
        return list(self._meetings.values())

    @property
    def protected_ids(self) -> frozenset[str]:
        return frozenset(self._protected)

    def get(self, meeting_id: str) -> Optional[Meeting]:
        return self._meetings.get(meeting_id)

    def __contains__(self, meeting_id: object) -> bool:
        return meeting_id in self._meetings

    def __len__(self) -> int:
        return len(self._meetings)

    def add_listener(self, listener: Callable[[CollectionCache], None]) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: Callable[[CollectionCache], None]) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self)

    def _touch(self, *meeting_ids: str) -> None:
        self._generation += 1
        for meeting_id in meeting_ids:
            self._touched[meeting_id] = self._generation

    def touched_since(self, generation: int) -> set[str]:
        """Ids changed locally after ``generation``."""
        return {meeting_id for meeting_id, seen in self._touched.items() if seen > generation}

    # -- protection ---------------------------------------------------------

    def protect(self, meeting_id: str) -> None:
        self._protected.add(meeting_id)
        self._touch(meeting_id)

    def release(self, meeting_id: str) -> None:
        self._protected.discard(meeting_id)
        self._touch(meeting_id)

    def is_protected(self, meeting_id: str) -> bool:
        return meeting_id in self._protected

    # -- optimistic patches -------------------------------------------------

    def upsert(self, meeting: Meeting) -> None:
        """Insert or replace, keeping the position of an existing entry."""
        self._touch(meeting.id)
        if self._meetings.get(meeting.id) == meeting:
            return
        self._meetings[meeting.id] = meeting
        self._notify()

    def remove(self, meeting_id: str) -> Optional[Meeting]:
        self._touch(meeting_id)
        removed = self._meetings.pop(meeting_id, None)
        self._protected.discard(meeting_id)
        if removed is not None:
            self._notify()
        return removed

    def replace_id(self, old_id: str, meeting: Meeting) -> None:
        """Swap a temporary id for the canonical one, in place."""
        self._touch(old_id, meeting.id)
        was_protected = old_id in self._protected
        self._protected.discard(old_id)
        if was_protected:
            self._protected.add(meeting.id)

        if old_id not in self._meetings:
            self.upsert(meeting)
            return
        self._meetings = {
            (meeting.id if key == old_id else key): (meeting if key == old_id else value)
            for key, value in self._meetings.items()
        }
        self._notify()

    # -- background refresh -------------------------------------------------

    async def revalidate(self) -> RevalidationResult:
        """Reload from the store without overwriting local edits.

        Ids protected when the fetch starts, or changed locally while it is
        outstanding, keep their local value: the snapshot predates them.
        """
        if self._fetcher is None:
            raise RuntimeError("CollectionCache has no fetcher to revalidate with")

        started = self._generation
        held = set(self._protected)
        self._refreshes += 1
        try:
            fresh = await self._fetcher(self.start, self.end)
            return self.merge(fresh, held=held | self.touched_since(started))
        finally:
            self._refreshes -= 1
            if not self._refreshes:
                self._touched.clear()

    def merge(
        self,
        fresh: Iterable[Meeting],
        held: Iterable[str] = (),
    ) -> RevalidationResult:
        """Apply a server snapshot of the range.

        Protected ids and ``held`` ids are left alone.
        """
        result = RevalidationResult()
        fresh_by_id = {m.id: m for m in fresh}
        keep = self._protected | set(held)
        merged: dict[str, Meeting] = {}

        for meeting_id, current in self._meetings.items():
            if meeting_id in keep:
                merged[meeting_id] = current
                if meeting_id in fresh_by_id and fresh_by_id[meeting_id] != current:
                    result.skipped.append(meeting_id)
                continue
            incoming = fresh_by_id.get(meeting_id)
            if incoming is None:
                result.removed.append(meeting_id)
                continue
            merged[meeting_id] = incoming
            if incoming != current:
                result.updated.append(meeting_id)

        for meeting_id, incoming in fresh_by_id.items():
            if meeting_id not in merged and meeting_id not in result.removed:
                if meeting_id in keep:
                    result.skipped.append(meeting_id)
                    continue
                merged[meeting_id] = incoming
                result.added.append(meeting_id)

        self._meetings = merged
        logger.debug(
            "cache_revalidated",
            updated=len(result.updated),
            added=len(result.added),
            removed=len(result.removed),
            skipped=len(result.skipped),
        )
        if result.changed:
            self._notify()
        return result


__all__ = ["CollectionCache", "Fetcher", "RevalidationResult"]
