"""
Optimistic Mutator - instant local edits, serialized background commits

Each meeting being edited gets one OptimisticMutator. The UI proposes changes
through ``apply``; the mutator swaps its local value immediately and writes
to the store once edits go quiet for ``debounce_ms``.

Flow on change:
    1. Replace the local value, mark the record dirty, protect the id in the
       collection cache so a background refresh cannot clobber it.
    2. (Re)start the debounce timer. Every new edit cancels the pending timer.
    3. When the timer fires (or ``commit_now`` is called on pointer release)
       write the current value. At most one write per meeting is in flight;
       edits made meanwhile are sent as a follow-up right after it resolves.
    4. On success with no newer edit, adopt the server's value (this is where
       a temporary id becomes the canonical one). With a newer edit, only
       id/created/updated are merged into it.
    5. On failure keep the local value, expose the error, and wait for
       ``retry`` (or retry with exponential backoff when auto_retry is on).
       A NotFoundError discards the local edit: there is nothing to merge into.

Usage:
    registry = MutatorRegistry(store, cache)
    mutator = registry.open(meeting)
    mutator.apply(lambda m: m.with_time(new_slot))   # instant
    mutator.commit_now()                              # on pointer up
"""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass
from typing import Any, Callable, Optional

from meetgrid.calendar.models import (
    Meeting,
    is_temporary_id,
    new_temporary_id,
    validate_meeting,
)
from meetgrid.config_models import CommitConfig, SyncConfig
from meetgrid.errors import (
    MeetgridError,
    NotFoundError,
    PersistenceError,
    ValidationError,
    classify_error,
)
from meetgrid.logging_config import get_logger
from meetgrid.sync import MutationStatus
from meetgrid.sync.cache import CollectionCache, RevalidationResult
from meetgrid.sync.persistence import MeetingStore

logger = get_logger(__name__)

# Server-owned fields merged into a newer local edit.
METADATA_FIELDS = ("id", "created", "updated")

Updater = Callable[[Meeting], Meeting]
Listener = Callable[["OptimisticMutator"], None]
CommitCallback = Callable[..., Any]


@dataclass
class MutationRecord:
    """Per-meeting bookkeeping for unconfirmed edits."""

    dirty: bool = False
    in_flight: bool = False
    pending_payload: Optional[Meeting] = None
    last_error: Optional[PersistenceError] = None
    version: int = 0
    sent_version: int = 0
    attempts: int = 0

    def reset(self) -> None:
        """Clear once the store has confirmed everything."""
        self.dirty = False
        self.pending_payload = None
        self.last_error = None
        self.attempts = 0


def backoff_delay(
    attempts: int,
    base_ms: int,
    max_exponent: int = 8,
    rand: Callable[[], float] = random.random,
) -> float:
    """Seconds before an automatic retry.

    Jittered exponential backoff, never below ``base_ms``.
    """
    count = min(max(attempts, 0), max_exponent)
    backoff = int((rand() + 0.5) * (1 << count)) * base_ms
    return max(backoff, base_ms) / 1000


class OptimisticMutator:
    """Single logical "current value" of one meeting.

    Args:
        initial: Value to start from (server value, or a temporary meeting)
        store: MeetingStore that receives create/update/delete calls
        cache: Collection cache to patch and protect (optional)
        config: Commit timing (debounce, retry policy)
        temp_prefix: Prefix marking ids the store has not assigned yet
        on_commit: Called after every successful write with
            ``(value, confirmed=bool, sent=Meeting)``
        on_id_change: Called with ``(old_id, new_id)`` when a temporary id is
            replaced by the canonical one
        on_dispose: Called with the mutator once it is deleted or discarded
    """

    def __init__(
        self,
        initial: Meeting,
        store: MeetingStore,
        *,
        cache: Optional[CollectionCache] = None,
        config: Optional[CommitConfig] = None,
        temp_prefix: str = "temp-",
        on_commit: Optional[CommitCallback] = None,
        on_id_change: Optional[Callable[[str, str], None]] = None,
        on_dispose: Optional[Callable[[OptimisticMutator], None]] = None,
    ):
        self._value = initial
        self._store = store
        self._cache = cache
        self._config = config or CommitConfig()
        self._temp_prefix = temp_prefix
        self._on_commit = on_commit
        self._on_id_change = on_id_change
        self._on_dispose = on_dispose

        self._confirmed: Optional[Meeting] = None if self._is_temporary(initial.id) else initial
        self._record = MutationRecord()
        self._status = MutationStatus.IDLE
        self._listeners: list[Listener] = []

        self._timer: Optional[asyncio.TimerHandle] = None
        self._retry_timer: Optional[asyncio.TimerHandle] = None
        self._drain_task: Optional[asyncio.Task] = None
        self._drop_task: Optional[asyncio.Task] = None
        self._write_lock = asyncio.Lock()

        self.deleted = False
        self.discarded = False

    # -- observable surface -------------------------------------------------

    @property
    def id(self) -> str:
        return self._value.id

    @property
    def value(self) -> Meeting:
        return self._value

    @property
    def confirmed(self) -> Optional[Meeting]:
        """Last value the store acknowledged (None for unsaved meetings)."""
        return self._confirmed

    @property
    def status(self) -> MutationStatus:
        return self._status

    @property
    def error(self) -> Optional[PersistenceError]:
        return self._record.last_error if self._status == MutationStatus.ERROR else None

    @property
    def record(self) -> MutationRecord:
        return self._record

    @property
    def is_pending(self) -> bool:
        return self._record.dirty or self._record.in_flight

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        """Subscribe to value/status changes. Returns an unsubscribe function."""
        self._listeners.append(listener)
        return lambda: self.remove_listener(listener)

    def remove_listener(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception:
                logger.exception("mutator_listener_failed", meeting_id=self.id)

    def _set_status(self, status: MutationStatus) -> None:
        self._status = status
        self._notify()

    def _is_temporary(self, meeting_id: str) -> bool:
        return is_temporary_id(meeting_id, self._temp_prefix)

    # -- local edits --------------------------------------------------------

    def apply(self, updater: Updater) -> Meeting:
        """Replace the local value now and schedule a debounced commit.

        Must be called from the event loop thread.
        """
        self._ensure_alive()
        loop = asyncio.get_running_loop()
        proposed = validate_meeting(updater(self._value))
        if proposed.id != self._value.id:
            raise ValidationError(
                f"apply() cannot change the meeting id ({self._value.id!r} -> {proposed.id!r})"
            )

        self._set_local(proposed)
        self._schedule_commit(loop)
        return proposed

    def _set_local(self, proposed: Meeting) -> None:
        record = self._record
        self._value = proposed
        record.version += 1
        record.dirty = True
        record.pending_payload = proposed

        if self._cache is not None:
            self._cache.protect(proposed.id)
            # Unsaved meetings are drawn by the gesture layer, not the list.
            if not self._is_temporary(proposed.id):
                self._cache.upsert(proposed)

        if record.in_flight:
            self._notify()
        else:
            self._set_status(MutationStatus.DIRTY)

    def _schedule_commit(self, loop: asyncio.AbstractEventLoop) -> None:
        self._cancel_timers()
        if self._record.in_flight:
            # The running drain sends a follow-up as soon as this write resolves.
            return
        self._timer = loop.call_later(self._config.debounce_ms / 1000, self._on_debounce)

    def _on_debounce(self) -> None:
        self._timer = None
        self.commit_now()

    def _cancel_timers(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._retry_timer is not None:
            self._retry_timer.cancel()
            self._retry_timer = None

    def revert_to(self, snapshot: Meeting) -> Meeting:
        """Restore a value captured before a gesture.

        When the snapshot is exactly what the store last confirmed and no
        write is in flight, the pending edit is dropped without any write.
        Otherwise the snapshot is applied like any other edit.
        """
        snapshot = validate_meeting(snapshot)
        if self._record.in_flight or self._confirmed is None or snapshot != self._confirmed:
            return self.apply(lambda _: snapshot)

        self._cancel_timers()
        self._value = snapshot
        self._record.reset()
        if self._cache is not None:
            self._cache.upsert(snapshot)
            self._cache.release(snapshot.id)
        logger.debug("mutator_reverted", meeting_id=snapshot.id)
        self._set_status(MutationStatus.IDLE)
        return snapshot

    def drop_unsaved(self) -> Optional[asyncio.Task]:
        """Forget a meeting the store has never confirmed.

        Pending commits are cancelled and the mutator is disposed with no
        write. If the create is already in flight, the returned task deletes
        the meeting again once that write resolves.
        """
        self._ensure_alive()
        if self._confirmed is not None:
            raise MeetgridError(f"Meeting {self.id!r} is already saved", meeting_id=self.id)

        self._cancel_timers()
        record = self._record
        record.dirty = False
        record.pending_payload = None
        if self._drain_task is not None and not self._drain_task.done():
            logger.info("unsaved_meeting_dropped", meeting_id=self.id, in_flight=True)
            self._drop_task = asyncio.get_running_loop().create_task(
                self.delete(), name=f"meetgrid-drop-{self.id}"
            )
            return self._drop_task

        self.deleted = True
        record.reset()
        if self._cache is not None:
            self._cache.remove(self.id)
        logger.info("unsaved_meeting_dropped", meeting_id=self.id, in_flight=False)
        self._set_status(MutationStatus.IDLE)
        if self._on_dispose is not None:
            self._on_dispose(self)
        return None

    def receive_remote(self, meeting: Meeting) -> bool:
        """Adopt a value from background revalidation unless an edit is pending."""
        if meeting.id != self.id or self.is_pending:
            return False
        if meeting == self._value:
            return False
        self._value = meeting
        self._confirmed = meeting
        self._notify()
        return True

    # -- commits ------------------------------------------------------------

    def commit_now(self) -> Optional[asyncio.Task]:
        """Skip the rest of the debounce window and write now.

        Returns the task draining this meeting's writes (None when clean).
        """
        self._cancel_timers()
        if self._drain_task is not None and not self._drain_task.done():
            return self._drain_task
        if not self._record.dirty or self.deleted or self.discarded:
            return None
        self._drain_task = asyncio.get_running_loop().create_task(
            self._drain(), name=f"meetgrid-commit-{self.id}"
        )
        return self._drain_task

    def retry(self) -> Optional[asyncio.Task]:
        """Resubmit the last payload after a failed commit."""
        if self._record.last_error is not None:
            logger.info("commit_retry", meeting_id=self.id, attempts=self._record.attempts)
        return self.commit_now()

    async def flush(self) -> MutationStatus:
        """Commit now and wait until this meeting's writes settle."""
        task = self.commit_now()
        while task is not None:
            await task
            if self._drain_task is not None and not self._drain_task.done():
                task = self._drain_task
            else:
                task = None
        return self._status

    async def _drain(self) -> None:
        while self._record.dirty and not (self.deleted or self.discarded):
            if not await self._commit_once():
                break

    async def _commit_once(self) -> bool:
        async with self._write_lock:
            record = self._record
            payload = self._value
            sent_version = record.version

            record.in_flight = True
            record.sent_version = sent_version
            record.pending_payload = payload
            self._set_status(MutationStatus.COMMITTING)

            try:
                if self._is_temporary(payload.id):
                    logger.debug("commit_create", meeting_id=payload.id, version=sent_version)
                    result = await self._store.create(payload)
                else:
                    logger.debug("commit_update", meeting_id=payload.id, version=sent_version)
                    result = await self._store.update(payload.id, payload)
            except Exception as exc:
                record.in_flight = False
                self._handle_failure(classify_error(exc), payload)
                return False

            record.in_flight = False
            self._handle_success(result, payload, sent_version)
            return True

    def _handle_success(self, result: Meeting, payload: Meeting, sent_version: int) -> None:
        record = self._record
        old_id = payload.id
        newer_edit = record.version != sent_version

        self._confirmed = result
        record.attempts = 0
        record.last_error = None
        if newer_edit:
            metadata = {name: getattr(result, name) for name in METADATA_FIELDS}
            self._value = self._value.model_copy(update=metadata)
            record.pending_payload = self._value
        else:
            self._value = result
            record.reset()

        if self._cache is not None:
            if result.id != old_id:
                self._cache.replace_id(old_id, self._value)
            else:
                self._cache.upsert(self._value)
            if not record.dirty:
                self._cache.release(self._value.id)

        if result.id != old_id:
            logger.info("meeting_id_assigned", temp_id=old_id, meeting_id=result.id)
            if self._on_id_change is not None:
                self._on_id_change(old_id, result.id)

        logger.info(
            "commit_succeeded",
            meeting_id=self._value.id,
            follow_up=newer_edit,
        )
        self._set_status(MutationStatus.DIRTY if record.dirty else MutationStatus.IDLE)

        if self._on_commit is not None:
            try:
                self._on_commit(self._value, confirmed=not record.dirty, sent=payload)
            except Exception:
                logger.exception("commit_callback_failed", meeting_id=self._value.id)

    def _handle_failure(self, error: PersistenceError, payload: Meeting) -> None:
        record = self._record
        record.last_error = error

        if isinstance(error, NotFoundError):
            self._discard(error)
            return

        record.attempts += 1
        logger.warning(
            "commit_failed",
            meeting_id=payload.id,
            error=error.message,
            attempts=record.attempts,
        )
        self._set_status(MutationStatus.ERROR)

        if self._config.auto_retry:
            delay = backoff_delay(
                record.attempts,
                self._config.retry_base_ms,
                self._config.retry_max_exponent,
            )
            loop = asyncio.get_running_loop()
            self._retry_timer = loop.call_later(delay, self._on_retry_timer)
            logger.debug("commit_retry_scheduled", meeting_id=payload.id, delay_s=delay)

    def _on_retry_timer(self) -> None:
        self._retry_timer = None
        self.retry()

    def _discard(self, error: NotFoundError) -> None:
        """The meeting vanished remotely; drop the local edit."""
        self._cancel_timers()
        record = self._record
        record.dirty = False
        record.pending_payload = None
        self.discarded = True
        if self._cache is not None:
            self._cache.remove(self.id)
        logger.warning("edit_discarded", meeting_id=self.id, error=error.message)
        self._set_status(MutationStatus.ERROR)
        if self._on_dispose is not None:
            self._on_dispose(self)

    # -- deletion -----------------------------------------------------------

    async def delete(self) -> bool:
        """Delete the meeting after any in-flight write resolves.

        Returns True once the meeting is gone (remotely or, if it was never
        saved, locally). On failure the error is exposed and False returned.
        """
        self._ensure_alive()
        self._cancel_timers()
        if self._drain_task is not None and not self._drain_task.done():
            await self._drain_task

        async with self._write_lock:
            meeting_id = self.id
            if not self._is_temporary(meeting_id):
                self._record.in_flight = True
                self._set_status(MutationStatus.COMMITTING)
                try:
                    await self._store.delete(meeting_id)
                except Exception as exc:
                    self._record.in_flight = False
                    error = classify_error(exc)
                    if not isinstance(error, NotFoundError):
                        self._record.last_error = error
                        logger.warning("delete_failed", meeting_id=meeting_id, error=error.message)
                        self._set_status(MutationStatus.ERROR)
                        return False
                self._record.in_flight = False

            self.deleted = True
            self._record.reset()
            if self._cache is not None:
                self._cache.remove(meeting_id)
            logger.info("meeting_deleted", meeting_id=meeting_id)
            self._set_status(MutationStatus.IDLE)
            if self._on_dispose is not None:
                self._on_dispose(self)
            return True

    def _ensure_alive(self) -> None:
        if self.deleted or self.discarded:
            raise MeetgridError(f"Meeting {self.id!r} is no longer editable", meeting_id=self.id)


class MutatorRegistry:
    """Factory of OptimisticMutators keyed by meeting id.

    Owns re-keying when temporary ids are swapped and ties mutators to the
    collection cache's revalidation.
    """

    def __init__(
        self,
        store: MeetingStore,
        cache: Optional[CollectionCache] = None,
        config: Optional[SyncConfig] = None,
        on_commit: Optional[CommitCallback] = None,
    ):
        self.store = store
        self.cache = cache
        self.config = config or SyncConfig()
        self._on_commit = on_commit
        self._mutators: dict[str, OptimisticMutator] = {}

    @property
    def temp_prefix(self) -> str:
        return self.config.ids.temp_prefix

    def __contains__(self, meeting_id: object) -> bool:
        return meeting_id in self._mutators

    def __len__(self) -> int:
        return len(self._mutators)

    def __iter__(self):
        return iter(list(self._mutators.values()))

    def get(self, meeting_id: str) -> Optional[OptimisticMutator]:
        return self._mutators.get(meeting_id)

    def open(self, meeting: Meeting) -> OptimisticMutator:
        """Mutator for ``meeting``, created on first use."""
        existing = self._mutators.get(meeting.id)
        if existing is not None:
            return existing
        mutator = OptimisticMutator(
            meeting,
            self.store,
            cache=self.cache,
            config=self.config.commit,
            temp_prefix=self.temp_prefix,
            on_commit=self._on_commit,
            on_id_change=self._rekey,
            on_dispose=self._dispose,
        )
        self._mutators[meeting.id] = mutator
        return mutator

    def create_temporary(self, build: Callable[[str], Meeting]) -> OptimisticMutator:
        """Spawn an unsaved meeting; its create is scheduled like any edit."""
        meeting = build(new_temporary_id(self.temp_prefix))
        mutator = self.open(meeting)
        mutator.apply(lambda _: meeting)
        return mutator

    def status(self, meeting_id: str) -> MutationStatus:
        mutator = self._mutators.get(meeting_id)
        return mutator.status if mutator is not None else MutationStatus.IDLE

    def statuses(self) -> dict[str, MutationStatus]:
        return {meeting_id: m.status for meeting_id, m in self._mutators.items()}

    @property
    def dirty_ids(self) -> set[str]:
        """Ids with a dirty or in-flight edit."""
        return {meeting_id for meeting_id, m in self._mutators.items() if m.is_pending}

    def current_meetings(self) -> list[Meeting]:
        """Cache contents overlaid with live mutator values (unsaved included)."""
        meetings = {m.id: m for m in (self.cache.meetings if self.cache is not None else [])}
        for mutator in self._mutators.values():
            if mutator.deleted or mutator.discarded:
                continue
            meetings[mutator.id] = mutator.value
        return list(meetings.values())

    async def flush_all(self) -> dict[str, MutationStatus]:
        mutators = list(self._mutators.values())
        results = await asyncio.gather(*(m.flush() for m in mutators))
        return {m.id: status for m, status in zip(mutators, results)}

    async def revalidate(self) -> RevalidationResult:
        """Refresh the cache, then sync clean mutators with the fresh values."""
        if self.cache is None:
            raise RuntimeError("MutatorRegistry has no collection cache")

        for meeting_id in self.dirty_ids:
            self.cache.protect(meeting_id)

        result = await self.cache.revalidate()
        for meeting_id in result.updated:
            mutator = self._mutators.get(meeting_id)
            fresh = self.cache.get(meeting_id)
            if mutator is not None and fresh is not None:
                mutator.receive_remote(fresh)
        for meeting_id in result.removed:
            mutator = self._mutators.get(meeting_id)
            if mutator is not None and not mutator.is_pending:
                self._mutators.pop(meeting_id, None)
                logger.debug("mutator_disposed", meeting_id=meeting_id, reason="removed_remotely")
        return result

    def _rekey(self, old_id: str, new_id: str) -> None:
        mutator = self._mutators.pop(old_id, None)
        if mutator is not None:
            self._mutators[new_id] = mutator

    def _dispose(self, mutator: OptimisticMutator) -> None:
        if self._mutators.get(mutator.id) is mutator:
            del self._mutators[mutator.id]


__all__ = [
    "METADATA_FIELDS",
    "MutationRecord",
    "MutatorRegistry",
    "OptimisticMutator",
    "backoff_delay",
]
