"""Sync engine - optimistic local edits, serialized background commits

Philosophy:
    A dragged meeting must follow the pointer instantly. The store only needs
    the final position, and it must never see two overlapping writes for the
    same meeting. Local state is the source of truth until the store confirms.

Components:
    persistence.py: MeetingStore boundary (in-memory and SQLite stores)
    cache.py: Collection cache for a date range, protects unconfirmed ids
    mutator.py: OptimisticMutator per meeting plus the MutatorRegistry factory

Mutation states:
    idle: Local value matches the last confirmed server value
    dirty: Local edit waiting for the debounce window to pass
    committing: A write for this meeting is in flight
    error: The last write failed; the local edit is kept for retry
"""

from enum import Enum


class MutationStatus(str, Enum):
    """
    Status values exposed to the rendering layer for loading/error indicators.
    """

    IDLE = "idle"
    DIRTY = "dirty"
    COMMITTING = "committing"
    ERROR = "error"

    @classmethod
    def values(cls) -> set[str]:
        """Get all status values as a set."""
        return {item.value for item in cls}

    @property
    def is_pending(self) -> bool:
        """Check if the meeting has an unconfirmed local edit."""
        return self in (MutationStatus.DIRTY, MutationStatus.COMMITTING)


__all__ = ["MutationStatus"]
