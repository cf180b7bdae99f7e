"""
Drag Interaction Controller

Turns raw pointer gestures into meeting edits.

States:
    idle -> pressed -> dragging | resizing -> released -> idle

    - The first move after a press decides the gesture (no distance
      threshold). A release with no move in between is a click.
    - Every move converts the gesture geometry through the CoordinateMapper
      and proposes the result to the meeting's OptimisticMutator.
    - Release after a drag or resize commits immediately instead of waiting
      out the debounce window.

Resize deltas arrive cumulative since the press. ``reduce_resize`` keeps the
already-consumed part in a ResizeOffset so each move applies only the
increment, clamped to the minimum meeting height.

Usage:
    controller = DragInteractionController(registry, mapper, reference_date=week_start)
    controller.pointer_down(PointerEvent(100, 432), meeting.id)
    controller.pointer_move(PointerEvent(100, 444))   # 15 minutes later
    controller.pointer_up(PointerEvent(100, 444))     # commit_now()

    created = controller.create_at(PointerEvent(200, 480))
    controller.continue_gesture(GestureKind.RESIZE_BOTTOM, event, created.id)
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, Callable, Optional

from meetgrid.calendar import MINUTES_PER_DAY
from meetgrid.calendar.coordinates import CoordinateMapper
from meetgrid.calendar.models import Meeting, Position
from meetgrid.config_models import DisplayConfig
from meetgrid.errors import MeetgridError
from meetgrid.logging_config import get_logger
from meetgrid.sync.mutator import MutatorRegistry, OptimisticMutator

logger = get_logger(__name__)


class GestureState(str, Enum):
    IDLE = "idle"
    PRESSED = "pressed"
    DRAGGING = "dragging"
    RESIZING = "resizing"
    RELEASED = "released"

    @classmethod
    def values(cls) -> set[str]:
        return {item.value for item in cls}

    @property
    def is_active(self) -> bool:
        return self in (GestureState.PRESSED, GestureState.DRAGGING, GestureState.RESIZING)


class GestureKind(str, Enum):
    MOVE = "move"
    RESIZE_TOP = "resize_top"
    RESIZE_BOTTOM = "resize_bottom"

    @classmethod
    def values(cls) -> set[str]:
        return {item.value for item in cls}

    @property
    def is_resize(self) -> bool:
        return self != GestureKind.MOVE


@dataclass(frozen=True)
class PointerEvent:
    """Pointer sample in grid pixels. ``buttons`` is 0 when nothing is held."""

    x: float
    y: float
    buttons: int = 1


@dataclass(frozen=True)
class ResizeOffset:
    """Vertical pointer delta already applied during the current resize."""

    y: float = 0.0


def reduce_resize(
    offset: ResizeOffset,
    kind: GestureKind,
    cumulative: float,
    *,
    height: float,
    min_height: float,
) -> tuple[ResizeOffset, float]:
    """Fold a cumulative resize delta into the offset.

    Args:
        offset: Delta consumed so far in this gesture
        kind: RESIZE_TOP or RESIZE_BOTTOM
        cumulative: Pointer delta since the press (already snapped)
        height: Current box height
        min_height: Smallest height the box may shrink to

    Returns:
        (new offset, increment to apply to the dragged edge)
    """
    if not kind.is_resize:
        raise ValueError(f"reduce_resize() needs a resize gesture, got {kind.value!r}")

    increment = cumulative - offset.y
    growth = increment if kind == GestureKind.RESIZE_BOTTOM else -increment
    # Never shrink past the minimum, but leave boxes that start below it alone.
    floor = min(min_height, height)
    applied_growth = max(height + growth, floor) - height
    applied = applied_growth if kind == GestureKind.RESIZE_BOTTOM else -applied_growth
    return ResizeOffset(offset.y + applied), applied


@dataclass
class _Gesture:
    mutator: OptimisticMutator
    kind: GestureKind
    origin: PointerEvent
    snapshot: Meeting
    start_height: float
    start_position: Position
    height: float
    position: Position
    offset: ResizeOffset
    created: bool = False


class DragInteractionController:
    """Pointer state machine for one calendar grid.

    Args:
        registry: MutatorRegistry owning the meetings' current values
        mapper: CoordinateMapper for the grid (defaults to a 48px hour)
        reference_date: First day (Sunday) of the displayed week
        track_width: Pixel width of one day column
        on_click: Called with the meeting when a press ends without a move
        create_defaults: Extra Meeting fields for meetings made by ``create_at``
    """

    def __init__(
        self,
        registry: MutatorRegistry,
        mapper: Optional[CoordinateMapper] = None,
        *,
        reference_date: datetime | date,
        track_width: Optional[float] = None,
        on_click: Optional[Callable[[Meeting], Any]] = None,
        create_defaults: Optional[dict[str, Any]] = None,
    ):
        self.registry = registry
        self.mapper = mapper or CoordinateMapper()
        self.reference_date = reference_date
        self.track_width = track_width if track_width is not None else DisplayConfig().track_width
        self.on_click = on_click
        self.create_defaults = create_defaults or {}

        self.state = GestureState.IDLE
        self._gesture: Optional[_Gesture] = None
        self._created_id: Optional[str] = None

    @property
    def kind(self) -> Optional[GestureKind]:
        return self._gesture.kind if self._gesture else None

    @property
    def meeting_id(self) -> Optional[str]:
        return self._gesture.mutator.id if self._gesture else None

    @property
    def offset(self) -> ResizeOffset:
        return self._gesture.offset if self._gesture else ResizeOffset()

    # -- gesture entry points -----------------------------------------------

    def pointer_down(
        self,
        event: PointerEvent,
        meeting_id: str,
        kind: GestureKind = GestureKind.MOVE,
    ) -> None:
        if self.state.is_active:
            logger.debug("gesture_abandoned", meeting_id=self.meeting_id, state=self.state.value)
            self._reset()

        mutator = self._mutator_for(meeting_id)
        snapshot = mutator.value
        height = self.mapper.height(snapshot.time)
        position = self.mapper.position(snapshot.time.from_, self.track_width)

        self._gesture = _Gesture(
            mutator=mutator,
            kind=kind,
            origin=event,
            snapshot=snapshot,
            start_height=height,
            start_position=position,
            height=height,
            position=position,
            offset=ResizeOffset(),
            created=meeting_id == self._created_id,
        )
        self._created_id = None
        self.state = GestureState.PRESSED
        logger.debug("gesture_pressed", meeting_id=meeting_id, kind=kind.value)

    def continue_gesture(
        self,
        kind: GestureKind,
        origin_event: PointerEvent,
        meeting_id: str,
    ) -> bool:
        """Re-enter ``pressed`` for a freshly mounted element.

        The original press keeps driving the gesture, so a meeting spawned by
        a press can be resized without releasing the button. Ignored when the
        button is no longer held.
        """
        if origin_event.buttons == 0:
            logger.debug("gesture_handoff_ignored", meeting_id=meeting_id, kind=kind.value)
            return False
        self.pointer_down(origin_event, meeting_id, kind)
        return True

    def create_at(self, event: PointerEvent) -> Meeting:
        """Spawn an unsaved meeting at the pointer (creation minimum length)."""
        position = Position(event.x, event.y)
        mutator = self.registry.create_temporary(
            lambda temp_id: self.mapper.meeting_at(
                position,
                self.track_width,
                self.reference_date,
                meeting_id=temp_id,
                **self.create_defaults,
            )
        )
        self._created_id = mutator.id
        logger.info("meeting_spawned", meeting_id=mutator.id, start=mutator.value.time.from_.isoformat())
        return mutator.value

    def pointer_move(self, event: PointerEvent) -> Optional[Meeting]:
        """Update the gesture; returns the proposed meeting (None if unchanged)."""
        gesture = self._gesture
        if gesture is None or not self.state.is_active:
            return None
        if event.buttons == 0:
            # The release happened outside the grid.
            self.pointer_up(event)
            return None

        if self.state == GestureState.PRESSED:
            self.state = GestureState.RESIZING if gesture.kind.is_resize else GestureState.DRAGGING
            logger.debug("gesture_started", meeting_id=gesture.mutator.id, state=self.state.value)

        if gesture.kind.is_resize:
            self._resize(gesture, event)
        else:
            self._move(gesture, event)
        return self._propose(gesture)

    def pointer_up(self, event: PointerEvent) -> Optional[asyncio.Task]:
        """End the gesture. Returns the commit task after a drag or resize."""
        gesture = self._gesture
        if gesture is None or not self.state.is_active:
            return None

        was_pressed = self.state == GestureState.PRESSED
        self.state = GestureState.RELEASED
        mutator = gesture.mutator
        self._reset()

        if was_pressed and not gesture.created:
            logger.debug("gesture_click", meeting_id=mutator.id)
            if self.on_click is not None:
                self.on_click(mutator.value)
            return None

        logger.debug("gesture_released", meeting_id=mutator.id, kind=gesture.kind.value)
        return mutator.commit_now()

    def cancel(self) -> Optional[Meeting]:
        """Abort the gesture and restore the meeting as it was at the press.

        A meeting spawned by ``create_at`` and never saved is dropped instead;
        returns None in that case.
        """
        gesture = self._gesture
        if gesture is None or not self.state.is_active:
            return None

        mutator = gesture.mutator
        moved = self.state != GestureState.PRESSED
        self._reset()
        if gesture.created and mutator.confirmed is None:
            logger.info("gesture_cancelled", meeting_id=mutator.id, kind=gesture.kind.value, spawned=True)
            mutator.drop_unsaved()
            return None
        if not moved:
            return mutator.value
        logger.info("gesture_cancelled", meeting_id=mutator.id, kind=gesture.kind.value)
        return mutator.revert_to(gesture.snapshot)

    # -- geometry -----------------------------------------------------------

    def _move(self, gesture: _Gesture, event: PointerEvent) -> None:
        dx = round((event.x - gesture.origin.x) / self.track_width) * self.track_width
        dy = self.mapper.snap(event.y - gesture.origin.y)
        gesture.position = gesture.start_position.offset(dx, dy)

    def _resize(self, gesture: _Gesture, event: PointerEvent) -> None:
        cumulative = self.mapper.snap(event.y - gesture.origin.y)
        day_height = self.mapper.minutes_to_px(MINUTES_PER_DAY)
        start = gesture.start_position
        # Keep the dragged edge inside the day.
        if gesture.kind == GestureKind.RESIZE_TOP:
            cumulative = max(cumulative, -start.y)
        else:
            cumulative = min(cumulative, day_height - start.y - gesture.start_height)

        offset, applied = reduce_resize(
            gesture.offset,
            gesture.kind,
            cumulative,
            height=gesture.height,
            min_height=self.mapper.min_height(),
        )
        gesture.offset = offset
        if gesture.kind == GestureKind.RESIZE_BOTTOM:
            gesture.height += applied
        else:
            gesture.height -= applied
            gesture.position = gesture.position.offset(0, applied)

    def _propose(self, gesture: _Gesture) -> Optional[Meeting]:
        mutator = gesture.mutator
        proposed = self.mapper.meeting_from_geometry(
            gesture.height,
            gesture.position,
            mutator.value,
            self.track_width,
            self.reference_date,
        )
        if proposed == mutator.value:
            return None
        return mutator.apply(lambda _: proposed)

    # -- helpers ------------------------------------------------------------

    def _mutator_for(self, meeting_id: str) -> OptimisticMutator:
        mutator = self.registry.get(meeting_id)
        if mutator is not None:
            return mutator
        cached = self.registry.cache.get(meeting_id) if self.registry.cache is not None else None
        if cached is None:
            raise MeetgridError(f"Unknown meeting {meeting_id!r}", meeting_id=meeting_id)
        return self.registry.open(cached)

    def _reset(self) -> None:
        self._gesture = None
        self.state = GestureState.IDLE


__all__ = [
    "DragInteractionController",
    "GestureKind",
    "GestureState",
    "PointerEvent",
    "ResizeOffset",
    "reduce_resize",
]
