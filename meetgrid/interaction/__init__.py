"""Pointer interaction - create, move and resize meetings on the grid

Components:
    drag.py: DragInteractionController state machine and the resize reducer

The controller never writes meetings itself. It converts pointer geometry
through a CoordinateMapper and proposes the result to the meeting's
OptimisticMutator, which owns the current value.
"""

from meetgrid.interaction.drag import (
    DragInteractionController,
    GestureKind,
    GestureState,
    PointerEvent,
    ResizeOffset,
    reduce_resize,
)

__all__ = [
    "DragInteractionController",
    "GestureKind",
    "GestureState",
    "PointerEvent",
    "ResizeOffset",
    "reduce_resize",
]
