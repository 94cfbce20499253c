"""Drag-to-select over an ordered list of file rows.

The controller is a two-state machine (idle / dragging). Every intermediate
drag position is computed from the snapshot taken at pointer-down, so moving
back over visited rows restores them exactly.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum

from diff_pick.selection import PathSelection, SelectionState, TriState

logger = logging.getLogger(__name__)

DEFAULT_DRAG_THRESHOLD_PX = 4


class DragMode(str, Enum):
    FILE_SELECT = "file_select"
    DIFF_MARK = "diff_mark"


class Modifier(str, Enum):
    NONE = "none"
    COMMIT_TOGGLE = "commit_toggle"
    MARK_FOR_DIFF = "mark_for_diff"


class PointerButton(str, Enum):
    LEFT = "left"
    MIDDLE = "middle"
    RIGHT = "right"


class ClickAction(str, Enum):
    IGNORED = "ignored"
    SUPPRESSED = "suppressed"
    VIEW = "view"
    TOGGLED_COMMIT = "toggled_commit"
    TOGGLED_MARK = "toggled_mark"


@dataclass(slots=True)
class DragSession:
    """State of one drag gesture, from pointer-down to pointer-up."""

    mode: DragMode
    rows: tuple[str, ...]
    anchor_index: int
    cursor_index: int
    baseline: frozenset[str]
    target: bool
    origin: tuple[float, float]
    travel: float = 0.0
    saved: dict[str, PathSelection] = field(default_factory=dict)


def apply_range(
    baseline: frozenset[str],
    rows: Sequence[str],
    anchor: int,
    cursor: int,
    target: bool,
) -> frozenset[str]:
    """Membership after dragging from ``anchor`` to ``cursor``.

    Rows between the two indices (inclusive) take ``target``; every other
    row keeps its baseline membership. Paths outside ``rows`` are untouched.
    A cursor resting on the anchor leaves the baseline unchanged.
    """
    members = set(baseline)
    if anchor == cursor:
        return frozenset(members)
    low, high = min(anchor, cursor), max(anchor, cursor)
    for index in range(max(low, 0), min(high, len(rows) - 1) + 1):
        if target:
            members.add(rows[index])
        else:
            members.discard(rows[index])
    return frozenset(members)


class RangeSelectionController:
    """Turn pointer gestures over file rows into selection changes."""

    def __init__(
        self,
        selection: SelectionState,
        *,
        drag_threshold_px: int = DEFAULT_DRAG_THRESHOLD_PX,
    ) -> None:
        self._selection = selection
        self._threshold = drag_threshold_px
        self._session: DragSession | None = None
        self._suppress_next_click = False

    @property
    def is_dragging(self) -> bool:
        return self._session is not None

    @property
    def session(self) -> DragSession | None:
        return self._session

    def pointer_down(
        self,
        rows: Sequence[str],
        index: int,
        *,
        button: PointerButton = PointerButton.LEFT,
        modifier: Modifier = Modifier.NONE,
        x: float = 0.0,
        y: float = 0.0,
    ) -> bool:
        """Start a drag on ``rows[index]``; only the left button drags."""
        if button is not PointerButton.LEFT or not 0 <= index < len(rows):
            return False
        if self._session is not None:
            self.cancel()

        mode = DragMode.DIFF_MARK if modifier is Modifier.MARK_FOR_DIFF else DragMode.FILE_SELECT
        visible = tuple(rows)
        baseline = self._membership(mode, visible)
        if mode is DragMode.DIFF_MARK:
            target = True
        else:
            target = visible[index] not in baseline

        self._suppress_next_click = False
        self._session = DragSession(
            mode=mode,
            rows=visible,
            anchor_index=index,
            cursor_index=index,
            baseline=baseline,
            target=target,
            origin=(x, y),
            saved={path: self._selection.snapshot_path(path) for path in visible},
        )
        logger.debug("drag started on row %d (%s)", index, mode.value)
        return True

    def pointer_move(self, index: int, *, x: float = 0.0, y: float = 0.0) -> None:
        session = self._session
        if session is None:
            return
        session.travel = max(
            session.travel, math.hypot(x - session.origin[0], y - session.origin[1])
        )
        if not 0 <= index < len(session.rows) or index == session.cursor_index:
            return
        session.cursor_index = index
        self._apply(session)

    def pointer_up(self, *, x: float | None = None, y: float | None = None) -> bool:
        """Finish the drag; returns True when the next click must be swallowed."""
        session = self._session
        if session is None:
            return False
        if x is not None and y is not None:
            session.travel = max(
                session.travel, math.hypot(x - session.origin[0], y - session.origin[1])
            )
        self._session = None
        self._suppress_next_click = session.travel > self._threshold
        logger.debug(
            "drag finished rows %d..%d, suppress click=%s",
            session.anchor_index,
            session.cursor_index,
            self._suppress_next_click,
        )
        return self._suppress_next_click

    def cancel(self) -> None:
        """Abandon the drag and put every row back to its pre-drag state."""
        session = self._session
        if session is None:
            return
        session.cursor_index = session.anchor_index
        self._apply(session)
        self._session = None

    def click(self, path: str, *, modifier: Modifier = Modifier.NONE) -> ClickAction:
        """Handle a click on a row, unless it is the tail of a drag."""
        if self._session is not None:
            return ClickAction.IGNORED
        if self._suppress_next_click:
            self._suppress_next_click = False
            return ClickAction.SUPPRESSED
        if modifier is Modifier.MARK_FOR_DIFF:
            self._selection.set_marked(path, not self._selection.is_marked(path))
            return ClickAction.TOGGLED_MARK
        if modifier is Modifier.COMMIT_TOGGLE:
            self._selection.set_file_selected(path, not self._selection.is_file_selected(path))
            return ClickAction.TOGGLED_COMMIT
        return ClickAction.VIEW

    def _membership(self, mode: DragMode, rows: Sequence[str]) -> frozenset[str]:
        if mode is DragMode.DIFF_MARK:
            return frozenset(path for path in rows if self._selection.is_marked(path))
        return frozenset(path for path in rows if self._selection.is_file_selected(path))

    def _apply(self, session: DragSession) -> None:
        wanted = apply_range(
            session.baseline,
            session.rows,
            session.anchor_index,
            session.cursor_index,
            session.target,
        )
        low = min(session.anchor_index, session.cursor_index)
        high = max(session.anchor_index, session.cursor_index)
        in_range = session.anchor_index != session.cursor_index
        for index, path in enumerate(session.rows):
            if in_range and low <= index <= high:
                self._force(session.mode, path, path in wanted)
            elif session.mode is DragMode.DIFF_MARK:
                self._selection.set_marked(path, path in session.baseline)
            else:
                self._selection.restore_path(path, session.saved[path])

    def _force(self, mode: DragMode, path: str, on: bool) -> None:
        if mode is DragMode.DIFF_MARK:
            self._selection.set_marked(path, on)
        elif self._selection.tristate(path) is not (TriState.FULL if on else TriState.NONE):
            self._selection.set_file_selected(path, on)
