"""Per-path commit selection at file, hunk and line granularity.

A path's selection lives in one of three places:

* ``selected files`` - whole-file intent,
* ``hunks by file`` - whole hunks, keyed by hunk index,
* ``lines by file`` - body offsets within single hunks.

All mutation goes through :class:`SelectionState` so the tri-state invariants
hold after every call: a path whose hunk set covers every hunk of its known
diff is a selected file, a path with no hunks left is not, and a hunk index is
never stored at both hunk and line granularity.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum

from diff_pick.diff_parser import FileDiff, all_hunk_indices

logger = logging.getLogger(__name__)


class TriState(str, Enum):
    """Aggregate selection of a file, for display."""

    FULL = "full"
    NONE = "none"
    PARTIAL = "partial"


@dataclass(frozen=True, slots=True)
class PathSelection:
    """Exact copy of one path's selection, used to restore it later."""

    file_selected: bool = False
    hunks: frozenset[int] | None = None
    lines: tuple[tuple[int, frozenset[int]], ...] = ()


class SelectionState:
    """Selection of files, hunks and lines, keyed by path."""

    def __init__(self) -> None:
        self._files: set[str] = set()
        self._hunks: dict[str, set[int]] = {}
        self._lines: dict[str, dict[int, set[int]]] = {}
        self._marked: set[str] = set()
        self._diffs: dict[str, FileDiff] = {}
        self._active_path: str | None = None

    # -- diffs ---------------------------------------------------------------

    @property
    def active_path(self) -> str | None:
        return self._active_path

    @property
    def active_diff(self) -> FileDiff | None:
        if self._active_path is None:
            return None
        return self._diffs.get(self._active_path)

    def diff_for(self, path: str) -> FileDiff | None:
        return self._diffs.get(path)

    def register_diff(self, path: str, file_diff: FileDiff) -> None:
        """Record a freshly fetched diff for ``path``.

        Hunk indices are positional, so when the new diff differs from the one
        the selection was made against, hunk and line entries for the path are
        dropped. Whole-file intent survives and is mirrored onto the new hunks.
        """
        previous = self._diffs.get(path)
        self._diffs[path] = file_diff
        if previous is not None and previous != file_diff:
            if path in self._hunks or path in self._lines:
                logger.info("diff for %s changed; dropping hunk/line selection", path)
            self._hunks.pop(path, None)
            self._lines.pop(path, None)
        if path in self._files:
            self._mirror_whole_file(path)

    def activate(self, path: str, file_diff: FileDiff) -> None:
        """Make ``path`` the displayed diff."""
        self.register_diff(path, file_diff)
        self._active_path = path

    def forget_diff(self, path: str) -> None:
        """Drop the cached diff for ``path``; its selection is kept."""
        self._diffs.pop(path, None)

    # -- mutation ------------------------------------------------------------

    def set_file_selected(self, path: str, on: bool) -> None:
        """Select or deselect a whole file; supersedes any partial selection."""
        if on:
            self._files.add(path)
        else:
            self._files.discard(path)
        self._lines.pop(path, None)
        if on:
            self._mirror_whole_file(path)
        else:
            self._hunks.pop(path, None)

    def toggle_hunk(self, path: str, hunk_index: int, on: bool) -> None:
        """Add or remove one whole hunk and recompute the file's tri-state.

        An index the known diff does not have is ignored.
        """
        if self._is_unknown_hunk(path, hunk_index):
            return
        self._materialize(path)
        hunks = self._hunks.setdefault(path, set())
        if on:
            hunks.add(hunk_index)
        else:
            hunks.discard(hunk_index)
        per_file = self._lines.get(path)
        if per_file is not None:
            per_file.pop(hunk_index, None)
            if not per_file:
                del self._lines[path]
        self._recompute(path)

    def toggle_lines(
        self, path: str, hunk_index: int, offsets: Iterable[int], on: bool
    ) -> None:
        """Add or remove body-line offsets of one hunk.

        Only added and deleted lines are selectable. A hunk whose every change
        line ends up selected is promoted to a whole-hunk selection.
        """
        if self._is_unknown_hunk(path, hunk_index):
            return
        file_diff = self._diffs.get(path)
        hunk = file_diff.hunk(hunk_index) if file_diff is not None else None
        changeable = set(hunk.change_offsets) if hunk is not None else None

        requested = set(offsets)
        if changeable is not None:
            requested &= changeable

        self._materialize(path)
        hunks = self._hunks.get(path)
        if hunks is not None and hunk_index in hunks:
            if on:
                return
            hunks.discard(hunk_index)
            current = set(changeable or ())
        else:
            current = set(self._lines.get(path, {}).get(hunk_index, ()))

        if on:
            current |= requested
        else:
            current -= requested

        if changeable and current == changeable:
            self.toggle_hunk(path, hunk_index, True)
            return

        per_file = self._lines.setdefault(path, {})
        if current:
            per_file[hunk_index] = current
        else:
            per_file.pop(hunk_index, None)
            if not per_file:
                del self._lines[path]
        self._recompute(path)

    def set_marked(self, path: str, on: bool) -> None:
        """Mark a file for multi-file diff viewing; commit selection is untouched."""
        if on:
            self._marked.add(path)
        else:
            self._marked.discard(path)

    def prune(self, paths: Iterable[str]) -> list[str]:
        """Drop state for every path missing from the status snapshot."""
        keep = set(paths)
        known = self._files | self._hunks.keys() | self._lines.keys() | self._marked
        removed = sorted((known | self._diffs.keys()) - keep)
        for path in removed:
            self._drop(path)
            self._marked.discard(path)
            self._diffs.pop(path, None)
        if self._active_path is not None and self._active_path not in keep:
            self._active_path = None
        if removed:
            logger.debug("pruned selection for %d path(s)", len(removed))
        return removed

    def clear(self, path: str | None = None) -> None:
        """Clear commit selection for one path, or for every path."""
        if path is not None:
            self._drop(path)
            return
        self._files.clear()
        self._hunks.clear()
        self._lines.clear()

    def snapshot_path(self, path: str) -> PathSelection:
        hunks = self._hunks.get(path)
        lines = self._lines.get(path, {})
        return PathSelection(
            file_selected=path in self._files,
            hunks=frozenset(hunks) if hunks is not None else None,
            lines=tuple(sorted((index, frozenset(offsets)) for index, offsets in lines.items())),
        )

    def restore_path(self, path: str, snapshot: PathSelection) -> None:
        self._drop(path)
        if snapshot.file_selected:
            self._files.add(path)
        if snapshot.hunks is not None:
            self._hunks[path] = set(snapshot.hunks)
        if snapshot.lines:
            self._lines[path] = {index: set(offsets) for index, offsets in snapshot.lines}

    # -- queries -------------------------------------------------------------

    def is_file_selected(self, path: str) -> bool:
        return path in self._files

    def is_marked(self, path: str) -> bool:
        return path in self._marked

    @property
    def marked_files(self) -> frozenset[str]:
        return frozenset(self._marked)

    @property
    def selected_files(self) -> frozenset[str]:
        return frozenset(self._files)

    def selected_hunks(self, path: str) -> frozenset[int]:
        return frozenset(self._hunks.get(path, ()))

    def selected_lines(self, path: str) -> dict[int, frozenset[int]]:
        return {
            index: frozenset(offsets) for index, offsets in self._lines.get(path, {}).items()
        }

    def has_hunk_or_line_entries(self, path: str) -> bool:
        return path in self._hunks or path in self._lines

    def tristate(self, path: str) -> TriState:
        if path in self._lines:
            return TriState.PARTIAL
        if path in self._files:
            return TriState.FULL
        if self._hunks.get(path):
            return TriState.PARTIAL
        return TriState.NONE

    def paths_with_selection(self) -> list[str]:
        return sorted(self._files | self._hunks.keys() | self._lines.keys())

    def has_selection(self) -> bool:
        return bool(self._files or self._hunks or self._lines)

    def partial_paths(self) -> list[str]:
        return [
            path for path in self.paths_with_selection() if self.tristate(path) is TriState.PARTIAL
        ]

    def has_partial_selection(self) -> bool:
        return bool(self.partial_paths())

    # -- internals -----------------------------------------------------------

    def _mirror_whole_file(self, path: str) -> None:
        file_diff = self._diffs.get(path)
        if file_diff is not None and file_diff.hunks:
            self._hunks[path] = set(all_hunk_indices(file_diff))
        else:
            self._hunks.pop(path, None)

    def _materialize(self, path: str) -> None:
        """Expand bare whole-file intent into an explicit hunk set."""
        if path in self._files and path not in self._hunks:
            self._mirror_whole_file(path)

    def _recompute(self, path: str) -> None:
        hunks = self._hunks.get(path)
        if hunks is not None and not hunks:
            del self._hunks[path]
            hunks = None

        if path in self._lines or not hunks:
            self._files.discard(path)
            return

        file_diff = self._diffs.get(path)
        if file_diff is not None and file_diff.hunks and hunks >= set(all_hunk_indices(file_diff)):
            self._files.add(path)
        else:
            self._files.discard(path)

    def _is_unknown_hunk(self, path: str, hunk_index: int) -> bool:
        file_diff = self._diffs.get(path)
        if file_diff is None or file_diff.hunk(hunk_index) is not None:
            return False
        logger.debug("ignoring hunk %d not present in the diff of %s", hunk_index, path)
        return True

    def _drop(self, path: str) -> None:
        self._files.discard(path)
        self._hunks.pop(path, None)
        self._lines.pop(path, None)
