"""Commit/discard workflow around a selection and a backend.

Selection changes and patch synthesis are synchronous; only backend calls
are awaited. Diff fetches for the displayed file are tagged so a late reply
for a file the user already left never overwrites the current one.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

from diff_pick.backend import Backend, ChangedPath, PatchMode
from diff_pick.diff_parser import FileDiff, parse_diff_lines
from diff_pick.errors import (
    BackendRejectedError,
    EmptySelectionError,
    OperationInProgressError,
    PartialSelectionUnsupportedError,
)
from diff_pick.patch import synthesize_multi
from diff_pick.range_select import DEFAULT_DRAG_THRESHOLD_PX, RangeSelectionController
from diff_pick.selection import SelectionState, TriState

logger = logging.getLogger(__name__)

STALE_SELECTION_NOTICE = (
    "Nothing to apply: the selection no longer matches the current diff. "
    "Refresh the diff and select again."
)


@dataclass(slots=True)
class OperationResult:
    """Outcome of a commit or discard."""

    mode: PatchMode
    applied: bool
    paths: list[str] = field(default_factory=list)
    revision: str | None = None
    notice: str | None = None


def compose_commit_message(summary: str, description: str = "") -> str:
    summary = summary.strip()
    description = description.strip()
    if description:
        return f"{summary}\n\n{description}"
    return summary


class Workbench:
    """Owns the selection and drives the backend for one working tree."""

    def __init__(
        self,
        backend: Backend,
        *,
        selection: SelectionState | None = None,
        drag_threshold_px: int = DEFAULT_DRAG_THRESHOLD_PX,
        partial_patches: bool = True,
    ) -> None:
        self.backend = backend
        self.selection = selection if selection is not None else SelectionState()
        self.controller = RangeSelectionController(
            self.selection, drag_threshold_px=drag_threshold_px
        )
        self._partial_patches = partial_patches
        self._status: list[ChangedPath] = []
        self._request_seq = 0
        self._pending_request: tuple[str, int] | None = None
        self._in_flight: set[PatchMode] = set()

    @property
    def status(self) -> list[ChangedPath]:
        return list(self._status)

    def supports_partial(self) -> bool:
        return self._partial_patches and self.backend.capabilities().partial_patches

    def is_busy(self, mode: PatchMode) -> bool:
        return mode in self._in_flight

    def visible_paths(self, query: str = "") -> list[str]:
        """Status paths matching a case-insensitive text filter."""
        needle = query.strip().lower()
        return [entry.path for entry in self._status if needle in entry.path.lower()]

    async def refresh_status(self) -> list[ChangedPath]:
        """Fetch the status snapshot and prune selection for vanished paths."""
        entries = await self.backend.list_changed_paths()
        self._status = list(entries)
        self.selection.prune(entry.path for entry in self._status)
        return self.status

    async def open_file(self, path: str) -> FileDiff | None:
        """Fetch and display the diff of ``path``.

        Returns None when another file was opened before the reply arrived.
        """
        self._request_seq += 1
        request = (path, self._request_seq)
        self._pending_request = request
        lines = await self.backend.get_diff_lines(path)
        if self._pending_request != request:
            logger.debug(
                "dropping stale diff reply for %s",
                path,
                extra={"path": path, "request_id": request[1]},
            )
            return None
        self._pending_request = None
        file_diff = parse_diff_lines(path, lines)
        self.selection.activate(path, file_diff)
        return file_diff

    async def load_diff(self, path: str) -> FileDiff:
        """Fetch the diff of a path that is not displayed."""
        lines = await self.backend.get_diff_lines(path)
        file_diff = parse_diff_lines(path, lines)
        self.selection.register_diff(path, file_diff)
        return file_diff

    def ordered_selected_paths(self) -> list[str]:
        """Selected paths in status order; unknown paths follow, sorted."""
        selected = self.selection.paths_with_selection()
        wanted = set(selected)
        ordered = [entry.path for entry in self._status if entry.path in wanted]
        seen = set(ordered)
        ordered.extend(path for path in selected if path not in seen)
        return ordered

    def build_patch(self, paths: Sequence[str] | None = None, *, reverse: bool = False) -> str:
        """Patch for the selection; ``reverse`` builds it for undoing the working tree."""
        targets = list(paths) if paths is not None else self.ordered_selected_paths()
        diffs = {
            path: file_diff
            for path in targets
            if (file_diff := self.selection.diff_for(path)) is not None
        }
        return synthesize_multi(targets, diffs, self.selection, reverse=reverse)

    async def commit(self, summary: str, description: str = "") -> OperationResult:
        if not summary.strip():
            raise ValueError("commit summary is required")
        return await self._apply(PatchMode.COMMIT, compose_commit_message(summary, description))

    async def discard(self) -> OperationResult:
        return await self._apply(PatchMode.DISCARD, "")

    async def _apply(self, mode: PatchMode, message: str) -> OperationResult:
        if mode in self._in_flight:
            raise OperationInProgressError(f"A {mode.value} is already running.")
        if not self.selection.has_selection():
            raise EmptySelectionError(f"Select files, hunks or lines to {mode.value}.")
        partial = self.selection.partial_paths()
        if partial and not self.supports_partial():
            raise PartialSelectionUnsupportedError(partial)

        self._in_flight.add(mode)
        try:
            for path in self.ordered_selected_paths():
                if self.selection.diff_for(path) is None:
                    await self.load_diff(path)

            paths = self.ordered_selected_paths()
            whole_paths, patch_paths = self._split_by_transport(paths)
            patch = self.build_patch(patch_paths, reverse=mode is PatchMode.DISCARD)
            if not patch and not whole_paths:
                logger.info("%s skipped: selection is stale", mode.value)
                return OperationResult(mode=mode, applied=False, notice=STALE_SELECTION_NOTICE)

            logger.info(
                "%s: %d patch bytes, %d whole file(s)",
                mode.value,
                len(patch),
                len(whole_paths),
                extra={"mode": mode.value},
            )
            result = await self.backend.apply_patch(
                patch, mode, message=message, paths=whole_paths
            )
            if not result.ok:
                raise BackendRejectedError(result.reason or f"{mode.value} failed")

            for path in paths:
                self.selection.clear(path)
                self.selection.forget_diff(path)
            await self.refresh_status()
            return OperationResult(mode=mode, applied=True, paths=paths, revision=result.revision)
        finally:
            self._in_flight.discard(mode)

    def _split_by_transport(self, paths: Sequence[str]) -> tuple[list[str], list[str]]:
        """Whole files without textual hunks go by path, the rest as a patch."""
        partial_ok = self.supports_partial()
        whole_paths: list[str] = []
        patch_paths: list[str] = []
        for path in paths:
            state = self.selection.tristate(path)
            if state is TriState.NONE:
                continue
            file_diff = self.selection.diff_for(path)
            if state is TriState.FULL and (
                file_diff is None or not file_diff.hunks or not partial_ok
            ):
                whole_paths.append(path)
            else:
                patch_paths.append(path)
        return whole_paths, patch_paths
