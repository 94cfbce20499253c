"""Build partial unified-diff patches from a selection."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass

from diff_pick.diff_parser import DEV_NULL, FileDiff, Hunk, Line, all_hunk_indices
from diff_pick.selection import SelectionState

logger = logging.getLogger(__name__)

_CARRIED_WHOLE_FILE_PRELUDE = ("new file mode ", "deleted file mode ", "old mode ", "new mode ")


@dataclass(slots=True)
class _FileSelection:
    whole: set[int]
    lines: dict[int, frozenset[int]]

    def is_empty(self) -> bool:
        return not self.whole and not self.lines


def synthesize(
    path: str, file_diff: FileDiff, selection: SelectionState, *, reverse: bool = False
) -> str:
    """Return the patch for the selected part of ``file_diff``, or ``""``.

    Whole hunks are copied verbatim. Line selections become one zero-context
    hunk per run of selected lines, with headers recounted against the lines
    actually emitted. Selected indices that no longer exist are skipped.

    Changes left out shift the lines after them, so hunk positions are given
    in the frame the patch is applied to: the old file for a forward patch,
    the working tree for one applied with ``git apply -R`` (``reverse``).
    """
    if not file_diff.hunks:
        return ""

    chosen = _resolve(path, file_diff, selection)
    if chosen.is_empty():
        return ""

    sections: list[str] = []
    skipped = 0
    for hunk in file_diff.hunks:
        if hunk.index in chosen.whole:
            sections.append("\n".join([_whole_hunk_header(hunk, skipped, reverse), *hunk.body]))
        elif hunk.index in chosen.lines:
            hunk_sections, skipped = _line_sections(
                hunk, chosen.lines[hunk.index], skipped, reverse=reverse
            )
            sections.extend(hunk_sections)
        else:
            skipped += _net(hunk.lines)

    if not sections:
        return ""

    whole_file = chosen.whole >= set(all_hunk_indices(file_diff))
    header = _file_header(path, file_diff, whole_file=whole_file, reverse=reverse)
    return "\n".join([*header, *sections]).rstrip("\n") + "\n"


def synthesize_multi(
    paths: Iterable[str],
    file_diffs_by_path: Mapping[str, FileDiff],
    selection: SelectionState,
    *,
    reverse: bool = False,
) -> str:
    """Concatenate per-file patches in ``paths`` order, skipping empty ones."""
    parts: list[str] = []
    for path in paths:
        file_diff = file_diffs_by_path.get(path)
        if file_diff is None:
            logger.debug("no diff loaded for %s; skipped", path)
            continue
        patch = synthesize(path, file_diff, selection, reverse=reverse)
        if patch:
            parts.append(patch)
    return "".join(parts)


def group_runs(offsets: Iterable[int]) -> list[list[int]]:
    """Group integers into maximal runs of consecutive values."""
    runs: list[list[int]] = []
    for offset in sorted(set(offsets)):
        if runs and offset == runs[-1][-1] + 1:
            runs[-1].append(offset)
        else:
            runs.append([offset])
    return runs


def _resolve(path: str, file_diff: FileDiff, selection: SelectionState) -> _FileSelection:
    hunks = selection.selected_hunks(path)
    lines = selection.selected_lines(path)
    if not hunks and not lines:
        if selection.is_file_selected(path):
            return _FileSelection(whole=set(all_hunk_indices(file_diff)), lines={})
        return _FileSelection(whole=set(), lines={})

    stale = sorted(index for index in hunks | lines.keys() if file_diff.hunk(index) is None)
    if stale:
        logger.debug("skipping stale hunk indices %s for %s", stale, path)

    whole = {index for index in hunks if file_diff.hunk(index) is not None}
    partial = {
        index: offsets
        for index, offsets in lines.items()
        if index not in whole and file_diff.hunk(index) is not None
    }
    return _FileSelection(whole=whole, lines=partial)


def _whole_hunk_header(hunk: Hunk, skipped: int, reverse: bool) -> str:
    if not skipped:
        return hunk.header
    if reverse:
        old_start, new_start = hunk.old_start + skipped, hunk.new_start
    else:
        old_start, new_start = hunk.old_start, hunk.new_start - skipped
    return f"@@ -{old_start},{hunk.old_count} +{new_start},{hunk.new_count} @@{hunk.section}"


def _line_sections(
    hunk: Hunk, offsets: frozenset[int], skipped: int, *, reverse: bool
) -> tuple[list[str], int]:
    selectable = [
        offset
        for offset in offsets
        if 0 <= offset < len(hunk.lines) and hunk.lines[offset].kind != "meta"
    ]
    # Unselected lines of one kind vanish from the frame being patched, so
    # runs separated only by them touch the same position.
    runs = _bridge_gaps(hunk.lines, group_runs(selectable), "delete" if reverse else "add")

    sections: list[str] = []
    # Next line numbers on each side; a zero-count header names the line before.
    old_line = hunk.old_start if hunk.old_count else hunk.old_start + 1
    new_line = hunk.new_start if hunk.new_count else hunk.new_start + 1
    cursor = 0
    for run in runs:
        before = hunk.lines[cursor : run[0]]
        old_line += _old_side(before)
        new_line += _new_side(before)
        skipped += _net(before)

        picked = set(run)
        body = [hunk.lines[offset] for offset in run]
        span = hunk.lines[run[0] : run[-1] + 1]
        cursor = run[-1] + 1
        old_count = _old_side(body)
        new_count = _new_side(body)

        if any(line.is_change for line in body):
            raw = [line.raw for line in body]
            if cursor < len(hunk.lines) and hunk.lines[cursor].kind == "meta":
                raw.append(hunk.lines[cursor].raw)
            if reverse:
                old_at, new_at = old_line + skipped, new_line
            else:
                old_at, new_at = old_line, new_line - skipped
            old_start = old_at if old_count else old_at - 1
            new_start = new_at if new_count else new_at - 1
            sections.append(
                "\n".join([f"@@ -{old_start},{old_count} +{new_start},{new_count} @@", *raw])
            )

        old_line += _old_side(span)
        new_line += _new_side(span)
        skipped += _net(
            line for offset, line in enumerate(span, start=run[0]) if offset not in picked
        )

    skipped += _net(hunk.lines[cursor:])
    return sections, skipped


def _bridge_gaps(lines: Sequence[Line], runs: list[list[int]], kind: str) -> list[list[int]]:
    """Join runs separated only by unselected lines of ``kind``.

    Without this, two hunks would name the same start line, which git places
    at the top of the file when that start is 0.
    """
    merged: list[list[int]] = []
    for run in runs:
        if merged:
            gap = lines[merged[-1][-1] + 1 : run[0]]
            if all(line.kind == kind for line in gap):
                merged[-1].extend(run)
                continue
        merged.append(list(run))
    return merged


def _file_header(
    path: str, file_diff: FileDiff, *, whole_file: bool, reverse: bool
) -> list[str]:
    """Header lines for ``path``.

    A created file keeps its creation header except when part of it is being
    discarded; that patch edits the file in place. A deleted file keeps its
    deletion header when all of it is selected, and also for a partial
    discard, so that reversing the patch recreates the file holding only the
    selected lines.
    """
    creating = file_diff.is_new_file and (whole_file or not reverse)
    deleting = file_diff.is_deleted_file and (whole_file or reverse)
    header = [f"diff --git a/{path} b/{path}"]
    for line in file_diff.prelude:
        if not line.startswith(_CARRIED_WHOLE_FILE_PRELUDE):
            continue
        if line.startswith("new file mode ") and not creating:
            continue
        if line.startswith("deleted file mode ") and not deleting:
            continue
        if line.startswith(("old mode ", "new mode ")) and not whole_file:
            continue
        header.append(line)

    if creating:
        header.extend([f"--- {DEV_NULL}", f"+++ b/{path}"])
    elif deleting:
        header.extend([f"--- a/{path}", f"+++ {DEV_NULL}"])
    else:
        header.extend([f"--- a/{path}", f"+++ b/{path}"])
    return header


def _old_side(lines: Iterable[Line]) -> int:
    return sum(1 for line in lines if line.kind in {"context", "delete"})


def _new_side(lines: Iterable[Line]) -> int:
    return sum(1 for line in lines if line.kind in {"context", "add"})


def _net(lines: Iterable[Line]) -> int:
    """Lines added minus lines deleted."""
    return sum(1 if line.kind == "add" else -1 if line.kind == "delete" else 0 for line in lines)
