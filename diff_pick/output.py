"""Output rendering."""

from __future__ import annotations

import json
from typing import Any

import click

from diff_pick import __version__
from diff_pick.backend import ChangedPath, ChangeKind
from diff_pick.diff_parser import FileDiff, Hunk
from diff_pick.selection import SelectionState, TriState

NO_HUNKS_PLACEHOLDER = "(no textual hunks)"

_TRISTATE_MARKS = {
    TriState.FULL: "[x]",
    TriState.PARTIAL: "[~]",
    TriState.NONE: "[ ]",
}

_KIND_LABELS = {
    ChangeKind.ADDED: ("A", "green"),
    ChangeKind.MODIFIED: ("M", "yellow"),
    ChangeKind.DELETED: ("D", "red"),
    ChangeKind.RENAMED: ("R", "cyan"),
    ChangeKind.CONFLICTED: ("U", "magenta"),
    ChangeKind.OTHER: ("?", "white"),
}


def render_status(entries: list[ChangedPath], selection: SelectionState) -> str:
    """Render changed paths with their selection marks."""
    if not entries:
        return "Working tree clean."
    lines = [click.style(f"{len(entries)} changed path(s):", bold=True)]
    for entry in entries:
        label, color = _KIND_LABELS[entry.change_kind]
        mark = _TRISTATE_MARKS[selection.tristate(entry.path)]
        lines.append(f"{mark} {click.style(label, fg=color)} {entry.path}")
    return "\n".join(lines)


def render_file_diff(file_diff: FileDiff, selection: SelectionState) -> str:
    """Render hunks with their indices and body offsets for line selection."""
    mark = _TRISTATE_MARKS[selection.tristate(file_diff.path)]
    lines = [click.style(f"{mark} {file_diff.path}", bold=True)]
    if not file_diff.hunks:
        lines.append(NO_HUNKS_PLACEHOLDER)
        return "\n".join(lines)

    whole = selection.selected_hunks(file_diff.path)
    by_line = selection.selected_lines(file_diff.path)
    file_selected = selection.is_file_selected(file_diff.path)
    for hunk in file_diff.hunks:
        hunk_selected = file_selected or hunk.index in whole
        picked = by_line.get(hunk.index, frozenset())
        hunk_mark = "[x]" if hunk_selected else ("[~]" if picked else "[ ]")
        lines.append(click.style(f"{hunk_mark} #{hunk.index} {hunk.header}", fg="cyan"))
        lines.extend(_render_body(hunk, hunk_selected, picked))
    return "\n".join(lines)


def render_patch(patch: str) -> str:
    styled: list[str] = []
    for line in patch.splitlines():
        if line.startswith(("+++ ", "--- ", "diff --git ")):
            styled.append(click.style(line, bold=True))
        elif line.startswith("@@"):
            styled.append(click.style(line, fg="cyan"))
        elif line.startswith("+"):
            styled.append(click.style(line, fg="green"))
        elif line.startswith("-"):
            styled.append(click.style(line, fg="red"))
        else:
            styled.append(line)
    return "\n".join(styled)


def build_status_payload(entries: list[ChangedPath], selection: SelectionState) -> dict[str, Any]:
    return {
        "paths": [
            {
                "path": entry.path,
                "change_kind": entry.change_kind.value,
                "selection": selection.tristate(entry.path).value,
            }
            for entry in entries
        ],
        "meta": {"version": __version__},
    }


def build_diff_payload(file_diff: FileDiff, selection: SelectionState) -> dict[str, Any]:
    return {
        "path": file_diff.path,
        "selection": selection.tristate(file_diff.path).value,
        "is_new_file": file_diff.is_new_file,
        "is_deleted_file": file_diff.is_deleted_file,
        "hunks": [
            {
                "index": hunk.index,
                "header": hunk.header,
                "old_start": hunk.old_start,
                "new_start": hunk.new_start,
                "selected": hunk.index in selection.selected_hunks(file_diff.path),
                "selected_lines": sorted(
                    selection.selected_lines(file_diff.path).get(hunk.index, ())
                ),
                "lines": [
                    {"offset": offset, "kind": line.kind, "text": line.raw}
                    for offset, line in enumerate(hunk.lines)
                ],
            }
            for hunk in file_diff.hunks
        ],
    }


def render_json(payload: dict[str, Any]) -> str:
    return json.dumps(payload, sort_keys=True)


def _render_body(hunk: Hunk, hunk_selected: bool, picked: frozenset[int]) -> list[str]:
    rendered: list[str] = []
    for offset, line in enumerate(hunk.lines):
        if line.is_change:
            marker = "*" if hunk_selected or offset in picked else " "
        else:
            marker = " "
        text = f"{offset:>4} {marker} {line.raw}"
        if line.kind == "add":
            text = click.style(text, fg="green")
        elif line.kind == "delete":
            text = click.style(text, fg="red")
        elif line.kind == "meta":
            text = click.style(text, dim=True)
        rendered.append(text)
    return rendered
