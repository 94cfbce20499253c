"""Tests for unified diff parsing."""

from pathlib import Path

import pytest

from diff_pick.diff_parser import (
    DiffParseError,
    all_hunk_indices,
    parse_diff_lines,
    parse_diff_text,
    parse_hunk_header,
)

FIXTURE_DIR = Path(__file__).parent / "fixtures" / "diffs"


def _load_fixture(name: str) -> str:
    return (FIXTURE_DIR / name).read_text(encoding="utf-8")


def test_parse_simple_diff() -> None:
    file_diff = parse_diff_text("src/app.py", _load_fixture("simple.diff"))

    assert file_diff.path == "src/app.py"
    assert file_diff.prelude[0] == "diff --git a/src/app.py b/src/app.py"
    assert len(file_diff.prelude) == 4
    assert file_diff.is_new_file is False
    assert file_diff.is_deleted_file is False
    assert len(file_diff.hunks) == 1

    hunk = file_diff.hunks[0]
    assert hunk.index == 0
    assert (hunk.old_start, hunk.old_count, hunk.new_start, hunk.new_count) == (1, 3, 1, 4)
    assert hunk.section == " def main():"
    assert [line.kind for line in hunk.lines] == ["context", "delete", "add", "add", "context"]
    assert hunk.change_offsets == frozenset({1, 2, 3})

    deleted = hunk.lines[1]
    assert deleted.content == 'print("old")'
    assert deleted.old_lineno == 2
    assert deleted.new_lineno is None

    added = hunk.lines[3]
    assert added.content == 'print("more")'
    assert added.old_lineno is None
    assert added.new_lineno == 3

    trailing = hunk.lines[4]
    assert (trailing.old_lineno, trailing.new_lineno) == (3, 4)


def test_parse_new_and_deleted_files() -> None:
    created = parse_diff_text("docs/new.md", _load_fixture("new_file.diff"))
    assert created.is_new_file is True
    assert created.is_deleted_file is False
    assert [line.kind for line in created.hunks[0].lines] == ["add", "add"]

    deleted = parse_diff_text("tests/legacy.txt", _load_fixture("deleted_file.diff"))
    assert deleted.is_deleted_file is True
    assert deleted.is_new_file is False
    assert deleted.hunks[0].new_count == 0


def test_parse_multiple_hunks_keeps_positional_indices() -> None:
    file_diff = parse_diff_text("data/lines.txt", _load_fixture("multi_hunk.diff"))

    assert [hunk.index for hunk in file_diff.hunks] == [0, 1]
    assert list(all_hunk_indices(file_diff)) == [0, 1]
    assert file_diff.hunk(1) is file_diff.hunks[1]
    assert file_diff.hunk(2) is None
    assert file_diff.hunk(-1) is None

    second = file_diff.hunks[1]
    assert (second.old_start, second.new_start) == (12, 12)
    assert second.body[3:6] == ["-line-15", "+LINE-15", "+extra"]


def test_no_newline_marker_is_meta_line() -> None:
    file_diff = parse_diff_text("notes.txt", _load_fixture("no_newline.diff"))
    kinds = [line.kind for line in file_diff.hunks[0].lines]

    assert kinds == ["context", "delete", "meta", "add", "meta"]
    assert file_diff.hunks[0].change_offsets == frozenset({1, 3})
    assert file_diff.hunks[0].lines[2].content == "No newline at end of file"


def test_empty_input_yields_no_hunks() -> None:
    file_diff = parse_diff_lines("empty.txt", [])

    assert file_diff.hunks == []
    assert file_diff.prelude == []
    assert file_diff.has_hunks is False
    assert list(all_hunk_indices(file_diff)) == []


def test_binary_diff_has_prelude_only() -> None:
    file_diff = parse_diff_text("assets/logo.png", _load_fixture("binary.diff"))

    assert file_diff.hunks == []
    assert file_diff.is_binary is True
    assert len(file_diff.prelude) == 3


def test_blank_line_inside_hunk_is_context() -> None:
    file_diff = parse_diff_lines("a.txt", ["@@ -1,2 +1,2 @@", "", "-x", "+y"])

    assert [line.kind for line in file_diff.hunks[0].lines] == ["context", "delete", "add"]


def test_line_terminators_are_stripped() -> None:
    file_diff = parse_diff_lines("a.txt", ["@@ -1 +1 @@\r\n", "-x \n", "+y\n"])

    assert file_diff.hunks[0].body == ["-x ", "+y"]


def test_hunk_header_without_counts_defaults_to_one() -> None:
    header = parse_hunk_header("@@ -7 +9 @@")

    assert (header.old_start, header.old_count, header.new_start, header.new_count) == (
        7,
        1,
        9,
        1,
    )
    assert header.section == ""


def test_invalid_hunk_header_raises() -> None:
    with pytest.raises(DiffParseError, match="Invalid hunk header"):
        parse_diff_lines("a.txt", ["@@ nonsense @@", "+x"])
