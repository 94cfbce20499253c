"""Per-file unified diff model."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from re import Match, compile
from typing import Literal

HUNK_HEADER_RE = compile(
    r"^@@ -(?P<old_start>\d+)(?:,(?P<old_count>\d+))? "
    r"\+(?P<new_start>\d+)(?:,(?P<new_count>\d+))? @@(?P<section>.*)$"
)

DEV_NULL = "/dev/null"

LineKind = Literal["context", "add", "delete", "meta"]


class DiffParseError(ValueError):
    """Raised when a hunk header cannot be parsed."""


@dataclass(frozen=True, slots=True)
class Line:
    """A single body line within a diff hunk."""

    kind: LineKind
    raw: str
    old_lineno: int | None
    new_lineno: int | None

    @property
    def content(self) -> str:
        if self.kind == "meta":
            return self.raw[2:]
        return self.raw[1:]

    @property
    def is_change(self) -> bool:
        return self.kind in {"add", "delete"}


@dataclass(frozen=True, slots=True)
class HunkHeader:
    """Parsed hunk header values."""

    old_start: int
    old_count: int
    new_start: int
    new_count: int
    section: str


@dataclass(slots=True)
class Hunk:
    """A diff hunk; ``index`` is positional and only valid for one fetch."""

    index: int
    header: str
    old_start: int
    old_count: int
    new_start: int
    new_count: int
    section: str
    lines: list[Line] = field(default_factory=list)

    @property
    def change_offsets(self) -> frozenset[int]:
        """Body offsets of added and deleted lines."""
        return frozenset(offset for offset, line in enumerate(self.lines) if line.is_change)

    @property
    def body(self) -> list[str]:
        return [line.raw for line in self.lines]


@dataclass(slots=True)
class FileDiff:
    """A parsed diff for one path: prelude lines plus hunks."""

    path: str
    prelude: list[str] = field(default_factory=list)
    hunks: list[Hunk] = field(default_factory=list)

    @property
    def is_new_file(self) -> bool:
        return any(
            line.startswith("--- ") and _marker_path(line) == DEV_NULL for line in self.prelude
        )

    @property
    def is_deleted_file(self) -> bool:
        return any(
            line.startswith("+++ ") and _marker_path(line) == DEV_NULL for line in self.prelude
        )

    @property
    def is_binary(self) -> bool:
        return any(
            line.startswith("Binary files ") or line == "GIT binary patch" for line in self.prelude
        )

    @property
    def has_hunks(self) -> bool:
        return bool(self.hunks)

    def hunk(self, index: int) -> Hunk | None:
        """Return the hunk at ``index`` or None when it does not exist."""
        if 0 <= index < len(self.hunks):
            return self.hunks[index]
        return None


def parse_diff_lines(path: str, lines: Iterable[str]) -> FileDiff:
    """Split raw diff lines for one path into prelude and hunks."""
    file_diff = FileDiff(path=path)
    current_hunk: Hunk | None = None
    old_lineno = 0
    new_lineno = 0

    for raw_line in lines:
        raw_line = raw_line.rstrip("\r\n")
        if raw_line.startswith("@@"):
            parsed = parse_hunk_header(raw_line)
            current_hunk = Hunk(
                index=len(file_diff.hunks),
                header=raw_line,
                old_start=parsed.old_start,
                old_count=parsed.old_count,
                new_start=parsed.new_start,
                new_count=parsed.new_count,
                section=parsed.section,
            )
            file_diff.hunks.append(current_hunk)
            old_lineno = parsed.old_start
            new_lineno = parsed.new_start
            continue

        if current_hunk is None:
            file_diff.prelude.append(raw_line)
            continue

        if raw_line.startswith("+"):
            current_hunk.lines.append(
                Line(kind="add", raw=raw_line, old_lineno=None, new_lineno=new_lineno)
            )
            new_lineno += 1
        elif raw_line.startswith("-"):
            current_hunk.lines.append(
                Line(kind="delete", raw=raw_line, old_lineno=old_lineno, new_lineno=None)
            )
            old_lineno += 1
        elif raw_line.startswith("\\"):
            current_hunk.lines.append(
                Line(kind="meta", raw=raw_line, old_lineno=None, new_lineno=None)
            )
        else:
            # " " prefix, or an empty line some tools emit for blank context.
            current_hunk.lines.append(
                Line(kind="context", raw=raw_line, old_lineno=old_lineno, new_lineno=new_lineno)
            )
            old_lineno += 1
            new_lineno += 1

    return file_diff


def parse_diff_text(path: str, diff_text: str) -> FileDiff:
    """Parse diff text for one path."""
    return parse_diff_lines(path, diff_text.splitlines())


def all_hunk_indices(file_diff: FileDiff) -> range:
    """Every hunk index of the diff, for "select everything"."""
    return range(len(file_diff.hunks))


def parse_hunk_header(header: str) -> HunkHeader:
    match: Match[str] | None = HUNK_HEADER_RE.match(header)
    if match is None:
        raise DiffParseError(f"Invalid hunk header: {header}")

    old_count = int(match.group("old_count")) if match.group("old_count") else 1
    new_count = int(match.group("new_count")) if match.group("new_count") else 1

    return HunkHeader(
        old_start=int(match.group("old_start")),
        old_count=old_count,
        new_start=int(match.group("new_start")),
        new_count=new_count,
        section=match.group("section"),
    )


def _marker_path(line: str) -> str:
    return line[4:].strip().split("\t", 1)[0]
