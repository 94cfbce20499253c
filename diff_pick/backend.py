"""Version-control backend contract and the git implementation."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Protocol

from diff_pick import git
from diff_pick.git import GitError

logger = logging.getLogger(__name__)


class PatchMode(str, Enum):
    COMMIT = "commit"
    DISCARD = "discard"


class ChangeKind(str, Enum):
    ADDED = "added"
    MODIFIED = "modified"
    DELETED = "deleted"
    RENAMED = "renamed"
    CONFLICTED = "conflicted"
    OTHER = "other"


@dataclass(frozen=True, slots=True)
class ChangedPath:
    """One entry of the working-tree status snapshot."""

    path: str
    change_kind: ChangeKind


@dataclass(frozen=True, slots=True)
class ApplyResult:
    """Outcome of applying a patch; ``reason`` is the backend's own message."""

    ok: bool
    reason: str | None = None
    revision: str | None = None


@dataclass(frozen=True, slots=True)
class Capabilities:
    """What a backend can do with a selection."""

    partial_patches: bool = True


class Backend(Protocol):
    """Contract the workbench needs from a version-control backend."""

    def capabilities(self) -> Capabilities:
        """Static capabilities, known before any call."""

    async def get_diff_lines(self, path: str) -> list[str]:
        """Raw unified diff lines for one path; empty when there is no textual diff."""

    async def list_changed_paths(self) -> list[ChangedPath]:
        """Working-tree status snapshot."""

    async def apply_patch(
        self,
        patch_text: str,
        mode: PatchMode,
        *,
        message: str = "",
        paths: Sequence[str] = (),
    ) -> ApplyResult:
        """Commit or discard ``patch_text`` plus the whole files in ``paths``."""


class GitBackend:
    """Backend driving the git command line in a working tree."""

    def __init__(
        self,
        repo: Path,
        *,
        context_lines: int = 3,
        partial_patches: bool = True,
    ) -> None:
        self.repo = repo
        self.context_lines = context_lines
        self._caps = Capabilities(partial_patches=partial_patches)

    def capabilities(self) -> Capabilities:
        return self._caps

    async def get_diff_lines(self, path: str) -> list[str]:
        return await asyncio.to_thread(
            git.get_diff_lines, self.repo, path, context_lines=self.context_lines
        )

    async def list_changed_paths(self) -> list[ChangedPath]:
        raw = await asyncio.to_thread(git.get_status_porcelain, self.repo)
        return parse_porcelain_v2(raw)

    async def apply_patch(
        self,
        patch_text: str,
        mode: PatchMode,
        *,
        message: str = "",
        paths: Sequence[str] = (),
    ) -> ApplyResult:
        return await asyncio.to_thread(self._apply_sync, patch_text, mode, message, list(paths))

    def _apply_sync(
        self, patch_text: str, mode: PatchMode, message: str, paths: list[str]
    ) -> ApplyResult:
        try:
            if mode is PatchMode.COMMIT:
                revision = self._commit_sync(patch_text, message, paths)
                logger.info("committed %s", revision[:12])
                return ApplyResult(ok=True, revision=revision)

            if patch_text.strip():
                git.apply_patch(self.repo, patch_text, reverse=True)
            git.discard_paths(self.repo, paths)
            return ApplyResult(ok=True)
        except GitError as exc:
            logger.warning("git rejected %s: %s", mode.value, exc)
            return ApplyResult(ok=False, reason=str(exc))

    def _commit_sync(self, patch_text: str, message: str, paths: list[str]) -> str:
        """Stage and commit; a failed step puts the index back as it was."""
        saved_index = git.write_index_tree(self.repo)
        try:
            if patch_text.strip():
                git.apply_patch(self.repo, patch_text, cached=True)
            git.add_paths(self.repo, paths)
            return git.commit(self.repo, message)
        except GitError:
            git.read_index_tree(self.repo, saved_index)
            raise


def parse_porcelain_v2(raw: str) -> list[ChangedPath]:
    """Map ``git status --porcelain=v2 -z`` output to changed paths."""
    entries: list[ChangedPath] = []
    records = iter(raw.split("\0"))
    for record in records:
        if not record:
            continue
        tag = record[0]
        if tag == "1":
            fields = record.split(" ", 8)
            if len(fields) == 9:
                entries.append(ChangedPath(fields[8], _ordinary_kind(fields[1])))
        elif tag == "2":
            fields = record.split(" ", 9)
            next(records, None)  # original path of the rename
            if len(fields) == 10:
                entries.append(ChangedPath(fields[9], ChangeKind.RENAMED))
        elif tag == "u":
            fields = record.split(" ", 10)
            if len(fields) == 11:
                entries.append(ChangedPath(fields[10], ChangeKind.CONFLICTED))
        elif tag == "?":
            entries.append(ChangedPath(record[2:], ChangeKind.ADDED))
    return entries


def _ordinary_kind(xy: str) -> ChangeKind:
    if "D" in xy:
        return ChangeKind.DELETED
    if "A" in xy:
        return ChangeKind.ADDED
    if "M" in xy or "T" in xy:
        return ChangeKind.MODIFIED
    return ChangeKind.OTHER
