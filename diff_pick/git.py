"""Git subprocess helpers."""

from __future__ import annotations

import logging
import os
from collections.abc import Sequence
from pathlib import Path
from subprocess import CompletedProcess, run

logger = logging.getLogger(__name__)


class GitError(RuntimeError):
    """Raised when git command execution fails."""


def get_diff_lines(repo: Path, path: str, *, context_lines: int = 3) -> list[str]:
    """Return the pending diff for one path, split into lines.

    Unstaged changes win, then staged ones; an untracked file is shown as a
    creation diff. An empty list means there is no textual change.
    """
    unified = f"--unified={context_lines}"
    unstaged = _run_git(repo, ["diff", "--no-color", unified, "--", path]).rstrip("\n")
    if unstaged:
        return unstaged.splitlines()

    staged = _run_git(repo, ["diff", "--no-color", unified, "--cached", "--", path]).rstrip("\n")
    if staged:
        return staged.splitlines()

    if (repo / path).is_file() and not is_tracked(repo, path):
        untracked = _run_git(
            repo,
            ["diff", "--no-color", unified, "--no-index", "--", os.devnull, path],
            ok_codes=(0, 1),
        ).rstrip("\n")
        return untracked.splitlines()

    return []


def get_status_porcelain(repo: Path) -> str:
    """Return NUL-separated ``git status --porcelain=v2`` records."""
    return _run_git(repo, ["status", "--porcelain=v2", "-z", "--untracked-files=all"])


def is_tracked(repo: Path, path: str) -> bool:
    try:
        _run_git(repo, ["ls-files", "--error-unmatch", "--", path])
    except GitError:
        return False
    return True


def apply_patch(
    repo: Path, patch_text: str, *, cached: bool = False, reverse: bool = False
) -> None:
    """Apply a patch with zero-context hunks allowed."""
    args = ["apply", "--unidiff-zero", "--whitespace=nowarn"]
    if cached:
        args.append("--cached")
    if reverse:
        args.append("-R")
    args.append("-")
    _run_git(repo, args, input_text=patch_text)


def check_patch(
    repo: Path, patch_text: str, *, cached: bool = False, reverse: bool = False
) -> None:
    """Dry-run ``apply_patch``; raises GitError when the patch does not apply."""
    args = ["apply", "--check", "--unidiff-zero"]
    if cached:
        args.append("--cached")
    if reverse:
        args.append("-R")
    args.append("-")
    _run_git(repo, args, input_text=patch_text)


def add_paths(repo: Path, paths: Sequence[str]) -> None:
    if paths:
        _run_git(repo, ["add", "-A", "--", *paths])


def write_index_tree(repo: Path) -> str:
    """Record the index as a tree object and return its id."""
    return _run_git(repo, ["write-tree"]).strip()


def read_index_tree(repo: Path, tree: str) -> None:
    _run_git(repo, ["read-tree", tree])


def commit(repo: Path, message: str) -> str:
    """Commit the index and return the new HEAD revision."""
    _run_git(repo, ["commit", "-q", "-m", message])
    return _run_git(repo, ["rev-parse", "HEAD"]).strip()


def discard_paths(repo: Path, paths: Sequence[str]) -> None:
    """Throw away working-tree changes of whole files."""
    tracked = [path for path in paths if is_tracked(repo, path)]
    untracked = [path for path in paths if path not in tracked]
    if tracked:
        _run_git(repo, ["checkout", "--", *tracked])
    if untracked:
        _run_git(repo, ["clean", "-f", "-q", "--", *untracked])


def _run_git(
    repo: Path,
    args: list[str],
    *,
    input_text: str | None = None,
    ok_codes: tuple[int, ...] = (0,),
) -> str:
    logger.debug("git %s", " ".join(args))
    completed: CompletedProcess[str] = run(
        ["git", *args],
        cwd=repo,
        check=False,
        capture_output=True,
        text=True,
        input=input_text,
    )
    if completed.returncode not in ok_codes:
        stderr = (completed.stderr or "").strip()
        raise GitError(stderr or f"git {' '.join(args)} failed")

    return completed.stdout
