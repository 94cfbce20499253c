"""Tests for the commit/discard workflow."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence

import pytest

from diff_pick.backend import ApplyResult, Capabilities, ChangedPath, ChangeKind, PatchMode
from diff_pick.errors import (
    BackendRejectedError,
    EmptySelectionError,
    OperationInProgressError,
    PartialSelectionUnsupportedError,
)
from diff_pick.patch import synthesize
from diff_pick.range_select import ClickAction, Modifier
from diff_pick.selection import TriState
from diff_pick.workbench import STALE_SELECTION_NOTICE, Workbench, compose_commit_message
from tests.helpers_diff import FIXTURE_DIR


def _fixture_lines(name: str) -> list[str]:
    return (FIXTURE_DIR / name).read_text(encoding="utf-8").splitlines()


class FakeBackend:
    """In-memory backend recording every apply call."""

    def __init__(
        self,
        diffs: dict[str, list[str]],
        *,
        partial_patches: bool = True,
        result: ApplyResult | None = None,
    ) -> None:
        self.diffs = diffs
        self.status = [ChangedPath(path, ChangeKind.MODIFIED) for path in diffs]
        self.partial_patches = partial_patches
        self.result = result or ApplyResult(ok=True, revision="0123456789abcdef")
        self.applied: list[tuple[str, PatchMode, str, tuple[str, ...]]] = []
        self.diff_requests: list[str] = []
        self.gates: dict[str, asyncio.Event] = {}
        self.apply_gate: asyncio.Event | None = None

    def capabilities(self) -> Capabilities:
        return Capabilities(partial_patches=self.partial_patches)

    async def get_diff_lines(self, path: str) -> list[str]:
        self.diff_requests.append(path)
        gate = self.gates.get(path)
        if gate is not None:
            await gate.wait()
        return list(self.diffs.get(path, []))

    async def list_changed_paths(self) -> list[ChangedPath]:
        return list(self.status)

    async def apply_patch(
        self,
        patch_text: str,
        mode: PatchMode,
        *,
        message: str = "",
        paths: Sequence[str] = (),
    ) -> ApplyResult:
        self.applied.append((patch_text, mode, message, tuple(paths)))
        if self.apply_gate is not None:
            await self.apply_gate.wait()
        return self.result


def _backend(**kwargs) -> FakeBackend:
    return FakeBackend(
        {
            "src/app.py": _fixture_lines("simple.diff"),
            "data/lines.txt": _fixture_lines("multi_hunk.diff"),
        },
        **kwargs,
    )


def test_late_diff_reply_for_previous_file_is_dropped() -> None:
    backend = _backend()
    workbench = Workbench(backend)

    async def flow():
        backend.gates["src/app.py"] = asyncio.Event()
        first = asyncio.create_task(workbench.open_file("src/app.py"))
        await asyncio.sleep(0)
        second = await workbench.open_file("data/lines.txt")
        backend.gates["src/app.py"].set()
        return await first, second

    first, second = asyncio.run(flow())

    assert first is None
    assert second is not None
    assert workbench.selection.active_path == "data/lines.txt"
    assert workbench.selection.diff_for("src/app.py") is None


def test_commit_with_nothing_selected_never_calls_backend() -> None:
    backend = _backend()
    workbench = Workbench(backend)

    with pytest.raises(EmptySelectionError):
        asyncio.run(workbench.commit("Summary"))

    assert backend.applied == []


def test_blank_summary_is_rejected() -> None:
    workbench = Workbench(_backend())
    workbench.selection.set_file_selected("src/app.py", True)

    with pytest.raises(ValueError, match="summary"):
        asyncio.run(workbench.commit("   "))


def test_partial_selection_blocked_when_backend_lacks_support() -> None:
    backend = _backend(partial_patches=False)
    workbench = Workbench(backend)

    async def flow():
        await workbench.open_file("data/lines.txt")
        workbench.selection.toggle_hunk("data/lines.txt", 0, True)
        await workbench.commit("Partial")

    with pytest.raises(PartialSelectionUnsupportedError) as excinfo:
        asyncio.run(flow())

    assert excinfo.value.paths == ["data/lines.txt"]
    assert "data/lines.txt" in str(excinfo.value)
    assert backend.applied == []


def test_partial_selection_blocked_when_config_disables_it() -> None:
    workbench = Workbench(_backend(), partial_patches=False)

    async def flow():
        await workbench.open_file("data/lines.txt")
        workbench.selection.toggle_lines("data/lines.txt", 1, [4], True)
        await workbench.discard()

    with pytest.raises(PartialSelectionUnsupportedError):
        asyncio.run(flow())


def test_whole_files_travel_by_path_without_partial_support() -> None:
    backend = _backend(partial_patches=False)
    workbench = Workbench(backend)
    workbench.selection.set_file_selected("data/lines.txt", True)

    result = asyncio.run(workbench.commit("Whole"))

    assert result.applied is True
    assert backend.applied == [("", PatchMode.COMMIT, "Whole", ("data/lines.txt",))]


def test_backend_rejection_reason_is_surfaced_verbatim() -> None:
    reason = "error: patch failed: src/app.py:1\nerror: src/app.py: patch does not apply"
    backend = _backend(result=ApplyResult(ok=False, reason=reason))
    workbench = Workbench(backend)
    workbench.selection.set_file_selected("src/app.py", True)

    with pytest.raises(BackendRejectedError) as excinfo:
        asyncio.run(workbench.commit("Summary"))

    assert excinfo.value.reason == reason
    assert str(excinfo.value) == reason
    assert len(backend.applied) == 1
    assert workbench.selection.is_file_selected("src/app.py") is True
    assert workbench.is_busy(PatchMode.COMMIT) is False


def test_second_commit_while_first_is_outstanding_is_refused() -> None:
    backend = _backend()
    workbench = Workbench(backend)
    workbench.selection.set_file_selected("src/app.py", True)

    async def flow():
        backend.apply_gate = asyncio.Event()
        first = asyncio.create_task(workbench.commit("First"))
        await asyncio.sleep(0)
        assert workbench.is_busy(PatchMode.COMMIT) is True
        with pytest.raises(OperationInProgressError):
            await workbench.commit("Second")
        backend.apply_gate.set()
        return await first

    result = asyncio.run(flow())

    assert result.applied is True
    assert len(backend.applied) == 1
    assert workbench.is_busy(PatchMode.COMMIT) is False


def test_stale_selection_yields_notice_without_backend_call() -> None:
    backend = _backend()
    workbench = Workbench(backend)

    async def flow():
        await workbench.refresh_status()
        workbench.selection.toggle_hunk("src/app.py", 5, True)
        return await workbench.commit("Stale")

    result = asyncio.run(flow())

    assert result.applied is False
    assert result.notice == STALE_SELECTION_NOTICE
    assert backend.applied == []


def test_successful_commit_sends_patch_and_clears_selection() -> None:
    backend = _backend()
    workbench = Workbench(backend)

    async def flow():
        await workbench.refresh_status()
        file_diff = await workbench.open_file("data/lines.txt")
        workbench.selection.toggle_lines("data/lines.txt", 1, [3, 4], True)
        expected = synthesize("data/lines.txt", file_diff, workbench.selection)
        result = await workbench.commit("Shout", "  Only line fifteen.  ")
        return expected, result

    expected, result = asyncio.run(flow())

    assert result.applied is True
    assert result.revision == "0123456789abcdef"
    assert result.paths == ["data/lines.txt"]
    assert backend.applied == [(expected, PatchMode.COMMIT, "Shout\n\nOnly line fifteen.", ())]
    assert workbench.selection.has_selection() is False
    assert workbench.selection.diff_for("data/lines.txt") is None


def test_unloaded_selected_files_are_fetched_and_ordered_by_status() -> None:
    backend = _backend()
    workbench = Workbench(backend)

    async def flow():
        await workbench.refresh_status()
        workbench.selection.set_file_selected("data/lines.txt", True)
        workbench.selection.set_file_selected("src/app.py", True)
        return await workbench.commit("Both")

    asyncio.run(flow())

    assert backend.diff_requests == ["src/app.py", "data/lines.txt"]
    patch = backend.applied[0][0]
    headers = [line for line in patch.splitlines() if line.startswith("diff --git")]
    assert headers == [
        "diff --git a/src/app.py b/src/app.py",
        "diff --git a/data/lines.txt b/data/lines.txt",
    ]


def test_discard_sends_working_tree_frame_patch() -> None:
    backend = _backend()
    workbench = Workbench(backend)

    async def flow():
        file_diff = await workbench.open_file("data/lines.txt")
        workbench.selection.toggle_lines("data/lines.txt", 1, [5], True)
        expected = synthesize("data/lines.txt", file_diff, workbench.selection, reverse=True)
        result = await workbench.discard()
        return expected, result

    expected, result = asyncio.run(flow())

    assert result.applied is True
    assert backend.applied == [(expected, PatchMode.DISCARD, "", ())]


def test_refresh_status_prunes_vanished_paths() -> None:
    backend = _backend()
    workbench = Workbench(backend)
    workbench.selection.set_file_selected("gone.txt", True)
    workbench.selection.set_file_selected("src/app.py", True)

    asyncio.run(workbench.refresh_status())

    assert workbench.selection.paths_with_selection() == ["src/app.py"]


def test_visible_paths_feed_drag_selection() -> None:
    workbench = Workbench(_backend())
    asyncio.run(workbench.refresh_status())

    rows = workbench.visible_paths("APP")
    assert rows == ["src/app.py"]

    workbench.controller.pointer_down(workbench.visible_paths(), 0)
    workbench.controller.pointer_move(1)
    workbench.controller.pointer_up()

    assert workbench.selection.tristate("data/lines.txt") is TriState.FULL
    assert workbench.controller.click("src/app.py", modifier=Modifier.NONE) is ClickAction.VIEW


def test_compose_commit_message() -> None:
    assert compose_commit_message(" Fix parser ") == "Fix parser"
    assert compose_commit_message("Fix parser", "Details.\n") == "Fix parser\n\nDetails."
