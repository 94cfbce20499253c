"""Error types raised by the workbench."""

from __future__ import annotations


class DiffPickError(Exception):
    """Base class for partial-commit failures surfaced to the user."""


class EmptySelectionError(DiffPickError):
    """Commit or discard was requested with nothing selected."""


class PartialSelectionUnsupportedError(DiffPickError):
    """The backend cannot stage sub-file patches but the selection needs one."""

    def __init__(self, paths: list[str]) -> None:
        self.paths = paths
        joined = ", ".join(paths)
        super().__init__(
            "The active backend cannot commit partial files "
            f"(partially selected: {joined}). Select whole files or enable partial patches."
        )


class BackendRejectedError(DiffPickError):
    """The backend refused to apply a patch; ``reason`` is its message verbatim."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(reason)


class OperationInProgressError(DiffPickError):
    """A commit or discard for the same selection is still outstanding."""
