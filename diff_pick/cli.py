"""CLI entrypoint for diff-pick."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Coroutine
from dataclasses import dataclass, field
from pathlib import Path
from typing import Annotated, Any, TypeVar

import typer

from diff_pick import __version__
from diff_pick.backend import GitBackend
from diff_pick.config import AppConfig, default_config_template, load_app_config
from diff_pick.diff_parser import FileDiff
from diff_pick.errors import DiffPickError
from diff_pick.git import GitError
from diff_pick.log import setup_logging
from diff_pick.output import (
    build_diff_payload,
    build_status_payload,
    render_file_diff,
    render_json,
    render_patch,
    render_status,
)
from diff_pick.workbench import OperationResult, Workbench

T = TypeVar("T")

app = typer.Typer(
    name="diff-pick",
    no_args_is_help=True,
    help="Select files, hunks or lines of pending changes and commit or discard exactly those.",
)

RepoOption = Annotated[Path, typer.Option(help="Repository path.")]
ConfigOption = Annotated[
    Path | None,
    typer.Option("--config", help="Path to config TOML file."),
]
FileOption = Annotated[
    list[str] | None, typer.Option("--file", help="Select a whole file. Repeatable.")
]
HunkOption = Annotated[
    list[str] | None, typer.Option("--hunk", help="Select a hunk as PATH:INDEX. Repeatable.")
]
LinesOption = Annotated[
    list[str] | None,
    typer.Option(
        "--lines",
        help="Select body lines as PATH:HUNK:OFFSETS, offsets like 2-4,7. Repeatable.",
    ),
]


@dataclass(slots=True)
class SelectionRequest:
    """Selection parsed from command-line options."""

    files: list[str] = field(default_factory=list)
    hunks: list[tuple[str, int]] = field(default_factory=list)
    lines: list[tuple[str, int, list[int]]] = field(default_factory=list)

    def paths(self) -> list[str]:
        ordered: list[str] = []
        candidates = [
            *self.files,
            *(path for path, _ in self.hunks),
            *(path for path, _, _ in self.lines),
        ]
        for path in candidates:
            if path not in ordered:
                ordered.append(path)
        return ordered

    def is_empty(self) -> bool:
        return not (self.files or self.hunks or self.lines)


def version_callback(value: bool) -> None:
    """Print version and exit when --version is provided."""
    if value:
        typer.echo(__version__)
        raise typer.Exit()


@app.callback()
def main_callback(
    ctx: typer.Context,
    version: Annotated[
        bool,
        typer.Option("--version", help="Show version and exit.", callback=version_callback),
    ] = False,
    log_level: Annotated[
        str | None,
        typer.Option("--log-level", help="DEBUG|INFO|WARNING|ERROR (overrides config)."),
    ] = None,
) -> None:
    """Root command callback."""
    _ = version
    ctx.obj = {"log_level": log_level}


@app.command("status")
def status_command(
    ctx: typer.Context,
    repo: RepoOption = Path("."),
    format: Annotated[str | None, typer.Option(help="Output format: human|json.")] = None,
    config_file: ConfigOption = None,
) -> None:
    """List changed paths."""
    app_config = _prepare(ctx, repo, config_file)
    output_format = _output_format(format, app_config)
    workbench = _workbench(repo, app_config)
    entries = _run(workbench.refresh_status())

    if output_format == "json":
        typer.echo(render_json(build_status_payload(entries, workbench.selection)))
    else:
        typer.echo(render_status(entries, workbench.selection))


@app.command("show")
def show_command(
    ctx: typer.Context,
    path: Annotated[str, typer.Argument(help="Changed path to show.")],
    repo: RepoOption = Path("."),
    format: Annotated[str | None, typer.Option(help="Output format: human|json.")] = None,
    config_file: ConfigOption = None,
) -> None:
    """Show the hunks of one path with hunk indices and line offsets."""
    app_config = _prepare(ctx, repo, config_file)
    output_format = _output_format(format, app_config)
    workbench = _workbench(repo, app_config)
    file_diff = _run(workbench.open_file(path))
    if file_diff is None:
        raise typer.Exit(code=1)

    if output_format == "json":
        typer.echo(render_json(build_diff_payload(file_diff, workbench.selection)))
    else:
        typer.echo(render_file_diff(file_diff, workbench.selection))


@app.command("patch")
def patch_command(
    ctx: typer.Context,
    repo: RepoOption = Path("."),
    file: FileOption = None,
    hunk: HunkOption = None,
    lines: LinesOption = None,
    reverse: Annotated[
        bool,
        typer.Option("--reverse", help="Build the patch that discards the selection."),
    ] = False,
    config_file: ConfigOption = None,
) -> None:
    """Print the patch for a selection without applying it."""
    app_config = _prepare(ctx, repo, config_file)
    request = _parse_request(file, hunk, lines)
    workbench = _workbench(repo, app_config)
    _run(_apply_request(workbench, request))

    patch = workbench.build_patch(reverse=reverse)
    if not patch:
        typer.echo("Nothing selected produces a textual patch.", err=True)
        raise typer.Exit(code=1)
    typer.echo(render_patch(patch.rstrip("\n")))


@app.command("commit")
def commit_command(
    ctx: typer.Context,
    summary: Annotated[str, typer.Option("--summary", "-m", help="Commit summary line.")],
    description: Annotated[
        str, typer.Option("--description", "-d", help="Commit description.")
    ] = "",
    repo: RepoOption = Path("."),
    file: FileOption = None,
    hunk: HunkOption = None,
    lines: LinesOption = None,
    config_file: ConfigOption = None,
) -> None:
    """Commit exactly the selected files, hunks and lines."""
    app_config = _prepare(ctx, repo, config_file)
    request = _parse_request(file, hunk, lines)
    if not summary.strip():
        raise typer.BadParameter("summary is required", param_hint="--summary")
    workbench = _workbench(repo, app_config)

    async def flow() -> OperationResult:
        await _apply_request(workbench, request)
        return await workbench.commit(summary, description)

    _report(_run(flow()))


@app.command("discard")
def discard_command(
    ctx: typer.Context,
    repo: RepoOption = Path("."),
    file: FileOption = None,
    hunk: HunkOption = None,
    lines: LinesOption = None,
    yes: Annotated[bool, typer.Option("--yes", help="Do not ask for confirmation.")] = False,
    config_file: ConfigOption = None,
) -> None:
    """Revert exactly the selected files, hunks and lines in the working tree."""
    app_config = _prepare(ctx, repo, config_file)
    request = _parse_request(file, hunk, lines)
    if not yes:
        typer.confirm("Discard the selected changes from the working tree?", abort=True)
    workbench = _workbench(repo, app_config)

    async def flow() -> OperationResult:
        await _apply_request(workbench, request)
        return await workbench.discard()

    _report(_run(flow()))


@app.command("config")
def config_command(
    ctx: typer.Context,
    repo: RepoOption = Path("."),
    format: Annotated[str, typer.Option(help="Output format: human|json.")] = "human",
    config_file: ConfigOption = None,
) -> None:
    """Show resolved configuration."""
    output_format = _choice(format, {"human", "json"}, "--format")
    app_config = _prepare(ctx, repo, config_file)
    payload = app_config.to_dict()

    if output_format == "json":
        typer.echo(json.dumps(payload, sort_keys=True))
        return

    lines = [
        "Resolved configuration:",
        f"- source: {payload['source'] or 'defaults'}",
        f"- format: {payload['format']}",
        f"- context_lines: {payload['context_lines']}",
        f"- backend.partial_patches: {payload['backend']['partial_patches']}",
        f"- drag.threshold_px: {payload['drag']['threshold_px']}",
        f"- logging.level: {payload['logging']['level']}",
        f"- logging.structured: {payload['logging']['structured']}",
    ]
    typer.echo("\n".join(lines))


@app.command("config-init")
def config_init_command(
    out: Annotated[Path, typer.Option(help="Output path for starter config TOML.")] = Path(
        ".diff-pick.toml"
    ),
    force: Annotated[
        bool,
        typer.Option("--force", help="Overwrite if file already exists."),
    ] = False,
) -> None:
    """Create a starter repository config file."""
    out_path = out.resolve()
    if out_path.exists() and not force:
        raise typer.BadParameter(
            f"Refusing to overwrite existing file: {out_path}. Use --force to overwrite."
        )
    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_text(default_config_template(), encoding="utf-8")
    typer.echo(f"Wrote starter config: {out_path}")


@app.command("config-validate")
def config_validate_command(
    repo: RepoOption = Path("."),
    config_file: Annotated[
        Path,
        typer.Option("--config", help="Path to config TOML file to validate."),
    ] = Path(".diff-pick.toml"),
    format: Annotated[str, typer.Option(help="Output format: human|json.")] = "human",
) -> None:
    """Validate a config file."""
    output_format = _choice(format, {"human", "json"}, "--format")
    app_config = _load_config_or_raise(repo, config_file)
    payload = {"ok": True, "source": app_config.source}
    if output_format == "json":
        typer.echo(json.dumps(payload, sort_keys=True))
        return
    typer.echo("\n".join(["Config is valid.", f"- source: {payload['source']}"]))


def main() -> None:
    """Console script entrypoint."""
    app()


def parse_offsets(offsets_text: str) -> list[int]:
    """Parse ``"2-4,7"`` into ``[2, 3, 4, 7]``."""
    offsets: list[int] = []
    for part in offsets_text.split(","):
        part = part.strip()
        if not part:
            continue
        start_text, sep, end_text = part.partition("-")
        try:
            start = int(start_text)
            end = int(end_text) if sep else start
        except ValueError as exc:
            raise ValueError(f"invalid line offsets: {offsets_text!r}") from exc
        if start < 0 or end < start:
            raise ValueError(f"invalid line offsets: {offsets_text!r}")
        offsets.extend(range(start, end + 1))
    if not offsets:
        raise ValueError(f"invalid line offsets: {offsets_text!r}")
    return offsets


def _parse_request(
    files: list[str] | None, hunks: list[str] | None, lines: list[str] | None
) -> SelectionRequest:
    request = SelectionRequest(files=list(files or []))
    for value in hunks or []:
        path, sep, index_text = value.rpartition(":")
        if not sep or not path or not index_text.isdigit():
            raise typer.BadParameter(f"expected PATH:INDEX, got {value!r}", param_hint="--hunk")
        request.hunks.append((path, int(index_text)))
    for value in lines or []:
        head, sep, offsets_text = value.rpartition(":")
        path, sep2, index_text = head.rpartition(":")
        if not sep or not sep2 or not path or not index_text.isdigit():
            raise typer.BadParameter(
                f"expected PATH:HUNK:OFFSETS, got {value!r}", param_hint="--lines"
            )
        try:
            offsets = parse_offsets(offsets_text)
        except ValueError as exc:
            raise typer.BadParameter(str(exc), param_hint="--lines") from exc
        request.lines.append((path, int(index_text), offsets))
    if request.is_empty():
        raise typer.BadParameter("select something with --file, --hunk or --lines")
    return request


async def _apply_request(workbench: Workbench, request: SelectionRequest) -> None:
    await workbench.refresh_status()
    changed = set(workbench.visible_paths())
    diffs: dict[str, FileDiff] = {}
    for path in request.paths():
        if path not in changed:
            raise typer.BadParameter(f"not a changed path: {path}")
        diffs[path] = await workbench.load_diff(path)

    picked = [(path, index, "--hunk") for path, index in request.hunks]
    picked.extend((path, index, "--lines") for path, index, _ in request.lines)
    for path, index, option in picked:
        if diffs[path].hunk(index) is None:
            raise typer.BadParameter(
                f"{path} has {len(diffs[path].hunks)} hunk(s), no hunk {index}",
                param_hint=option,
            )

    selection = workbench.selection
    for path in request.files:
        selection.set_file_selected(path, True)
    for path, index in request.hunks:
        selection.toggle_hunk(path, index, True)
    for path, index, offsets in request.lines:
        selection.toggle_lines(path, index, offsets, True)


def _report(result: OperationResult) -> None:
    if not result.applied:
        typer.secho(result.notice or "Nothing applied.", fg="yellow", err=True)
        raise typer.Exit(code=1)
    joined = ", ".join(result.paths)
    if result.revision:
        typer.echo(f"Committed {result.revision[:12]}: {joined}")
    else:
        typer.echo(f"Discarded selected changes in: {joined}")


def _run(coro: Coroutine[Any, Any, T]) -> T:
    try:
        return asyncio.run(coro)
    except (DiffPickError, GitError) as exc:
        typer.secho(f"error: {exc}", fg="red", err=True)
        raise typer.Exit(code=1) from exc


def _prepare(ctx: typer.Context, repo: Path, config_file: Path | None) -> AppConfig:
    app_config = _load_config_or_raise(repo, config_file)
    level = app_config.logging.level
    override = (ctx.obj or {}).get("log_level")
    if override:
        level = _choice(override, {"debug", "info", "warning", "error"}, "--log-level").upper()
    setup_logging(level, structured=app_config.logging.structured)
    return app_config


def _workbench(repo: Path, app_config: AppConfig) -> Workbench:
    backend = GitBackend(
        repo.resolve(),
        context_lines=app_config.context_lines,
        partial_patches=app_config.backend.partial_patches,
    )
    return Workbench(
        backend,
        drag_threshold_px=app_config.drag.threshold_px,
        partial_patches=app_config.backend.partial_patches,
    )


def _output_format(value: str | None, app_config: AppConfig) -> str:
    return _choice(value or app_config.format, {"human", "json"}, "--format")


def _load_config_or_raise(repo: Path, config_file: Path | None = None) -> AppConfig:
    try:
        return load_app_config(repo, config_path=config_file)
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="config") from exc


def _choice(value: str, allowed: set[str], field_name: str) -> str:
    resolved = value.lower()
    if resolved not in allowed:
        choices = ", ".join(sorted(allowed))
        raise typer.BadParameter(f"{field_name} must be one of: {choices}", param_hint=field_name)
    return resolved
