"""Configuration loading for diff-pick."""

from __future__ import annotations

import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

CONFIG_FILENAMES = (".diff-pick.toml", "diff-pick.toml")
PYPROJECT_FILENAME = "pyproject.toml"
PYPROJECT_TOOL_KEYS = ("diff_pick", "diff-pick")
LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR"}


@dataclass(slots=True)
class BackendConfig:
    """Backend behaviour switches."""

    partial_patches: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {"partial_patches": self.partial_patches}


@dataclass(slots=True)
class DragConfig:
    """Pointer-drag tuning."""

    threshold_px: int = 4

    def to_dict(self) -> dict[str, Any]:
        return {"threshold_px": self.threshold_px}


@dataclass(slots=True)
class LoggingConfig:
    """Log output settings."""

    level: str = "WARNING"
    structured: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {"level": self.level, "structured": self.structured}


@dataclass(slots=True)
class AppConfig:
    """Runtime configuration values resolved from project files."""

    format: str = "human"
    context_lines: int = 3
    backend: BackendConfig = field(default_factory=BackendConfig)
    drag: DragConfig = field(default_factory=DragConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    source: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "format": self.format,
            "context_lines": self.context_lines,
            "backend": self.backend.to_dict(),
            "drag": self.drag.to_dict(),
            "logging": self.logging.to_dict(),
            "source": self.source,
        }


def load_app_config(repo: Path, config_path: Path | None = None) -> AppConfig:
    """Resolve the config for ``repo``.

    An explicit ``config_path`` (relative paths are taken from the repo) must
    exist. Otherwise the first of ``.diff-pick.toml``, ``diff-pick.toml`` and
    a ``[tool.diff_pick]`` table in ``pyproject.toml`` wins; with none of
    them the defaults apply.
    """
    repo = repo.resolve()
    if config_path is not None:
        explicit = config_path if config_path.is_absolute() else repo / config_path
        if not explicit.exists():
            raise ValueError(f"Config file does not exist: {explicit}")
        return _from_mapping(_config_section(explicit), source=str(explicit))

    for candidate in _discovery_order(repo):
        section = _config_section(candidate)
        if candidate.name == PYPROJECT_FILENAME and not section:
            continue
        return _from_mapping(section, source=str(candidate))
    return AppConfig()


def default_config_template() -> str:
    """Return a starter config template."""
    return "\n".join(
        [
            'format = "human"',
            "context_lines = 3",
            "",
            "[backend]",
            "# Set to false for backends that can only commit whole files.",
            "partial_patches = true",
            "",
            "[drag]",
            "threshold_px = 4",
            "",
            "[logging]",
            'level = "WARNING"',
            "structured = false",
            "",
        ]
    )


def _discovery_order(repo: Path) -> list[Path]:
    candidates = [repo / name for name in (*CONFIG_FILENAMES, PYPROJECT_FILENAME)]
    return [path for path in candidates if path.is_file()]


def _config_section(path: Path) -> dict[str, Any]:
    """Settings table of one TOML file.

    ``pyproject.toml`` only counts through its tool table; a dedicated file
    may use one too, or keep the settings at top level.
    """
    try:
        with path.open("rb") as handle:
            document = tomllib.load(handle)
    except tomllib.TOMLDecodeError as exc:
        raise ValueError(f"Invalid TOML in {path}: {exc}") from exc

    tool = document.get("tool")
    if isinstance(tool, dict):
        for key in PYPROJECT_TOOL_KEYS:
            if isinstance(tool.get(key), dict):
                return tool[key]
    if path.name == PYPROJECT_FILENAME:
        return {}
    return document


def _from_mapping(mapping: dict[str, Any], *, source: str) -> AppConfig:
    backend_mapping = _as_table(mapping.get("backend"), "backend")
    drag_mapping = _as_table(mapping.get("drag"), "drag")
    logging_mapping = _as_table(mapping.get("logging"), "logging")

    context_lines = _as_int(mapping.get("context_lines", 3), "context_lines")
    if context_lines < 0:
        raise ValueError("context_lines must be >= 0")

    threshold = _as_int(drag_mapping.get("threshold_px", 4), "drag.threshold_px")
    if threshold < 0:
        raise ValueError("drag.threshold_px must be >= 0")

    level = str(logging_mapping.get("level", "WARNING")).upper()
    if level not in LOG_LEVELS:
        choices = ", ".join(sorted(LOG_LEVELS))
        raise ValueError(f"logging.level must be one of: {choices}")

    return AppConfig(
        format=_as_choice(mapping.get("format", "human"), {"human", "json"}, "format"),
        context_lines=context_lines,
        backend=BackendConfig(
            partial_patches=_as_bool(
                backend_mapping.get("partial_patches", True), "backend.partial_patches"
            )
        ),
        drag=DragConfig(threshold_px=threshold),
        logging=LoggingConfig(
            level=level,
            structured=_as_bool(logging_mapping.get("structured", False), "logging.structured"),
        ),
        source=source,
    )


def _as_table(value: Any, field_name: str) -> dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError(f"{field_name} must be a table/object")
    return value


def _as_choice(raw: Any, allowed: set[str], field_name: str) -> str:
    value = str(raw).lower()
    if value not in allowed:
        choices = ", ".join(sorted(allowed))
        raise ValueError(f"{field_name} must be one of: {choices}")
    return value


def _as_int(raw: Any, field_name: str) -> int:
    if isinstance(raw, bool) or not isinstance(raw, int):
        raise ValueError(f"{field_name} must be an integer")
    return raw


def _as_bool(raw: Any, field_name: str) -> bool:
    if not isinstance(raw, bool):
        raise ValueError(f"{field_name} must be a boolean")
    return raw
