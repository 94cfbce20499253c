"""Tests for config discovery and validation."""

from __future__ import annotations

import tomllib
from pathlib import Path

import pytest

from diff_pick.config import AppConfig, default_config_template, load_app_config


def _repo(tmp_path: Path) -> Path:
    repo = tmp_path / "repo"
    repo.mkdir()
    return repo


def test_defaults_without_config_files(tmp_path: Path) -> None:
    config = load_app_config(_repo(tmp_path))

    assert config == AppConfig()
    assert config.to_dict() == {
        "format": "human",
        "context_lines": 3,
        "backend": {"partial_patches": True},
        "drag": {"threshold_px": 4},
        "logging": {"level": "WARNING", "structured": False},
        "source": None,
    }


def test_dot_file_wins_over_pyproject(tmp_path: Path) -> None:
    repo = _repo(tmp_path)
    (repo / "pyproject.toml").write_text(
        "\n".join(["[tool.diff_pick]", "context_lines = 9"]), encoding="utf-8"
    )
    (repo / ".diff-pick.toml").write_text(
        "\n".join(
            [
                'format = "json"',
                "context_lines = 1",
                "",
                "[backend]",
                "partial_patches = false",
                "",
                "[drag]",
                "threshold_px = 8",
                "",
                "[logging]",
                'level = "debug"',
                "structured = true",
            ]
        ),
        encoding="utf-8",
    )

    config = load_app_config(repo)

    assert config.format == "json"
    assert config.context_lines == 1
    assert config.backend.partial_patches is False
    assert config.drag.threshold_px == 8
    assert config.logging.level == "DEBUG"
    assert config.logging.structured is True
    assert config.source == str(repo / ".diff-pick.toml")


def test_pyproject_hyphenated_tool_key(tmp_path: Path) -> None:
    repo = _repo(tmp_path)
    (repo / "pyproject.toml").write_text(
        "\n".join(
            [
                '[tool."diff-pick"]',
                "context_lines = 0",
                "",
                '[tool."diff-pick".drag]',
                "threshold_px = 0",
            ]
        ),
        encoding="utf-8",
    )

    config = load_app_config(repo)

    assert config.context_lines == 0
    assert config.drag.threshold_px == 0
    assert config.source == str(repo / "pyproject.toml")


def test_pyproject_without_tool_section_uses_defaults(tmp_path: Path) -> None:
    repo = _repo(tmp_path)
    (repo / "pyproject.toml").write_text('[project]\nname = "demo"\n', encoding="utf-8")

    assert load_app_config(repo).source is None


def test_explicit_relative_config_path(tmp_path: Path) -> None:
    repo = _repo(tmp_path)
    (repo / "custom.toml").write_text("context_lines = 5\n", encoding="utf-8")

    config = load_app_config(repo, config_path=Path("custom.toml"))

    assert config.context_lines == 5
    assert config.source == str(repo / "custom.toml")


def test_missing_explicit_config_raises(tmp_path: Path) -> None:
    with pytest.raises(ValueError, match="does not exist"):
        load_app_config(_repo(tmp_path), config_path=Path("nope.toml"))


@pytest.mark.parametrize(
    ("body", "message"),
    [
        ("context_lines = -1\n", "context_lines must be >= 0"),
        ('context_lines = "3"\n', "context_lines must be an integer"),
        ("context_lines = true\n", "context_lines must be an integer"),
        ('format = "xml"\n', "format must be one of"),
        ("[drag]\nthreshold_px = -2\n", "drag.threshold_px must be >= 0"),
        ('[backend]\npartial_patches = "yes"\n', "backend.partial_patches must be a boolean"),
        ('[logging]\nlevel = "LOUD"\n', "logging.level must be one of"),
        ('backend = "git"\n', "backend must be a table"),
        ("context_lines = \n", "Invalid TOML"),
    ],
)
def test_invalid_values_are_rejected(tmp_path: Path, body: str, message: str) -> None:
    repo = _repo(tmp_path)
    (repo / ".diff-pick.toml").write_text(body, encoding="utf-8")

    with pytest.raises(ValueError, match=message):
        load_app_config(repo)


def test_template_loads_as_defaults(tmp_path: Path) -> None:
    repo = _repo(tmp_path)
    template = default_config_template()
    tomllib.loads(template)
    (repo / ".diff-pick.toml").write_text(template, encoding="utf-8")

    config = load_app_config(repo)

    assert config.to_dict() | {"source": None} == AppConfig().to_dict()
