"""Tests for the command line entry point."""

import json
from pathlib import Path

import pytest

from mnemo.cli import main


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    path = tmp_path / "mnemo.yaml"
    path.write_text(
        f"dataDir: {tmp_path / 'data'}\n"
        "agentId: tester\n"
        "memorySearch:\n"
        "  provider: none\n",
        encoding="utf-8",
    )
    return path


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    root = tmp_path / "data" / "workspace"
    root.mkdir(parents=True)
    (root / "MEMORY.md").write_text(
        "Project deadline is in March.\nUser prefers oat milk coffee.\nFavourite city is Kyoto.",
        encoding="utf-8",
    )
    return root


def test_no_command_prints_usage(capsys):
    assert main([]) == 1
    assert "Usage: mnemo" in capsys.readouterr().out


def test_unknown_command(config_file: Path, capsys):
    assert main(["--config", str(config_file), "dance"]) == 1
    assert "Unknown command: dance" in capsys.readouterr().out


def test_config_option_requires_value(capsys):
    assert main(["status", "--config"]) == 1
    assert "--config requires a value" in capsys.readouterr().out


def test_missing_config_file(tmp_path: Path, capsys):
    assert main(["--config", str(tmp_path / "nope.yaml"), "status"]) == 1
    assert "Error:" in capsys.readouterr().out


def test_init_creates_directories(config_file: Path, tmp_path: Path):
    assert main(["--config", str(config_file), "init"]) == 0
    assert (tmp_path / "data" / "agents" / "tester").is_dir()
    assert (tmp_path / "data" / "workspace" / "memory").is_dir()


def test_sync_search_get_status(config_file: Path, workspace: Path, capsys):
    args = ["--config", str(config_file)]

    assert main([*args, "sync"]) == 0
    assert "Indexed 1" in capsys.readouterr().out

    assert main([*args, "search", "Kyoto"]) == 0
    assert "MEMORY.md:1-3" in capsys.readouterr().out

    assert main([*args, "get", "MEMORY.md", "2", "1"]) == 0
    assert capsys.readouterr().out.strip() == "User prefers oat milk coffee."

    assert main([*args, "status"]) == 0
    status = json.loads(capsys.readouterr().out)
    assert status["files"] == 1
    assert status["provider"] == "none"
    assert status["dirty"] is False


def test_get_errors(config_file: Path, workspace: Path, capsys):
    args = ["--config", str(config_file)]
    assert main([*args, "get", "MEMORY.md", "two"]) == 1
    assert main([*args, "get", "../escape.md"]) == 1
    assert "Error:" in capsys.readouterr().out


def test_search_disabled(tmp_path: Path, capsys):
    path = tmp_path / "off.yaml"
    path.write_text(f"dataDir: {tmp_path / 'data'}\nmemorySearch:\n  enabled: false\n", encoding="utf-8")
    assert main(["--config", str(path), "search", "anything"]) == 1
    assert "disabled" in capsys.readouterr().out
