"""Tests for memory file discovery."""

import os
from pathlib import Path

import pytest

from mnemo.index.chunking import hash_text
from mnemo.index.files import (
    build_file_entry,
    list_conversation_files,
    list_memory_files,
    relative_memory_path,
)


def _write(path: Path, text: str = "x") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


def test_lists_memory_files_in_order(tmp_path: Path):
    _write(tmp_path / "MEMORY.md")
    _write(tmp_path / "memory" / "2026-01-02.md")
    _write(tmp_path / "memory" / "2026-01-01.md")
    _write(tmp_path / "memory" / "topics" / "travel.md")
    _write(tmp_path / "memory" / "notes.txt")
    _write(tmp_path / "README.md")

    files = list_memory_files(tmp_path)

    assert [p.relative_to(tmp_path).as_posix() for p in files] == [
        "MEMORY.md",
        "memory/2026-01-01.md",
        "memory/2026-01-02.md",
        "memory/topics/travel.md",
    ]


def test_extra_paths_files_and_dirs(tmp_path: Path):
    _write(tmp_path / "docs" / "a.md")
    _write(tmp_path / "docs" / "b.txt")
    single = _write(tmp_path / "outside" / "single.md")

    files = list_memory_files(tmp_path, extra_paths=["docs", str(single), "  ", "docs"])

    assert [p.name for p in files] == ["a.md", "single.md"]


@pytest.mark.skipif(not hasattr(os, "symlink"), reason="symlinks unsupported")
def test_symlinks_are_skipped(tmp_path: Path):
    real = _write(tmp_path / "memory" / "real.md")
    try:
        os.symlink(real, tmp_path / "memory" / "link.md")
        os.symlink(tmp_path / "memory", tmp_path / "memory" / "loop")
    except OSError:
        pytest.skip("cannot create symlinks here")

    files = list_memory_files(tmp_path)

    assert [p.name for p in files] == ["real.md"]


def test_same_file_listed_once(tmp_path: Path):
    _write(tmp_path / "memory" / "a.md")
    files = list_memory_files(tmp_path, extra_paths=["memory"])
    assert len(files) == 1


def test_missing_workspace_is_empty(tmp_path: Path):
    assert list_memory_files(tmp_path / "nope") == []


def test_conversation_files(tmp_path: Path):
    _write(tmp_path / "conversations" / "c1" / "2026-01-01.md")
    _write(tmp_path / "conversations" / "c2.md")
    files = list_conversation_files(tmp_path)
    assert [p.relative_to(tmp_path).as_posix() for p in files] == [
        "conversations/c1/2026-01-01.md",
        "conversations/c2.md",
    ]


def test_build_file_entry(tmp_path: Path):
    path = _write(tmp_path / "memory" / "day.md", "hello memory")
    entry = build_file_entry(path, tmp_path)

    assert entry.path == "memory/day.md"
    assert entry.hash == hash_text("hello memory")
    assert entry.size == len("hello memory")
    assert entry.mtime_ms > 0


def test_relative_memory_path(tmp_path: Path):
    assert relative_memory_path(tmp_path / "memory" / "a.md", tmp_path) == "memory/a.md"
    assert relative_memory_path(tmp_path / "MEMORY.md", tmp_path) == "MEMORY.md"
