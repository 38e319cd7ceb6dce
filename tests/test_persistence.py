"""Tests for Markdown daily logs and MEMORY.md."""

import re
from datetime import date, datetime, timezone
from pathlib import Path

from mnemo.memory.persistence import (
    append_daily_memory,
    append_long_term_memory,
    format_entry,
    format_memory_for_prompt,
    load_memory_for_conversation,
    resolve_daily_memory_path,
    update_long_term_memory,
)

ENTRY_RE = re.compile(r"\n\n---\n\n\[\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}Z\]\n\n")


def test_format_entry():
    at = datetime(2026, 1, 28, 2, 17, 13, tzinfo=timezone.utc)
    assert format_entry("hello", at) == "\n\n---\n\n[2026-01-28T02:17:13.000Z]\n\nhello\n"


def test_daily_append_twice_same_day(tmp_path: Path):
    """Two appends on one day land in one file as two separate blocks."""
    first = append_daily_memory(tmp_path, "first note")
    second = append_daily_memory(tmp_path, "second note")

    assert first == second == resolve_daily_memory_path(tmp_path)
    content = first.read_text(encoding="utf-8")
    assert len(ENTRY_RE.findall(content)) == 2
    assert content.index("first note") < content.index("second note")


def test_daily_path_uses_date(tmp_path: Path):
    path = resolve_daily_memory_path(tmp_path, date(2026, 3, 9))
    assert path == tmp_path / "memory" / "2026-03-09.md"


def test_long_term_append_and_replace(tmp_path: Path):
    append_long_term_memory(tmp_path, "likes tea")
    append_long_term_memory(tmp_path, "lives in Oslo")
    content = (tmp_path / "MEMORY.md").read_text(encoding="utf-8")
    assert "likes tea" in content and "lives in Oslo" in content

    update_long_term_memory(tmp_path, "# Memory\n- fresh start\n")
    assert (tmp_path / "MEMORY.md").read_text(encoding="utf-8") == "# Memory\n- fresh start\n"


def test_write_failure_returns_none(tmp_path: Path):
    blocker = tmp_path / "root"
    blocker.write_text("not a directory", encoding="utf-8")
    assert append_daily_memory(blocker, "lost") is None
    assert update_long_term_memory(blocker / "nested", "lost") is None


def test_load_memory_for_conversation(tmp_path: Path):
    today = date(2026, 5, 2)
    resolve_daily_memory_path(tmp_path, today).parent.mkdir(parents=True)
    resolve_daily_memory_path(tmp_path, today).write_text("today log", encoding="utf-8")
    resolve_daily_memory_path(tmp_path, date(2026, 5, 1)).write_text("yesterday log", encoding="utf-8")
    resolve_daily_memory_path(tmp_path, date(2026, 4, 30)).write_text("too old", encoding="utf-8")
    (tmp_path / "MEMORY.md").write_text("long term", encoding="utf-8")

    daily, long_term = load_memory_for_conversation(tmp_path, today=today)

    assert daily == {"2026-05-02": "today log", "2026-05-01": "yesterday log"}
    assert long_term == "long term"


def test_load_memory_missing_files(tmp_path: Path):
    daily, long_term = load_memory_for_conversation(tmp_path)
    assert daily == {}
    assert long_term == ""
    assert (tmp_path / "memory").is_dir()


def test_format_memory_for_prompt():
    text = format_memory_for_prompt({"2026-05-02": "met Sam"}, "prefers tea")
    assert text.startswith("## Long-term Memory (MEMORY.md)\n\nprefers tea")
    assert "## Recent Memory (Daily Logs)" in text
    assert "### 2026-05-02\n\nmet Sam" in text

    assert format_memory_for_prompt({}, "  ") == ""
