"""Markdown memory files: daily logs and long-term MEMORY.md.

Entries are appended, never rewritten (except replace mode for MEMORY.md):

    \\n\\n---\\n\\n[2026-01-28T02:17:13.000Z]\\n\\n{content}\\n
"""

from datetime import date, datetime, timedelta, timezone
from pathlib import Path

from mnemo.core.logging import get_logger

logger = get_logger("memory.persistence")

LONG_TERM_FILENAME = "MEMORY.md"
MEMORY_DIRNAME = "memory"


def _iso_timestamp(at: datetime | None = None) -> str:
    at = (at or datetime.now(timezone.utc)).astimezone(timezone.utc)
    return at.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def format_entry(content: str, at: datetime | None = None) -> str:
    return f"\n\n---\n\n[{_iso_timestamp(at)}]\n\n{content}\n"


def resolve_memory_dir(root: Path) -> Path:
    return root / MEMORY_DIRNAME


def resolve_daily_memory_path(root: Path, day: date | None = None) -> Path:
    day = day or date.today()
    return resolve_memory_dir(root) / f"{day.isoformat()}.md"


def resolve_long_term_memory_path(root: Path) -> Path:
    return root / LONG_TERM_FILENAME


def _append(path: Path, content: str, at: datetime | None) -> Path | None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "a", encoding="utf-8") as f:
            f.write(format_entry(content, at))
    except OSError as e:
        logger.error(f"Failed to append memory to {path}: {e}")
        return None
    return path


def append_daily_memory(root: Path, content: str, at: datetime | None = None) -> Path | None:
    """Append an entry to today's daily log, returning the file written."""
    day = at.astimezone().date() if at else None
    return _append(resolve_daily_memory_path(root, day), content, at)


def append_long_term_memory(root: Path, content: str, at: datetime | None = None) -> Path | None:
    """Append an entry to MEMORY.md, returning the file written."""
    return _append(resolve_long_term_memory_path(root), content, at)


def update_long_term_memory(root: Path, content: str) -> Path | None:
    """Replace MEMORY.md entirely."""
    path = resolve_long_term_memory_path(root)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
    except OSError as e:
        logger.error(f"Failed to update long-term memory: {e}")
        return None
    return path


def _read(path: Path) -> str | None:
    if not path.exists():
        return None
    try:
        return path.read_text(encoding="utf-8")
    except OSError as e:
        logger.warning(f"Failed to read memory file {path}: {e}")
        return None


def load_memory_for_conversation(
    root: Path, today: date | None = None
) -> tuple[dict[str, str], str]:
    """Load today + yesterday daily logs and the long-term file.

    Returns:
        (daily logs keyed by YYYY-MM-DD, long-term content)
    """
    resolve_memory_dir(root).mkdir(parents=True, exist_ok=True)
    today = today or date.today()

    daily_logs: dict[str, str] = {}
    for day in (today, today - timedelta(days=1)):
        content = _read(resolve_daily_memory_path(root, day))
        if content is not None:
            daily_logs[day.isoformat()] = content

    long_term = _read(resolve_long_term_memory_path(root)) or ""
    return daily_logs, long_term


def format_memory_for_prompt(daily_logs: dict[str, str], long_term_memory: str) -> str:
    """Render memory files for system prompt injection."""
    parts = []

    if long_term_memory.strip():
        parts.append(f"## Long-term Memory (MEMORY.md)\n\n{long_term_memory}")

    daily_parts = [
        f"### {day}\n\n{content}" for day, content in daily_logs.items() if content.strip()
    ]
    if daily_parts:
        parts.append("## Recent Memory (Daily Logs)\n\n" + "\n\n".join(daily_parts))

    return "\n\n---\n\n".join(parts)
