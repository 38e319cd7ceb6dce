"""
Memory module - typed agent memory.

Kinds:
- working: single-slot scratch buffer with a TTL
- episodic: timestamped events
- semantic: facts and preferences
- procedural: trigger -> action patterns that improve with use
- prospective: future intentions and reminders
- emotional: affect tags attached to other memories

Storage: one JSON file per kind per agent, plus Markdown daily logs and MEMORY.md
"""

from mnemo.memory.manager import MemoryManager

__all__ = ["MemoryManager"]
