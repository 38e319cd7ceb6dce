"""
Sleep module - context compression and memory consolidation.

Components:
- trigger: decides when the context is full enough to sleep
- summarizer: compression strategies (sliding window, importance, progressive, hybrid)
- consolidator: classifies messages into daily-log and long-term memories
- engine: runs the whole pipeline for one conversation
"""

from mnemo.sleep.config import SleepConfig, resolve_sleep_config
from mnemo.sleep.engine import SleepEngine, SleepResult
from mnemo.sleep.types import ContextMessage, ConversationEntry

__all__ = [
    "ContextMessage",
    "ConversationEntry",
    "SleepConfig",
    "SleepEngine",
    "SleepResult",
    "resolve_sleep_config",
]
