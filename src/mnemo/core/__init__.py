"""
Core module - configuration, logging, shared types.

Components:
- config: Settings management via pydantic-settings (+ YAML file)
- types: Result shapes shared with the agent runtime
- logging: Structured logging setup
"""

from mnemo.core.config import MemorySearchConfig, Settings, load_settings
from mnemo.core.types import ActionResult

__all__ = ["ActionResult", "MemorySearchConfig", "Settings", "load_settings"]
