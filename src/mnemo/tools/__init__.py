"""Tool surface through which an agent runtime reads and writes memory."""

from mnemo.tools.base import Tool, ToolParameter, tool
from mnemo.tools.memory import register_memory_tools, set_memory_manager
from mnemo.tools.registry import ToolRegistry, get_global_registry

__all__ = [
    "Tool",
    "ToolParameter",
    "ToolRegistry",
    "get_global_registry",
    "register_memory_tools",
    "set_memory_manager",
    "tool",
]
