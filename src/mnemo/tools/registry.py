"""Tool registry for the memory tool surface."""

from typing import Any

from mnemo.core.logging import get_logger
from mnemo.core.types import ActionResult
from mnemo.tools.base import Tool

logger = get_logger("tools.registry")


class ToolRegistry:
    """Named collection of tools handed to the agent runtime."""

    def __init__(self):
        self._tools: dict[str, Tool] = {}

    def register(self, tool: Tool) -> None:
        if tool.name in self._tools:
            logger.warning(f"Tool {tool.name} already registered, overwriting")
        self._tools[tool.name] = tool
        logger.debug(f"Registered tool: {tool.name}")

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def get_all(self) -> list[Tool]:
        return list(self._tools.values())

    def has_tool(self, name: str) -> bool:
        return name in self._tools

    def get_context_string(self) -> str:
        """Tool listing for prompt-based tool use."""
        if not self._tools:
            return "No tools available."
        return "\n\n".join(t.to_context_string() for t in self._tools.values())

    def to_openai_tools(self) -> list[dict]:
        return [t.to_openai_function() for t in self._tools.values()]

    def to_anthropic_tools(self) -> list[dict]:
        return [t.to_anthropic_tool() for t in self._tools.values()]

    async def execute(self, name: str, args: dict[str, Any] | None = None) -> ActionResult:
        """Run a tool by name; unknown tools and failures become error results."""
        tool = self._tools.get(name)
        if tool is None:
            return ActionResult(success=False, error=f"Unknown tool: {name}")
        return await tool.execute(args or {})


# Global registry instance
_global_registry: ToolRegistry | None = None


def get_global_registry() -> ToolRegistry:
    """Get or create the global tool registry."""
    global _global_registry
    if _global_registry is None:
        _global_registry = ToolRegistry()
    return _global_registry


def register_tool(tool: Tool, registry: ToolRegistry | None = None) -> None:
    (registry or get_global_registry()).register(tool)
