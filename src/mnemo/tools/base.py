"""Tool definitions and the @tool decorator."""

import inspect
import types
import typing
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, TypeVar

from mnemo.core.logging import get_logger
from mnemo.core.types import ActionResult
from mnemo.core.typing import ToolSpec

logger = get_logger("tools.base")

_JSON_TYPES: dict[Any, str] = {
    str: "string",
    int: "integer",
    float: "number",
    bool: "boolean",
    dict: "object",
    list: "array",
}


@dataclass
class ToolParameter:
    """Definition of a tool parameter."""

    name: str
    type: str  # JSON schema type
    description: str
    required: bool = True
    default: Any = None


@dataclass
class Tool:
    """Definition of a callable tool."""

    name: str
    description: str
    parameters: list[ToolParameter]
    executor: Callable[..., Awaitable[ActionResult]]
    examples: list[str] = field(default_factory=list)

    def to_context_string(self) -> str:
        """Format tool for LLM context."""
        params = ", ".join(
            f"{p.name}: {p.type}" + ("" if p.required else " (optional)") for p in self.parameters
        )
        lines = [f"{self.name}({params})", f"  {self.description}"]
        for p in self.parameters:
            lines.append(f"    - {p.name}: {p.description}")
        for example in self.examples:
            lines.append(f"    e.g. {example}")
        return "\n".join(lines)

    def validate_args(self, args: dict[str, Any]) -> tuple[bool, str | None]:
        """
        Validate tool arguments.

        Returns:
            (valid, error_message)
        """
        missing = {p.name for p in self.parameters if p.required} - set(args)
        if missing:
            return False, f"Missing required parameters: {', '.join(sorted(missing))}"

        unknown = set(args) - {p.name for p in self.parameters}
        if unknown:
            return False, f"Unknown parameters: {', '.join(sorted(unknown))}"

        return True, None

    async def execute(self, args: dict[str, Any]) -> ActionResult:
        """Validate and run; never raises."""
        valid, error = self.validate_args(args)
        if not valid:
            return ActionResult(success=False, error=error)
        try:
            return await self.executor(**args)
        except Exception as e:
            logger.error(f"Tool {self.name} failed: {e}", exc_info=True)
            return ActionResult(success=False, error=f"{self.name} failed: {e}")

    def _input_schema(self) -> dict[str, Any]:
        properties: dict[str, Any] = {}
        for param in self.parameters:
            properties[param.name] = {"type": param.type, "description": param.description}
            if param.default is not None:
                properties[param.name]["default"] = param.default
        return {
            "type": "object",
            "properties": properties,
            "required": [p.name for p in self.parameters if p.required],
        }

    def to_openai_function(self) -> ToolSpec:
        """OpenAI / LiteLLM function-calling format."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self._input_schema(),
            },
        }

    def to_anthropic_tool(self) -> ToolSpec:
        """Anthropic tool-use format."""
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self._input_schema(),
        }


def _json_type(annotation: Any) -> str:
    # Optional[X] / X | None describe X
    if isinstance(annotation, types.UnionType) or typing.get_origin(annotation) is typing.Union:
        args = [a for a in typing.get_args(annotation) if a is not type(None)]
        if len(args) == 1:
            annotation = args[0]
    return _JSON_TYPES.get(annotation, "string")


def _param_descriptions(doc: str | None) -> dict[str, str]:
    """Read "name: description" lines from a docstring Args section."""
    descriptions: dict[str, str] = {}
    for line in (doc or "").split("\n"):
        name, sep, text = line.strip().partition(":")
        if sep and name.isidentifier() and text.strip():
            descriptions.setdefault(name, text.strip())
    return descriptions


F = TypeVar("F", bound=Callable[..., Awaitable[ActionResult]])


def tool(
    name: str,
    description: str,
    examples: list[str] | None = None,
) -> Callable[[F], F]:
    """
    Decorator to turn an async function into a tool.

    Parameters come from the signature; descriptions from "name: text"
    lines in the docstring.

    Example:
        @tool("memory_save", "Append a note to today's memory log")
        async def memory_save(content: str) -> ActionResult:
            ...
    """

    def decorator(func: F) -> F:
        descriptions = _param_descriptions(func.__doc__)
        parameters = []
        for param_name, param in inspect.signature(func).parameters.items():
            if param_name in ("self", "cls"):
                continue
            required = param.default is inspect.Parameter.empty
            parameters.append(
                ToolParameter(
                    name=param_name,
                    type=_json_type(param.annotation),
                    description=descriptions.get(param_name, f"Parameter {param_name}"),
                    required=required,
                    default=None if required else param.default,
                )
            )

        func._tool = Tool(  # type: ignore[attr-defined]
            name=name,
            description=description,
            parameters=parameters,
            executor=func,
            examples=examples or [],
        )
        return func

    return decorator
