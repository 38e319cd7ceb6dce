"""Shared typing aliases used across modules."""

from typing import Any, TypeAlias

JSONDict: TypeAlias = dict[str, Any]
Embedding: TypeAlias = list[float]
ToolSpec: TypeAlias = dict[str, Any]
