"""
Shared type definitions.

Result shapes returned across the memory engine boundary.
"""

from dataclasses import dataclass
from typing import Any


@dataclass
class ActionResult:
    """Result of a tool-facing memory operation."""

    success: bool
    data: Any = None
    error: str | None = None
