"""Conversation shapes consumed by the sleep engine."""

import math
import time
from dataclasses import dataclass
from typing import Any, Literal

Role = Literal["system", "user", "assistant", "tool"]


def estimate_tokens(text: str) -> int:
    """Rough token count: ~4 characters per token, rounded up."""
    return math.ceil(len(text) / 4)


@dataclass
class ContextMessage:
    """One message of the live context window."""

    role: Role
    content: str
    tokens: int
    timestamp: int  # epoch ms
    compressed: bool = False
    summary: str | None = None
    original_length: int | None = None  # messages folded into a summary

    @classmethod
    def create(cls, role: Role, content: str, timestamp: int | None = None) -> "ContextMessage":
        """Build a message with its token estimate filled in."""
        return cls(
            role=role,
            content=content,
            tokens=estimate_tokens(content),
            timestamp=timestamp if timestamp is not None else int(time.time() * 1000),
        )


def total_tokens(messages: list[ContextMessage]) -> int:
    return sum(m.tokens for m in messages)


@dataclass
class ConversationEntry:
    """Per-conversation bookkeeping used to decide when to sleep."""

    conversation_id: str
    updated_at: int = 0
    total_tokens: int | None = None
    sleep_count: int = 0
    sleep_at: int | None = None
    input_tokens: int | None = None
    output_tokens: int | None = None
    context_tokens: int | None = None
    agent_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data = {
            "conversationId": self.conversation_id,
            "updatedAt": self.updated_at,
            "totalTokens": self.total_tokens,
            "sleepCount": self.sleep_count,
            "sleepAt": self.sleep_at,
            "inputTokens": self.input_tokens,
            "outputTokens": self.output_tokens,
            "contextTokens": self.context_tokens,
            "agentId": self.agent_id,
        }
        return {k: v for k, v in data.items() if v is not None}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ConversationEntry":
        """Parse a stored entry; memoryFlush* fields fill in for older records."""
        sleep_count = data.get("sleepCount")
        if sleep_count is None:
            sleep_count = data.get("memoryFlushCount", 0)
        sleep_at = data.get("sleepAt")
        if sleep_at is None:
            sleep_at = data.get("memoryFlushAt")
        return cls(
            conversation_id=data["conversationId"],
            updated_at=data.get("updatedAt", 0),
            total_tokens=data.get("totalTokens"),
            sleep_count=sleep_count or 0,
            sleep_at=sleep_at,
            input_tokens=data.get("inputTokens"),
            output_tokens=data.get("outputTokens"),
            context_tokens=data.get("contextTokens"),
            agent_id=data.get("agentId"),
        )
