"""
Typed memory model.

Six memory kinds share a common header (id + ms timestamps). Each kind is
persisted by its own store; stores never reference each other except for the
weak target link held by emotional memories.
"""

import time
from dataclasses import asdict, dataclass, field, fields
from enum import Enum
from typing import Any, ClassVar, TypeVar

from mnemo.core.typing import JSONDict

WORKING_MEMORY_TTL_MS = 60 * 60 * 1000  # 1 hour


def now_ms() -> int:
    """Current wall clock in milliseconds since epoch."""
    return int(time.time() * 1000)


class MemoryType(Enum):
    WORKING = "working"
    EPISODIC = "episodic"
    SEMANTIC = "semantic"
    PROCEDURAL = "procedural"
    PROSPECTIVE = "prospective"
    EMOTIONAL = "emotional"


class ProspectiveStatus(Enum):
    PENDING = "pending"
    TRIGGERED = "triggered"
    COMPLETED = "completed"


class ConsolidationType(Enum):
    """Classification used to route memories into daily vs long-term storage."""

    FACT = "fact"
    PREFERENCE = "preference"
    DECISION = "decision"
    EVENT = "event"
    LEARNING = "learning"


LONG_TERM_TYPES = frozenset(
    {ConsolidationType.PREFERENCE, ConsolidationType.FACT, ConsolidationType.LEARNING}
)

M = TypeVar("M", bound="BaseMemory")


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_plain(v) for v in value]
    return value


@dataclass
class BaseMemory:
    """Common header for every memory record."""

    memory_type: ClassVar[MemoryType]

    id: str
    created_at: int
    updated_at: int

    def touch(self) -> None:
        """Bump updated_at, never moving it behind created_at."""
        self.updated_at = max(now_ms(), self.created_at, self.updated_at)

    def to_dict(self) -> JSONDict:
        data = _plain(asdict(self))
        data["type"] = self.memory_type.value
        return data

    @classmethod
    def from_dict(cls: type[M], data: JSONDict) -> M:
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in data.items() if k in known}
        return cls(**cls._decode(values))

    @classmethod
    def _decode(cls, values: JSONDict) -> JSONDict:
        """Rebuild nested values; overridden by kinds with structured fields."""
        return values

    @property
    def type(self) -> MemoryType:
        return self.memory_type


@dataclass
class WorkingMemory(BaseMemory):
    """Single-slot scratch buffer for the current task."""

    memory_type: ClassVar[MemoryType] = MemoryType.WORKING

    content: str
    expires_at: int
    context: dict[str, Any] = field(default_factory=dict)

    def is_expired(self, at: int | None = None) -> bool:
        return (at if at is not None else now_ms()) > self.expires_at


@dataclass
class EpisodicContext:
    what: str
    when: int
    why: str | None = None


@dataclass
class EpisodicMemory(BaseMemory):
    """A specific event; append-only."""

    memory_type: ClassVar[MemoryType] = MemoryType.EPISODIC

    event: str
    timestamp: int
    context: EpisodicContext
    conversation_id: str | None = None

    @classmethod
    def _decode(cls, values: JSONDict) -> JSONDict:
        ctx = values.get("context")
        if isinstance(ctx, dict):
            values["context"] = EpisodicContext(**ctx)
        return values


@dataclass
class SemanticMemory(BaseMemory):
    """Durable fact."""

    memory_type: ClassVar[MemoryType] = MemoryType.SEMANTIC

    fact: str
    confidence: float = 0.8
    category: str | None = None
    source: str | None = None


@dataclass
class ProceduralMemory(BaseMemory):
    """Learned pattern: when `trigger` is seen, do `action`."""

    memory_type: ClassVar[MemoryType] = MemoryType.PROCEDURAL

    pattern: str
    trigger: str
    action: str
    success_rate: float = 0.5
    use_count: int = 0
    last_used: int | None = None


@dataclass
class ProspectiveMemory(BaseMemory):
    """Future intention. pending -> triggered -> completed, or pending -> completed."""

    memory_type: ClassVar[MemoryType] = MemoryType.PROSPECTIVE

    intention: str
    status: ProspectiveStatus = ProspectiveStatus.PENDING
    priority: float = 0.5
    trigger_time: int | None = None
    trigger_context: str | None = None
    conversation_id: str | None = None
    triggered_at: int | None = None
    completed_at: int | None = None

    @classmethod
    def _decode(cls, values: JSONDict) -> JSONDict:
        if "status" in values:
            values["status"] = ProspectiveStatus(values["status"])
        return values


@dataclass
class EmotionalTag:
    emotion: str
    intensity: float
    timestamp: int


@dataclass
class EmotionalMemory(BaseMemory):
    """Emotion attached to another memory by id (weak reference)."""

    memory_type: ClassVar[MemoryType] = MemoryType.EMOTIONAL

    target_memory_id: str
    target_memory_type: MemoryType
    tag: EmotionalTag

    @classmethod
    def _decode(cls, values: JSONDict) -> JSONDict:
        if "target_memory_type" in values:
            values["target_memory_type"] = MemoryType(values["target_memory_type"])
        tag = values.get("tag")
        if isinstance(tag, dict):
            values["tag"] = EmotionalTag(**tag)
        return values


@dataclass
class ConsolidatedMemory:
    """Classified piece of content ready to be routed to storage."""

    content: str
    type: ConsolidationType
    importance: float  # 0-1
    should_save_to_long_term: bool
    structured_data: dict[str, Any] | None = None


@dataclass
class MemoryRetrievalOptions:
    """Filters for structured-store lookup."""

    query: str | None = None
    types: list[MemoryType] | None = None
    conversation_id: str | None = None
    limit: int | None = None
    max_age_ms: int | None = None


@dataclass
class MemoryRetrievalResult:
    memories: list[BaseMemory]
    total: int
