"""JSON-backed typed memory stores.

One JSON document per store per agent, loaded eagerly on construction and
rewritten synchronously after every mutation. The document is an ordered
list of records: {"version": 1, "memories": [...]}.
"""

import json
import re
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import Any, Generic, TypeVar
from uuid import uuid4

from mnemo.core.logging import get_logger
from mnemo.memory.base import (
    WORKING_MEMORY_TTL_MS,
    BaseMemory,
    EmotionalMemory,
    EmotionalTag,
    EpisodicContext,
    EpisodicMemory,
    MemoryType,
    ProceduralMemory,
    ProspectiveMemory,
    ProspectiveStatus,
    SemanticMemory,
    WorkingMemory,
    now_ms,
)

logger = get_logger("memory.stores")

T = TypeVar("T", bound=BaseMemory)

_WORD_RE = re.compile(r"\w+")


def query_words(text: str) -> set[str]:
    """Lowercased words of 3+ characters, used for loose text matching."""
    return {w for w in _WORD_RE.findall(text.lower()) if len(w) >= 3}


def matches_query(query: str | None, *texts: str | None) -> bool:
    """True when any query word occurs in any of the texts (or no query)."""
    if not query:
        return True
    words = query_words(query)
    if not words:
        return True
    haystack = " ".join(t for t in texts if t).lower()
    return any(w in haystack for w in words)


def _write_json(path: Path, payload: dict[str, Any]) -> None:
    """Replace path atomically via a sibling temp file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(".tmp")
    tmp.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
    tmp.replace(path)


class JsonMemoryStore(Generic[T]):
    """Ordered collection of one memory kind persisted as a JSON document."""

    memory_cls: type[T]
    filename: str

    def __init__(self, storage_dir: Path):
        self.path = storage_dir / self.filename
        self._items: dict[str, T] = {}
        self._load()

    def _load(self) -> None:
        if not self.path.exists():
            return
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            records = data["memories"] if isinstance(data, dict) else data
            if not isinstance(records, list):
                raise TypeError(f"expected a list of memories, got {type(records).__name__}")
            for record in records:
                if not isinstance(record, dict):
                    raise TypeError(f"expected a memory record, got {type(record).__name__}")
                memory = self.memory_cls.from_dict(record)
                self._items[memory.id] = memory
            logger.debug(f"Loaded {len(self._items)} memories from {self.path}")
        except (OSError, json.JSONDecodeError, KeyError, TypeError, ValueError, AttributeError) as e:
            logger.warning(f"Corrupt memory store {self.path}, starting empty: {e}")
            self._items = {}

    def _save(self) -> None:
        payload = {"version": 1, "memories": [m.to_dict() for m in self._items.values()]}
        try:
            _write_json(self.path, payload)
        except (OSError, TypeError) as e:
            # In-memory state stays authoritative for the process lifetime
            logger.error(f"Failed to persist {self.path}: {e}")

    def _insert(self, build: Callable[[str, int], T]) -> str:
        memory_id = str(uuid4())
        created = now_ms()
        self._items[memory_id] = build(memory_id, created)
        self._save()
        return memory_id

    def get(self, memory_id: str) -> T | None:
        return self._items.get(memory_id)

    def get_all(self) -> list[T]:
        return list(self._items.values())

    def delete(self, memory_id: str) -> bool:
        if self._items.pop(memory_id, None) is None:
            return False
        self._save()
        return True

    remove = delete

    def delete_many(self, memory_ids: Iterable[str]) -> int:
        """Delete several ids with a single save."""
        removed = 0
        for memory_id in memory_ids:
            if self._items.pop(memory_id, None) is not None:
                removed += 1
        if removed:
            self._save()
        return removed

    def __len__(self) -> int:
        return len(self._items)


class WorkingMemoryStore:
    """Register holding at most one live working memory.

    Expiry is lazy: an expired entry is dropped the next time it is read.
    """

    filename = "working.json"

    def __init__(self, storage_dir: Path, default_ttl_ms: int = WORKING_MEMORY_TTL_MS):
        self.path = storage_dir / self.filename
        self.default_ttl_ms = default_ttl_ms
        self._memory: WorkingMemory | None = None
        self._load()

    def _load(self) -> None:
        if not self.path.exists():
            return
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            record = data.get("memory") if isinstance(data, dict) else None
            if record is not None and not isinstance(record, dict):
                raise TypeError(f"expected a memory record, got {type(record).__name__}")
            self._memory = WorkingMemory.from_dict(record) if record else None
        except (OSError, json.JSONDecodeError, KeyError, TypeError, ValueError, AttributeError) as e:
            logger.warning(f"Corrupt working memory {self.path}, starting empty: {e}")
            self._memory = None

    def _save(self) -> None:
        payload = {"version": 1, "memory": self._memory.to_dict() if self._memory else None}
        try:
            _write_json(self.path, payload)
        except (OSError, TypeError) as e:
            logger.error(f"Failed to persist {self.path}: {e}")

    def set(
        self,
        content: str,
        context: dict[str, Any] | None = None,
        ttl_ms: int | None = None,
    ) -> str:
        """Replace the buffer, returning the new id."""
        created = now_ms()
        self._memory = WorkingMemory(
            id=str(uuid4()),
            created_at=created,
            updated_at=created,
            content=content,
            context=context or {},
            expires_at=created + (ttl_ms if ttl_ms is not None else self.default_ttl_ms),
        )
        self._save()
        return self._memory.id

    def get(self) -> WorkingMemory | None:
        if self._memory is None:
            return None
        if self._memory.is_expired():
            self.clear()
            return None
        return self._memory

    def update(self, content: str | None = None, context: dict[str, Any] | None = None) -> bool:
        memory = self.get()
        if memory is None:
            return False
        if content is not None:
            memory.content = content
        if context is not None:
            memory.context = context
        memory.touch()
        self._save()
        return True

    def clear(self) -> None:
        if self._memory is not None:
            self._memory = None
            self._save()

    def clear_expired(self) -> bool:
        if self._memory is not None and self._memory.is_expired():
            self.clear()
            return True
        return False

    def get_all(self) -> list[WorkingMemory]:
        memory = self.get()
        return [memory] if memory else []


class EpisodicMemoryStore(JsonMemoryStore[EpisodicMemory]):
    memory_cls = EpisodicMemory
    filename = "episodic.json"

    def add(
        self,
        event: str,
        timestamp: int,
        context: EpisodicContext,
        conversation_id: str | None = None,
    ) -> str:
        return self._insert(
            lambda memory_id, created: EpisodicMemory(
                id=memory_id,
                created_at=created,
                updated_at=created,
                event=event,
                timestamp=timestamp,
                context=context,
                conversation_id=conversation_id,
            )
        )

    def query(
        self,
        conversation_id: str | None = None,
        start_time: int | None = None,
        end_time: int | None = None,
        query: str | None = None,
        limit: int | None = None,
    ) -> list[EpisodicMemory]:
        """Filter episodes, newest first."""
        results = [
            m
            for m in self._items.values()
            if (conversation_id is None or m.conversation_id == conversation_id)
            and (start_time is None or m.timestamp >= start_time)
            and (end_time is None or m.timestamp <= end_time)
            and matches_query(query, m.event, m.context.what, m.context.why)
        ]
        results.sort(key=lambda m: m.timestamp, reverse=True)
        return results[:limit] if limit else results


class SemanticMemoryStore(JsonMemoryStore[SemanticMemory]):
    memory_cls = SemanticMemory
    filename = "semantic.json"

    def add(
        self,
        fact: str,
        category: str | None = None,
        confidence: float = 0.8,
        source: str | None = None,
    ) -> str:
        confidence = min(max(confidence, 0.0), 1.0)
        return self._insert(
            lambda memory_id, created: SemanticMemory(
                id=memory_id,
                created_at=created,
                updated_at=created,
                fact=fact,
                category=category,
                confidence=confidence,
                source=source,
            )
        )

    def query(
        self,
        query: str | None = None,
        category: str | None = None,
        min_confidence: float = 0.0,
        limit: int | None = None,
    ) -> list[SemanticMemory]:
        """Filter facts, most confident first."""
        results = [
            m
            for m in self._items.values()
            if (category is None or m.category == category)
            and m.confidence >= min_confidence
            and matches_query(query, m.fact, m.category)
        ]
        results.sort(key=lambda m: (m.confidence, m.updated_at), reverse=True)
        return results[:limit] if limit else results


class ProceduralMemoryStore(JsonMemoryStore[ProceduralMemory]):
    memory_cls = ProceduralMemory
    filename = "procedural.json"

    def add(self, pattern: str, trigger: str, action: str, success_rate: float = 0.5) -> str:
        success_rate = min(max(success_rate, 0.0), 1.0)
        return self._insert(
            lambda memory_id, created: ProceduralMemory(
                id=memory_id,
                created_at=created,
                updated_at=created,
                pattern=pattern,
                trigger=trigger,
                action=action,
                success_rate=success_rate,
            )
        )

    def find_matching(self, trigger: str) -> list[ProceduralMemory]:
        """Procedures whose trigger overlaps the given text, best performing first."""
        needle = trigger.strip().lower()
        if not needle:
            return []
        results = [
            m
            for m in self._items.values()
            if m.trigger.lower() in needle
            or needle in m.trigger.lower()
            or matches_query(needle, m.trigger, m.pattern)
        ]
        results.sort(key=lambda m: m.success_rate, reverse=True)
        return results

    def record_use(self, memory_id: str, success: bool) -> bool:
        """Fold one outcome into the running success average."""
        memory = self._items.get(memory_id)
        if memory is None:
            logger.warning(f"record_use: unknown procedural memory {memory_id}")
            return False
        outcome = 1.0 if success else 0.0
        total = memory.success_rate * memory.use_count + outcome
        memory.use_count += 1
        memory.success_rate = min(max(total / memory.use_count, 0.0), 1.0)
        memory.last_used = now_ms()
        memory.touch()
        self._save()
        return True


class ProspectiveMemoryStore(JsonMemoryStore[ProspectiveMemory]):
    memory_cls = ProspectiveMemory
    filename = "prospective.json"

    def add(
        self,
        intention: str,
        priority: float = 0.5,
        trigger_time: int | None = None,
        trigger_context: str | None = None,
        conversation_id: str | None = None,
    ) -> str:
        priority = min(max(priority, 0.0), 1.0)
        return self._insert(
            lambda memory_id, created: ProspectiveMemory(
                id=memory_id,
                created_at=created,
                updated_at=created,
                intention=intention,
                priority=priority,
                trigger_time=trigger_time,
                trigger_context=trigger_context,
                conversation_id=conversation_id,
            )
        )

    def query(
        self,
        conversation_id: str | None = None,
        status: ProspectiveStatus | None = None,
        limit: int | None = None,
    ) -> list[ProspectiveMemory]:
        """Filter intentions, highest priority first."""
        results = [
            m
            for m in self._items.values()
            if (conversation_id is None or m.conversation_id == conversation_id)
            and (status is None or m.status == status)
        ]
        results.sort(key=lambda m: (m.priority, -m.created_at), reverse=True)
        return results[:limit] if limit else results

    def trigger(self, memory_id: str) -> bool:
        memory = self._items.get(memory_id)
        if memory is None or memory.status != ProspectiveStatus.PENDING:
            logger.warning(f"Cannot trigger prospective memory {memory_id}")
            return False
        memory.status = ProspectiveStatus.TRIGGERED
        memory.triggered_at = now_ms()
        memory.touch()
        self._save()
        return True

    def complete(self, memory_id: str) -> bool:
        memory = self._items.get(memory_id)
        if memory is None or memory.status == ProspectiveStatus.COMPLETED:
            logger.warning(f"Cannot complete prospective memory {memory_id}")
            return False
        memory.status = ProspectiveStatus.COMPLETED
        memory.completed_at = now_ms()
        memory.touch()
        self._save()
        return True

    def get_due(self, at: int | None = None) -> list[ProspectiveMemory]:
        """Pending intentions whose trigger time has passed."""
        at = at if at is not None else now_ms()
        due = [
            m
            for m in self._items.values()
            if m.status == ProspectiveStatus.PENDING
            and m.trigger_time is not None
            and m.trigger_time <= at
        ]
        due.sort(key=lambda m: (m.trigger_time, -m.priority))
        return due

    def get_by_context(self, text: str) -> list[ProspectiveMemory]:
        """Pending intentions whose trigger context relates to the text."""
        lowered = text.lower()
        words = query_words(text)
        results = []
        for m in self._items.values():
            if m.status != ProspectiveStatus.PENDING or not m.trigger_context:
                continue
            trigger = m.trigger_context.lower()
            if trigger in lowered or words & query_words(trigger):
                results.append(m)
        results.sort(key=lambda m: m.priority, reverse=True)
        return results


class EmotionalMemoryStore(JsonMemoryStore[EmotionalMemory]):
    memory_cls = EmotionalMemory
    filename = "emotional.json"

    def add(
        self,
        target_memory_id: str,
        target_memory_type: MemoryType,
        emotion: str,
        intensity: float,
    ) -> str:
        intensity = min(max(intensity, 0.0), 1.0)

        def build(memory_id: str, created: int) -> EmotionalMemory:
            return EmotionalMemory(
                id=memory_id,
                created_at=created,
                updated_at=created,
                target_memory_id=target_memory_id,
                target_memory_type=target_memory_type,
                tag=EmotionalTag(emotion=emotion, intensity=intensity, timestamp=created),
            )

        return self._insert(build)

    def get_by_target(self, target_memory_id: str) -> list[EmotionalMemory]:
        return [m for m in self._items.values() if m.target_memory_id == target_memory_id]
