"""Memory Manager: one entry point over the typed stores, Markdown files and index."""

import asyncio
from collections.abc import Iterable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import aiosqlite

from mnemo.core.logging import get_logger
from mnemo.index.search import MemoryIndex, MemorySearchResult, SyncStats
from mnemo.memory.base import (
    BaseMemory,
    ConsolidatedMemory,
    ConsolidationType,
    EmotionalMemory,
    EpisodicContext,
    EpisodicMemory,
    MemoryRetrievalOptions,
    MemoryRetrievalResult,
    MemoryType,
    ProceduralMemory,
    ProspectiveMemory,
    ProspectiveStatus,
    SemanticMemory,
    WorkingMemory,
    now_ms,
)
from mnemo.memory.classifier import Classifier, KeywordClassifier
from mnemo.memory.persistence import append_daily_memory, append_long_term_memory
from mnemo.memory.stores import (
    EmotionalMemoryStore,
    EpisodicMemoryStore,
    ProceduralMemoryStore,
    ProspectiveMemoryStore,
    SemanticMemoryStore,
    WorkingMemoryStore,
    matches_query,
)

logger = get_logger("memory.manager")

ALL_TYPES = (
    MemoryType.WORKING,
    MemoryType.EPISODIC,
    MemoryType.SEMANTIC,
    MemoryType.PROCEDURAL,
    MemoryType.PROSPECTIVE,
    MemoryType.EMOTIONAL,
)
RELEVANT_TYPES = (MemoryType.EPISODIC, MemoryType.SEMANTIC, MemoryType.PROCEDURAL)


def _iso_ms(ms: int) -> str:
    at = datetime.fromtimestamp(ms / 1000, tz=timezone.utc)
    return at.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _structured_fact(memory: ConsolidatedMemory) -> str:
    if not memory.structured_data:
        return memory.content
    pairs = ", ".join(f"{k}: {v}" for k, v in memory.structured_data.items() if k != "field")
    return pairs or memory.content


class MemoryManager:
    """Coordinates all memory types for one agent.

    Typed memories live in per-store JSON files under storage_dir. When a
    memory_root is given, episodic and semantic additions are also mirrored
    to the daily log and MEMORY.md, which the retrieval index reads.
    """

    def __init__(
        self,
        storage_dir: Path,
        memory_root: Path | None = None,
        classifier: Classifier | None = None,
        index: MemoryIndex | None = None,
    ):
        self.storage_dir = Path(storage_dir)
        self.memory_root = Path(memory_root) if memory_root else None
        self.classifier = classifier or KeywordClassifier()
        self.index = index

        self.working = WorkingMemoryStore(self.storage_dir)
        self.episodic = EpisodicMemoryStore(self.storage_dir)
        self.semantic = SemanticMemoryStore(self.storage_dir)
        self.procedural = ProceduralMemoryStore(self.storage_dir)
        self.prospective = ProspectiveMemoryStore(self.storage_dir)
        self.emotional = EmotionalMemoryStore(self.storage_dir)

        self._pending: set[asyncio.Task] = set()
        self._sync_lock = asyncio.Lock()
        self._sync_cancel = asyncio.Event()
        self.last_sync: SyncStats | None = None

    # Working memory

    def set_working_memory(
        self, content: str, context: dict[str, Any] | None = None, ttl_ms: int | None = None
    ) -> str:
        return self.working.set(content, context, ttl_ms)

    def get_working_memory(self) -> WorkingMemory | None:
        return self.working.get()

    def update_working_memory(
        self, content: str | None = None, context: dict[str, Any] | None = None
    ) -> bool:
        return self.working.update(content, context)

    def clear_working_memory(self) -> None:
        self.working.clear()

    # Episodic memory

    def add_episodic_memory(
        self,
        event: str,
        what: str,
        why: str | None = None,
        timestamp: int | None = None,
        conversation_id: str | None = None,
        mirror: bool = True,
    ) -> str:
        timestamp = timestamp if timestamp is not None else now_ms()
        memory_id = self.episodic.add(
            event=event,
            timestamp=timestamp,
            context=EpisodicContext(what=what, when=timestamp, why=why),
            conversation_id=conversation_id,
        )
        if mirror and self.memory_root:
            content = f"**Event**: {event}\n**When**: {_iso_ms(timestamp)}\n**What**: {what}"
            if why:
                content += f"\n**Why**: {why}"
            append_daily_memory(self.memory_root, content)
            self._mark_index_dirty()
        return memory_id

    def get_episodic_memories(
        self,
        conversation_id: str | None = None,
        query: str | None = None,
        max_age_ms: int | None = None,
        limit: int | None = None,
    ) -> list[EpisodicMemory]:
        start_time = now_ms() - max_age_ms if max_age_ms else None
        return self.episodic.query(
            conversation_id=conversation_id, start_time=start_time, query=query, limit=limit
        )

    # Semantic memory

    def add_semantic_memory(
        self,
        fact: str,
        category: str | None = None,
        confidence: float = 0.8,
        source: str | None = None,
        mirror: bool = True,
    ) -> str:
        memory_id = self.semantic.add(fact, category=category, confidence=confidence, source=source)
        if mirror and self.memory_root:
            content = f"**Fact**: {fact}"
            if category:
                content += f"\n**Category**: {category}"
            content += f"\n**Confidence**: {confidence:g}"
            append_long_term_memory(self.memory_root, content)
            self._mark_index_dirty()
        return memory_id

    def get_semantic_memories(
        self, query: str | None = None, category: str | None = None, limit: int | None = None
    ) -> list[SemanticMemory]:
        return self.semantic.query(query=query, category=category, limit=limit)

    # Procedural memory

    def add_procedural_memory(
        self, pattern: str, trigger: str, action: str, success_rate: float = 0.5
    ) -> str:
        return self.procedural.add(pattern, trigger, action, success_rate)

    def get_procedural_memories(self, trigger: str | None = None) -> list[ProceduralMemory]:
        if trigger:
            return self.procedural.find_matching(trigger)
        return self.procedural.get_all()

    def record_procedure_use(self, memory_id: str, success: bool) -> bool:
        return self.procedural.record_use(memory_id, success)

    # Prospective memory

    def add_prospective_memory(
        self,
        intention: str,
        priority: float = 0.5,
        trigger_time: int | None = None,
        trigger_context: str | None = None,
        conversation_id: str | None = None,
    ) -> str:
        return self.prospective.add(
            intention,
            priority=priority,
            trigger_time=trigger_time,
            trigger_context=trigger_context,
            conversation_id=conversation_id,
        )

    def get_prospective_memories(
        self, conversation_id: str | None = None, limit: int | None = None
    ) -> list[ProspectiveMemory]:
        return self.prospective.query(
            conversation_id=conversation_id, status=ProspectiveStatus.PENDING, limit=limit
        )

    def trigger_prospective_memory(self, memory_id: str) -> bool:
        return self.prospective.trigger(memory_id)

    def complete_prospective_memory(self, memory_id: str) -> bool:
        return self.prospective.complete(memory_id)

    def get_due_prospective_memories(self) -> list[ProspectiveMemory]:
        return self.prospective.get_due()

    def get_prospective_memories_by_context(self, text: str) -> list[ProspectiveMemory]:
        return self.prospective.get_by_context(text)

    # Emotional memory

    def add_emotional_memory(
        self, target_memory_id: str, target_memory_type: MemoryType, emotion: str, intensity: float
    ) -> str:
        return self.emotional.add(target_memory_id, target_memory_type, emotion, intensity)

    def get_emotional_memories(self, target_memory_id: str | None = None) -> list[EmotionalMemory]:
        if target_memory_id:
            return self.emotional.get_by_target(target_memory_id)
        return self.emotional.get_all()

    # Unified retrieval

    def retrieve_memories(self, options: MemoryRetrievalOptions) -> MemoryRetrievalResult:
        """Gather typed memories, newest first."""
        types = options.types or list(ALL_TYPES)
        memories: list[BaseMemory] = []

        if MemoryType.WORKING in types:
            memories.extend(
                m for m in self.working.get_all() if matches_query(options.query, m.content)
            )
        if MemoryType.EPISODIC in types:
            memories.extend(
                self.get_episodic_memories(
                    conversation_id=options.conversation_id,
                    query=options.query,
                    max_age_ms=options.max_age_ms,
                )
            )
        if MemoryType.SEMANTIC in types:
            memories.extend(self.get_semantic_memories(query=options.query))
        if MemoryType.PROCEDURAL in types:
            memories.extend(self.get_procedural_memories(options.query))
        if MemoryType.PROSPECTIVE in types:
            memories.extend(
                m
                for m in self.get_prospective_memories(conversation_id=options.conversation_id)
                if matches_query(options.query, m.intention, m.trigger_context)
            )
        if MemoryType.EMOTIONAL in types:
            memories.extend(
                m
                for m in self.emotional.get_all()
                if matches_query(options.query, m.tag.emotion)
            )

        memories.sort(key=lambda m: m.updated_at, reverse=True)
        total = len(memories)
        if options.limit:
            memories = memories[: options.limit]
        return MemoryRetrievalResult(memories=memories, total=total)

    def get_relevant_memories(
        self,
        query: str,
        limit: int = 10,
        types: Iterable[MemoryType] | None = None,
    ) -> list[BaseMemory]:
        """Structured-store lookup for a query; separate from index search."""
        options = MemoryRetrievalOptions(
            query=query, types=list(types or RELEVANT_TYPES), limit=limit
        )
        return self.retrieve_memories(options).memories

    def get_all_memories(self) -> list[BaseMemory]:
        return self.retrieve_memories(MemoryRetrievalOptions()).memories

    def cleanup(self) -> None:
        self.working.clear_expired()

    # Extraction

    def on_new_message(
        self,
        text: str,
        conversation_id: str | None = None,
        context: str | None = None,
    ) -> asyncio.Task:
        """Start background extraction for a message and return immediately.

        The returned task never raises; failures are only logged.
        """
        task = asyncio.create_task(self._extract(text, conversation_id, context))
        self._pending.add(task)
        task.add_done_callback(self._on_extraction_done)
        return task

    def _on_extraction_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Memory extraction task failed: {task.exception()}")

    async def _extract(
        self, text: str, conversation_id: str | None, context: str | None
    ) -> list[ConsolidatedMemory]:
        try:
            memories = await self.classifier.classify(text, context)
        except Exception as e:
            logger.warning(f"Memory extraction failed: {e}")
            return []
        if memories:
            self.save_extracted_memories(memories, conversation_id)
            logger.debug(f"Extracted {len(memories)} memories from message")
        return memories

    def save_extracted_memories(
        self, memories: list[ConsolidatedMemory], conversation_id: str | None = None
    ) -> None:
        """Route extraction results to semantic (long-term) or episodic stores."""
        self._route(memories, conversation_id, mirror=True)

    def save_consolidated_memories(
        self, memories: list[ConsolidatedMemory], conversation_id: str | None = None
    ) -> None:
        """Store sleep-consolidated memories; their Markdown is written by the sleep engine."""
        self._route(memories, conversation_id, mirror=False)

    def _route(
        self, memories: list[ConsolidatedMemory], conversation_id: str | None, mirror: bool
    ) -> None:
        now = now_ms()
        for memory in memories:
            if memory.should_save_to_long_term:
                self.add_semantic_memory(
                    _structured_fact(memory),
                    category=memory.type.value,
                    confidence=memory.importance,
                    source=conversation_id,
                    mirror=mirror,
                )
            else:
                event = (
                    memory.content
                    if memory.type == ConsolidationType.EVENT
                    else f"{memory.type.value}: {memory.content}"
                )
                self.add_episodic_memory(
                    event=event,
                    what=memory.content,
                    why=f"Importance: {memory.importance:.2f}, Type: {memory.type.value}",
                    timestamp=now,
                    conversation_id=conversation_id,
                    mirror=mirror,
                )

    async def drain(self) -> None:
        """Wait for in-flight extraction tasks."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # Sleep integration

    def on_sleep_ended(self, keep_ids: Iterable[str]) -> int:
        """Forget every semantic/episodic/procedural/prospective memory not kept.

        Irreversible. Working and emotional memories are left alone.
        """
        keep = set(keep_ids)
        removed = 0
        for store in (self.semantic, self.episodic, self.procedural, self.prospective):
            removed += store.delete_many([m.id for m in store.get_all() if m.id not in keep])
        logger.info(f"Sleep ended: forgot {removed} memories, kept {len(keep)} ids")
        return removed

    # Index

    def _mark_index_dirty(self) -> None:
        if self.index is not None:
            self.index.mark_dirty()

    async def sync_index(self, reason: str = "manual", force: bool = False) -> bool:
        """Sync the retrieval index; False when rejected (another sync runs) or failed."""
        if self.index is None:
            return False
        if self._sync_lock.locked():
            logger.warning(f"Sync ({reason}) rejected: another sync is in flight")
            return False
        async with self._sync_lock:
            self._sync_cancel.clear()
            try:
                self.last_sync = await self.index.sync(
                    reason=reason, force=force, cancel_event=self._sync_cancel
                )
            except (aiosqlite.Error, OSError) as e:
                logger.error(f"Sync ({reason}) failed: {e}")
                return False
        return True

    def cancel_sync(self) -> None:
        """Stop a running sync after its current file."""
        self._sync_cancel.set()

    async def search(
        self,
        query: str,
        max_results: int | None = None,
        min_score: float | None = None,
        conversation_key: str | None = None,
    ) -> list[MemorySearchResult]:
        if self.index is None:
            return []
        try:
            return await self.index.search(
                query,
                max_results=max_results,
                min_score=min_score,
                conversation_key=conversation_key,
            )
        except (aiosqlite.Error, OSError) as e:
            logger.error(f"Memory search failed: {e}")
            return []

    async def close(self) -> None:
        await self.drain()
