"""Sleep engine - compresses the context window and consolidates memories."""

import time
from dataclasses import dataclass, field
from pathlib import Path

from mnemo.core.config import Settings
from mnemo.core.logging import get_logger
from mnemo.memory.base import ConsolidatedMemory
from mnemo.memory.manager import MemoryManager
from mnemo.memory.persistence import append_daily_memory, append_long_term_memory
from mnemo.sleep.config import SleepConfig, lookup_context_tokens, resolve_sleep_config
from mnemo.sleep.consolidator import (
    consolidate_memories,
    format_memories_for_daily_log,
    format_memories_for_long_term,
    process_conversation,
)
from mnemo.sleep.summarizer import compress_context
from mnemo.sleep.trigger import calculate_sleep_threshold, should_sleep
from mnemo.sleep.types import ContextMessage, ConversationEntry, total_tokens

logger = get_logger("sleep.engine")


@dataclass
class SleepResult:
    slept: bool
    messages: list[ContextMessage]
    tokens_before: int
    tokens_after: int
    memories: list[ConsolidatedMemory] = field(default_factory=list)
    daily_path: Path | None = None
    long_term_path: Path | None = None
    forgotten: int = 0
    notice: str | None = None  # system prompt announcing the sleep, for the host


class SleepEngine:
    """Runs the trigger check and, when it passes, the full sleep pipeline.

    Callers should run maybe_sleep() once per turn at a fixed point; the
    conversation must not change between the check and the compression.
    """

    def __init__(self, manager: MemoryManager, config: SleepConfig, context_window_tokens: int):
        self.manager = manager
        self.config = config
        self.context_window_tokens = context_window_tokens

    @classmethod
    def from_settings(cls, settings: Settings, manager: MemoryManager) -> "SleepEngine | None":
        """Build from settings; None when sleep is disabled."""
        config = resolve_sleep_config(settings.sleep, settings.memory_flush)
        if config is None:
            return None
        context_window = lookup_context_tokens(settings.model, settings.context_tokens)
        return cls(manager, config, context_window)

    @property
    def threshold_tokens(self) -> int:
        return calculate_sleep_threshold(self.context_window_tokens, self.config)

    @property
    def target_tokens(self) -> int:
        """Budget the context is compressed down to."""
        ceiling = min(
            self.threshold_tokens, self.context_window_tokens - self.config.reserve_tokens_floor
        )
        return max(0, ceiling - self.config.soft_threshold_tokens)

    def should_sleep(
        self, entry: ConversationEntry | None, message_count: int | None, now: int | None = None
    ) -> bool:
        return should_sleep(
            entry, self.context_window_tokens, self.config, message_count=message_count, now=now
        )

    async def maybe_sleep(
        self,
        entry: ConversationEntry,
        messages: list[ContextMessage],
        conversation_id: str | None = None,
        keep_ids: list[str] | None = None,
        now: int | None = None,
    ) -> SleepResult:
        """Sleep if due. Updates entry in place when it does."""
        tokens_before = total_tokens(messages)
        if not self.should_sleep(entry, len(messages), now=now):
            return SleepResult(
                slept=False,
                messages=messages,
                tokens_before=tokens_before,
                tokens_after=tokens_before,
            )

        now = now if now is not None else int(time.time() * 1000)
        conversation_id = conversation_id or entry.conversation_id
        logger.info(
            f"Sleeping conversation {conversation_id}: {entry.total_tokens} tokens, "
            f"{len(messages)} messages"
        )

        important, summary = process_conversation(messages)
        memories = consolidate_memories(messages, summary)

        compressed = compress_context(
            messages,
            self.target_tokens,
            self.config.compression_strategy,
            self.config.keep_recent_messages,
        )
        tokens_after = total_tokens(compressed)

        result = SleepResult(
            slept=True,
            messages=compressed,
            tokens_before=tokens_before,
            tokens_after=tokens_after,
            memories=memories,
            notice=self.config.system_prompt,
        )

        root = self.manager.memory_root
        if root is not None:
            daily = format_memories_for_daily_log(memories)
            if daily:
                result.daily_path = append_daily_memory(root, daily)
            long_term = format_memories_for_long_term(memories)
            if long_term:
                result.long_term_path = append_long_term_memory(root, long_term)

        self.manager.save_consolidated_memories(memories, conversation_id)

        entry.sleep_count += 1
        entry.sleep_at = now
        entry.total_tokens = tokens_after
        entry.updated_at = now

        if self.manager.index is not None:
            self.manager.index.mark_dirty()

        if keep_ids is not None:
            result.forgotten = self.manager.on_sleep_ended(keep_ids)

        logger.info(
            f"Sleep done: {tokens_before} -> {tokens_after} tokens, "
            f"{len(memories)} memories ({len(important)} important messages)"
        )
        return result
